"""FastAPI front end for the poem session.

Endpoints:
- GET /health
- GET /state
- POST /load
- POST /generate  { "input": "..." }
- GET /output?style=plain|markdown
- GET /copy
- GET /memory
"""
from __future__ import annotations
import logging
import os
import threading
from enum import Enum

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from mlxpoems.common.config import DEFAULT_CFG_PATH
from mlxpoems.common.logging_setup import setup_logging
from mlxpoems.local_m1.session import ModelSessionController, default_controller

LOGGER = logging.getLogger("mlxpoems.shell.app")
setup_logging()

PREFETCH = os.getenv("MLXPOEMS_PREFETCH", "1") != "0"

CONTROLLER: ModelSessionController | None = None
_controller_lock = threading.Lock()


def get_controller() -> ModelSessionController:
    global CONTROLLER
    with _controller_lock:
        if CONTROLLER is None:
            CONTROLLER = default_controller(DEFAULT_CFG_PATH)
        return CONTROLLER


class DisplayStyle(str, Enum):
    plain = "plain"
    markdown = "markdown"


class GenerateIn(BaseModel):
    input: str = Field(min_length=1)


class GenerateOut(BaseModel):
    accepted: bool


class StateOut(BaseModel):
    running: bool
    output: str
    model_info: str
    stat: str
    loaded: bool


app = FastAPI()


def _prefetch() -> None:
    try:
        get_controller().ensure_loaded()
    except Exception as e:
        LOGGER.warning("Model prefetch failed: %s", e)


@app.on_event("startup")
def _prefetch_on_startup() -> None:
    """Start loading the model in the background so the first poem is quicker."""
    if PREFETCH:
        thread = threading.Thread(target=_prefetch, name="model-prefetch", daemon=True)
        app.state.prefetch_thread = thread
        thread.start()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "model": get_controller().config.model_id}


@app.get("/state", response_model=StateOut)
def state() -> StateOut:
    return StateOut(**get_controller().state().as_dict())


@app.post("/load", response_model=StateOut)
def load() -> StateOut:
    controller = get_controller()
    try:
        controller.ensure_loaded()
    except Exception as e:
        LOGGER.error("Model load failed: %s", e)
        raise HTTPException(status_code=502, detail=f"Model load failed: {e}")
    return StateOut(**controller.state().as_dict())


@app.post("/generate", response_model=GenerateOut, status_code=202)
def generate(body: GenerateIn, background: BackgroundTasks) -> GenerateOut:
    controller = get_controller()
    if not controller.try_start():
        return GenerateOut(accepted=False)
    background.add_task(controller.run, body.input)
    return GenerateOut(accepted=True)


@app.get("/output", response_class=PlainTextResponse)
def output(style: DisplayStyle = DisplayStyle.markdown) -> PlainTextResponse:
    media_type = "text/markdown" if style is DisplayStyle.markdown else "text/plain"
    return PlainTextResponse(get_controller().output, media_type=media_type)


@app.get("/copy", response_class=PlainTextResponse)
def copy() -> PlainTextResponse:
    """Response text only; the topic is never included."""
    text = get_controller().output
    if not text:
        raise HTTPException(status_code=404, detail="Nothing to copy yet")
    return PlainTextResponse(text)


@app.get("/memory")
def memory() -> dict[str, int]:
    controller = get_controller()
    stats = dict(controller.runtime.memory_stats())
    stats["cache_limit"] = controller.settings.cache_limit_bytes
    return stats
