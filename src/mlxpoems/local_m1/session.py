"""Model session controller: load state, generation lifecycle, observers.

The controller owns the observable fields (``running``, ``output``,
``model_info``, ``stat``). Every change is published to subscribers on the
thread that made it; moving updates onto a UI thread is up to the subscriber.
"""
from __future__ import annotations
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from mlxpoems.common.config import DEFAULT_CFG_PATH, load_settings
from mlxpoems.common.schema import (
    GenerationRequest,
    GenerationResult,
    GenerationSettings,
    Idle,
    Loaded,
    LoadState,
    ModelConfiguration,
    ModelContext,
    SessionState,
    StopDecision,
)
from mlxpoems.common.templates import render_prompt
from mlxpoems.local_m1.hub import fetch_model, is_model_present, local_model_dir

LOGGER = logging.getLogger("mlxpoems.local_m1.session")

Subscriber = Callable[[str, SessionState], None]


class InferenceRuntime(Protocol):
    def set_cache_limit(self, limit_bytes: int) -> None: ...
    def load(self, path: Path) -> ModelContext: ...
    def seed(self, value: int) -> None: ...
    def prepare(self, context: ModelContext, prompt: str) -> list[int]: ...
    def decode(self, context: ModelContext, tokens: list[int]) -> str: ...
    def generate(
        self,
        context: ModelContext,
        prompt_tokens: list[int],
        settings: GenerationSettings,
        on_tokens: Callable[[list[int]], StopDecision],
    ) -> GenerationResult: ...
    def memory_stats(self) -> dict[str, int]: ...


def stop_policy(max_tokens: int) -> Callable[[int], StopDecision]:
    """Stop once the generated token count reaches max_tokens."""
    def decide(count: int) -> StopDecision:
        return StopDecision.STOP if count >= max_tokens else StopDecision.MORE
    return decide


class ModelSessionController:
    def __init__(
        self,
        config: ModelConfiguration,
        settings: GenerationSettings,
        runtime: InferenceRuntime,
        fetcher: Callable[..., Path] = fetch_model,
        is_present: Callable[[ModelConfiguration], bool] = is_model_present,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.settings = settings
        self.runtime = runtime
        self._fetcher = fetcher
        self._is_present = is_present
        self._clock = clock

        self.load_state: LoadState = Idle()
        self.running = False
        self.output = ""
        self.model_info = ""
        self.stat = ""

        self._subscribers: list[Subscriber] = []
        self._guard = threading.Lock()
        self._load_lock = threading.Lock()

    # observers

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback(field, state); returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def state(self) -> SessionState:
        return SessionState(
            running=self.running,
            output=self.output,
            model_info=self.model_info,
            stat=self.stat,
            loaded=isinstance(self.load_state, Loaded),
        )

    def _publish(self, field: str) -> None:
        snapshot = self.state()
        for callback in list(self._subscribers):
            try:
                callback(field, snapshot)
            except Exception:
                LOGGER.exception("Subscriber failed on %s update", field)

    def _set(self, field: str, value: Any) -> None:
        setattr(self, field, value)
        self._publish(field)

    # loading

    def _report_progress(self, fraction: float) -> None:
        self._set("model_info", f"Downloading {self.config.model_id}: {int(fraction * 100)}%")

    def ensure_loaded(self) -> ModelContext:
        """
        Return the model context, loading or downloading it on first use.

        Errors propagate and leave the state Idle, so the next call retries.
        """
        with self._load_lock:
            if isinstance(self.load_state, Loaded):
                return self.load_state.context

            self.runtime.set_cache_limit(self.settings.cache_limit_bytes)
            if self._is_present(self.config):
                path = local_model_dir(self.config)
                LOGGER.info("Loading %s from %s", self.config.model_id, path)
            else:
                LOGGER.info("%s not found locally; fetching from hub", self.config.model_id)
                path = self._fetcher(self.config, self._report_progress)

            context = self.runtime.load(path)
            self.load_state = Loaded(context)
            self._set(
                "model_info",
                f"Loaded {self.config.model_id}.  Weights: {context.num_parameters // (1024 * 1024)}M",
            )
            return context

    # generation

    def build_request(self, topic: str) -> GenerationRequest:
        return GenerationRequest(
            topic=topic,
            prompt=render_prompt(self.settings.prompt_template, topic),
        )

    def _token_callback(self, context: ModelContext) -> Callable[[list[int]], StopDecision]:
        every = self.settings.display_every_n_tokens
        decide = stop_policy(self.settings.max_tokens)

        def on_tokens(tokens: list[int]) -> StopDecision:
            if len(tokens) % every == 0:
                self._set("output", self.runtime.decode(context, tokens))
            return decide(len(tokens))
        return on_tokens

    def try_start(self) -> bool:
        """Claim the session for one generation; False if one is running."""
        with self._guard:
            if self.running:
                return False
            self.running = True
        self._publish("running")
        return True

    def generate(self, prompt: str) -> Optional[GenerationResult]:
        """
        Generate a poem about prompt, publishing partial output as it grows.

        A call made while another generation runs returns None at once.
        Failures end up in ``output`` as "Failed: ..." and are not raised.
        """
        if not self.try_start():
            LOGGER.debug("Generation already running; ignoring %r", prompt)
            return None
        return self.run(prompt)

    def run(self, prompt: str) -> Optional[GenerationResult]:
        """Body of generate() for a session already claimed with try_start()."""
        result: Optional[GenerationResult] = None
        try:
            self._set("output", "")
            context = self.ensure_loaded()
            request = self.build_request(prompt)
            self.runtime.seed(int(self._clock() * 1000))
            prompt_tokens = self.runtime.prepare(context, request.prompt)
            result = self.runtime.generate(
                context, prompt_tokens, self.settings, self._token_callback(context)
            )
            # cadence may have skipped the tail
            if result.text != self.output:
                self._set("output", result.text)
            self._set("stat", f" Tokens/second: {result.tokens_per_second:.3f}")
            LOGGER.info("Generated %d tokens at %.3f tokens/s", len(result.tokens), result.tokens_per_second)
        except Exception as e:
            LOGGER.exception("Generation failed")
            result = None
            self._set("output", f"Failed: {e}")
        finally:
            self._set("running", False)
        return result


def default_controller(cfg_path: str = DEFAULT_CFG_PATH) -> ModelSessionController:
    """Controller wired to the MLX runtime and the configured model."""
    from mlxpoems.local_m1.mlx_runtime import MLXRuntime

    config, settings = load_settings(cfg_path)
    return ModelSessionController(config, settings, MLXRuntime())
