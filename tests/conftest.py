from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable

import pytest

from mlxpoems.common.schema import (
    GenerationResult,
    GenerationSettings,
    ModelConfiguration,
    ModelContext,
    StopDecision,
)
from mlxpoems.local_m1.session import ModelSessionController


class FakeRuntime:
    """Stands in for MLXRuntime; token i decodes to the digit i % 10."""

    def __init__(self, available_tokens: int = 1000, tps: float = 42.0) -> None:
        self.available_tokens = available_tokens
        self.tps = tps
        self.load_calls: list[Path] = []
        self.cache_limits: list[int] = []
        self.seeds: list[int] = []
        self.prompts: list[str] = []
        self.generate_error: Exception | None = None

    def set_cache_limit(self, limit_bytes: int) -> None:
        self.cache_limits.append(limit_bytes)

    def load(self, path: Path) -> ModelContext:
        self.load_calls.append(path)
        return ModelContext(model=object(), tokenizer=object(), num_parameters=500 * 1024 * 1024)

    def seed(self, value: int) -> None:
        self.seeds.append(value)

    def prepare(self, context: ModelContext, prompt: str) -> list[int]:
        self.prompts.append(prompt)
        return [1, 2, 3]

    def decode(self, context: ModelContext, tokens: list[int]) -> str:
        return "".join(str(t % 10) for t in tokens)

    def generate(
        self,
        context: ModelContext,
        prompt_tokens: list[int],
        settings: GenerationSettings,
        on_tokens: Callable[[list[int]], StopDecision],
    ) -> GenerationResult:
        if self.generate_error is not None:
            raise self.generate_error
        tokens: list[int] = []
        for i in range(self.available_tokens):
            tokens.append(i)
            if on_tokens(list(tokens)) is StopDecision.STOP:
                break
        return GenerationResult(text=self.decode(context, tokens), tokens=tokens, tokens_per_second=self.tps)

    def memory_stats(self) -> dict[str, int]:
        return {"active_memory": 1, "cache_memory": 2, "peak_memory": 3}


class GatedRuntime(FakeRuntime):
    """FakeRuntime whose generate blocks until release is set."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()
        self.generations = 0

    def generate(self, context, prompt_tokens, settings, on_tokens):  # noqa: ANN001, ANN201
        self.generations += 1
        self.entered.set()
        assert self.release.wait(timeout=5)
        return super().generate(context, prompt_tokens, settings, on_tokens)


class FakeFetcher:
    def __init__(self, error: Exception | None = None, fractions: tuple[float, ...] = (0.0, 0.5, 1.0)) -> None:
        self.error = error
        self.fractions = fractions
        self.calls = 0

    def __call__(self, cfg: ModelConfiguration, progress: Callable[[float], None]) -> Path:
        self.calls += 1
        if self.error is not None:
            raise self.error
        for fraction in self.fractions:
            progress(fraction)
        return Path(cfg.models_dir) / cfg.model_id


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def make_controller(tmp_path: Path, runtime: FakeRuntime) -> Callable[..., ModelSessionController]:
    def build(
        present: bool = True,
        fetcher: FakeFetcher | None = None,
        settings: GenerationSettings | None = None,
        **kwargs: Any,
    ) -> ModelSessionController:
        return ModelSessionController(
            ModelConfiguration(models_dir=str(tmp_path)),
            settings or GenerationSettings(),
            runtime,
            fetcher=fetcher or FakeFetcher(),
            is_present=lambda cfg: present,
            **kwargs,
        )
    return build


@pytest.fixture
def updates() -> list[tuple[str, Any]]:
    return []


def record(updates: list[tuple[str, Any]]) -> Callable[[str, Any], None]:
    def callback(field: str, state: Any) -> None:
        updates.append((field, getattr(state, field)))
    return callback
