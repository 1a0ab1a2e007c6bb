"""Inference runtime on Apple Silicon via MLX (mlx-lm)."""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Callable

import mlx.core as mx  # type: ignore
from mlx.utils import tree_flatten  # type: ignore
from mlx_lm import load, stream_generate  # type: ignore
from mlx_lm.sample_utils import make_sampler  # type: ignore

from mlxpoems.common.schema import GenerationResult, GenerationSettings, ModelContext, StopDecision
from mlxpoems.common.templates import prepare_prompt_tokens, user_messages

LOGGER = logging.getLogger("mlxpoems.local_m1.mlx")

TokenCallback = Callable[[list[int]], StopDecision]


class MLXRuntime:
    """Thin wrapper over mlx / mlx-lm used by the session controller."""

    def set_cache_limit(self, limit_bytes: int) -> None:
        mx.set_cache_limit(limit_bytes)

    def load(self, path: Path) -> ModelContext:
        model, tokenizer = load(str(path))
        num_params = sum(v.size for _, v in tree_flatten(model.parameters()))
        LOGGER.info("Loaded model from %s (%d parameters)", path, num_params)
        return ModelContext(model=model, tokenizer=tokenizer, num_parameters=num_params)

    def seed(self, value: int) -> None:
        mx.random.seed(value)

    def prepare(self, context: ModelContext, prompt: str) -> list[int]:
        return prepare_prompt_tokens(context.tokenizer, user_messages(prompt))

    def decode(self, context: ModelContext, tokens: list[int]) -> str:
        return context.tokenizer.decode(tokens)

    def generate(
        self,
        context: ModelContext,
        prompt_tokens: list[int],
        settings: GenerationSettings,
        on_tokens: TokenCallback,
    ) -> GenerationResult:
        """
        Stream tokens, handing the growing id list to on_tokens after each one.

        Stops when on_tokens returns STOP or the model emits end of sequence.
        """
        sampler = make_sampler(temp=settings.temperature)
        tokens: list[int] = []
        tps = 0.0
        for response in stream_generate(
            model=context.model,
            tokenizer=context.tokenizer,
            prompt=prompt_tokens,
            max_tokens=settings.max_tokens,
            sampler=sampler,
        ):
            tps = response.generation_tps
            if response.finish_reason == "stop":
                # end-of-sequence token, not part of the text
                break
            tokens.append(int(response.token))
            if on_tokens(list(tokens)) is StopDecision.STOP:
                break
        return GenerationResult(
            text=self.decode(context, tokens),
            tokens=tokens,
            tokens_per_second=tps,
        )

    def memory_stats(self) -> dict[str, int]:
        return {
            "active_memory": int(mx.get_active_memory()),
            "cache_memory": int(mx.get_cache_memory()),
            "peak_memory": int(mx.get_peak_memory()),
        }
