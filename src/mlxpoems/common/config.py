"""YAML configuration with environment overrides."""
from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from mlxpoems.common.schema import GenerationSettings, ModelConfiguration
from mlxpoems.common.templates import load_template

LOGGER = logging.getLogger("mlxpoems.config")

DEFAULT_CFG_PATH = os.getenv("MLXPOEMS_CONFIG", "configs/poems.yaml")


def load_cfg(path: str) -> dict[str, Any]:
    """Read a YAML mapping; a missing file yields an empty config."""
    if not Path(path).exists():
        LOGGER.info("Config %s not found; using defaults", path)
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config {path} must be a mapping, got {type(data).__name__}")
    return data


def _env(name: str, default: Any) -> Any:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def model_configuration(cfg: dict[str, Any]) -> ModelConfiguration:
    base = ModelConfiguration()
    model = cfg.get("model", {}) or {}
    patterns = model.get("allow_patterns", base.allow_patterns)
    return ModelConfiguration(
        model_id=str(_env("MLXPOEMS_MODEL_ID", model.get("id", base.model_id))),
        models_dir=str(_env("MLXPOEMS_MODELS_DIR", model.get("models_dir", base.models_dir))),
        default_prompt=str(_env("MLXPOEMS_DEFAULT_PROMPT", model.get("default_prompt", base.default_prompt))),
        allow_patterns=tuple(str(p) for p in patterns),
        weights_file=str(model.get("weights_file", base.weights_file)),
        revision=model.get("revision"),
    )


def generation_settings(cfg: dict[str, Any]) -> GenerationSettings:
    base = GenerationSettings()
    gen = cfg.get("generation", {}) or {}
    template = gen.get("prompt_template")
    if template is None:
        template = load_template(gen.get("prompt_template_path", "configs/prompt_template.txt"))
    return GenerationSettings(
        temperature=float(_env("MLXPOEMS_TEMPERATURE", gen.get("temperature", base.temperature))),
        max_tokens=int(_env("MLXPOEMS_MAX_TOKENS", gen.get("max_tokens", base.max_tokens))),
        display_every_n_tokens=int(
            _env("MLXPOEMS_DISPLAY_EVERY", gen.get("display_every_n_tokens", base.display_every_n_tokens))
        ),
        cache_limit_bytes=int(gen.get("cache_limit_bytes", base.cache_limit_bytes)),
        prompt_template=str(template),
    )


def load_settings(path: str = DEFAULT_CFG_PATH) -> tuple[ModelConfiguration, GenerationSettings]:
    cfg = load_cfg(path)
    return model_configuration(cfg), generation_settings(cfg)
