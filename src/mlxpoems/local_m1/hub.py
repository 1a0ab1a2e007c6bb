"""Local model store and Hugging Face hub fetch."""
from __future__ import annotations
import logging
import os
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Optional

from huggingface_hub import HfApi, hf_hub_download

from mlxpoems.common.schema import ModelConfiguration

LOGGER = logging.getLogger("mlxpoems.local_m1.hub")

ProgressCallback = Callable[[float], None]


def local_model_dir(cfg: ModelConfiguration) -> Path:
    return Path(cfg.models_dir) / cfg.model_id


def is_model_present(cfg: ModelConfiguration) -> bool:
    """A file matching the weights glob on disk is the only presence check."""
    return any(p.is_file() for p in local_model_dir(cfg).glob(cfg.weights_file))


def _is_weights(name: str) -> bool:
    return name.endswith(".safetensors")


def select_files(repo_files: list[str], patterns: tuple[str, ...]) -> list[str]:
    """Files matching any pattern, configs first and weights last."""
    matched = [
        name for name in repo_files
        if not name.endswith("/") and any(fnmatch(name, p) for p in patterns)
    ]
    return sorted(matched, key=lambda name: (_is_weights(name), name))


def fetch_model(
    cfg: ModelConfiguration,
    progress: Optional[ProgressCallback] = None,
    api: Optional[HfApi] = None,
) -> Path:
    """
    Download the configured artifact set into the local model directory.

    Args:
        cfg: Model configuration.
        progress: Called with the fraction completed (0.0 to 1.0).
        api: Hub client, mainly for tests.

    Returns:
        The local model directory.
    """
    token = os.getenv("HF_TOKEN")
    api = api or HfApi(token=token)
    target = local_model_dir(cfg)

    repo_files = list(api.list_repo_files(repo_id=cfg.model_id, revision=cfg.revision))
    files = select_files(repo_files, cfg.allow_patterns)
    if not files:
        raise FileNotFoundError(
            f"No files in {cfg.model_id} match {', '.join(cfg.allow_patterns)}"
        )

    target.mkdir(parents=True, exist_ok=True)
    LOGGER.info("Downloading %d files from %s to %s", len(files), cfg.model_id, target)
    if progress:
        progress(0.0)
    for i, name in enumerate(files, start=1):
        hf_hub_download(
            repo_id=cfg.model_id,
            filename=name,
            revision=cfg.revision,
            local_dir=str(target),
            token=token,
        )
        LOGGER.debug("Fetched %s (%d/%d)", name, i, len(files))
        if progress:
            progress(i / len(files))
    return target
