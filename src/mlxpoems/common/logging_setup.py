"""Central logging setup for the project."""
from __future__ import annotations
import logging
import os
import sys

def setup_logging(level: int | None = None) -> None:
    """
    Configure root logger with stdout output.

    Args:
        level: Logging level; defaults to MLXPOEMS_LOG_LEVEL or INFO.
    """
    if level is None:
        resolved = logging.getLevelName(os.getenv("MLXPOEMS_LOG_LEVEL", "INFO").upper())
        level = resolved if isinstance(resolved, int) else logging.INFO
    handler = logging.StreamHandler(sys.stdout)
    fmt = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
    handler.setFormatter(logging.Formatter(fmt))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    # hub client is chatty at INFO
    logging.getLogger("huggingface_hub").setLevel(max(level, logging.WARNING))
