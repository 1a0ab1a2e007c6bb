"""Write a poem locally on Apple Silicon via MLX (mlx-lm)."""
from __future__ import annotations
import argparse
import dataclasses
import logging
import sys
from typing import TextIO

from mlxpoems.common.config import DEFAULT_CFG_PATH
from mlxpoems.common.logging_setup import setup_logging
from mlxpoems.common.schema import SessionState
from mlxpoems.local_m1.session import ModelSessionController, default_controller

LOGGER = logging.getLogger("mlxpoems.local_m1.cli")


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


class StreamPrinter:
    """Subscriber that writes output growth to a stream and logs status."""

    def __init__(self, out: TextIO = sys.stdout) -> None:
        self.out = out
        self.shown = ""

    def __call__(self, field: str, state: SessionState) -> None:
        if field == "model_info" and state.model_info:
            LOGGER.info(state.model_info)
        elif field == "output":
            text = state.output
            if text.startswith(self.shown):
                self.out.write(text[len(self.shown):])
            elif text:
                # decoded text was revised; start a fresh line
                self.out.write("\n" + text)
            self.out.flush()
            self.shown = text


def run_poem(controller: ModelSessionController, topic: str, out: TextIO = sys.stdout) -> SessionState:
    """
    Generate one poem, streaming it to out.

    Args:
        controller: Session controller.
        topic: Poem topic.
    """
    unsubscribe = controller.subscribe(StreamPrinter(out))
    try:
        controller.generate(topic)
    finally:
        unsubscribe()
    out.write("\n")
    return controller.state()


def main() -> None:
    setup_logging()
    ap = argparse.ArgumentParser(description="Write a short modern poem with a local MLX model")
    ap.add_argument("--topic", default=None, help="Poem topic (defaults to the configured prompt)")
    ap.add_argument("--cfg", default=DEFAULT_CFG_PATH, help="Config path")
    ap.add_argument("--max-tokens", type=positive_int, default=None)
    ap.add_argument("--display-every", type=positive_int, default=None, help="Publish output every N tokens")
    args = ap.parse_args()

    controller = default_controller(args.cfg)
    if args.max_tokens is not None:
        controller.settings = dataclasses.replace(controller.settings, max_tokens=args.max_tokens)
    if args.display_every is not None:
        controller.settings = dataclasses.replace(controller.settings, display_every_n_tokens=args.display_every)

    topic = args.topic or controller.config.default_prompt
    state = run_poem(controller, topic)
    if state.output.startswith("Failed:"):
        sys.exit(1)
    LOGGER.info(state.stat.strip())

if __name__ == "__main__":
    main()
