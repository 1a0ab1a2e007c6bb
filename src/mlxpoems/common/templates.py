"""Prompt templating helpers."""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Any

from mlxpoems.common.schema import DEFAULT_TEMPLATE

LOGGER = logging.getLogger("mlxpoems.templates")

PLACEHOLDER = "{title}"


def load_template(path: str | None = "configs/prompt_template.txt") -> str:
    """
    Load a prompt template file, or the built-in poem template.

    Args:
        path: Path to template. Missing files fall back to the default.
    """
    if path and Path(path).is_file():
        return Path(path).read_text(encoding="utf-8").strip()
    return DEFAULT_TEMPLATE


def render_prompt(template: str, topic: str) -> str:
    """
    Render a topic into the template.

    Args:
        template: Template content containing {title}.
        topic: Poem topic.

    Returns:
        Rendered prompt.
    """
    return template.replace(PLACEHOLDER, topic)


def user_messages(prompt: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": prompt}]


def prepare_prompt_tokens(tokenizer: Any, messages: list[dict[str, str]]) -> list[int]:
    """
    Turn chat messages into prompt token ids.

    Uses the tokenizer's chat template. If it cannot be applied (most often
    because the model ships none), the message contents are joined with
    ". " and encoded as plain text.
    """
    try:
        tokens = tokenizer.apply_chat_template(messages, add_generation_prompt=True)
    except Exception as e:
        LOGGER.warning("Chat template unavailable (%s); encoding plain text", e)
        text = ". ".join(m["content"] for m in messages)
        return list(tokenizer.encode(text))
    return list(tokens)
