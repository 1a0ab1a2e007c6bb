"""Dataclasses for model configuration, load state and generation results."""
from __future__ import annotations
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Union

DEFAULT_MODEL_ID = "jerryzhao173985/poems"
DEFAULT_TOPIC = "高跟鞋"
DEFAULT_TEMPLATE = "给出一个主题，请按照给定的主题，切实准确简洁且情感丰富地写一首现代诗：{title}"


@dataclass(frozen=True)
class ModelConfiguration:
    """Where the model comes from and where it is kept locally."""
    model_id: str = DEFAULT_MODEL_ID
    models_dir: str = "models"
    default_prompt: str = DEFAULT_TOPIC
    allow_patterns: tuple[str, ...] = ("*.safetensors", "*.json")
    # glob, so sharded weights (model-00001-of-00002.safetensors) count too
    weights_file: str = "*.safetensors"
    revision: str | None = None


@dataclass(frozen=True)
class GenerationSettings:
    """Sampling and display parameters for one session."""
    temperature: float = 0.0
    max_tokens: int = 240
    # 4 looks continuous; updating on every token costs ~15% tokens/s
    display_every_n_tokens: int = 4
    cache_limit_bytes: int = 20 * 1024 * 1024
    prompt_template: str = DEFAULT_TEMPLATE

    def __post_init__(self) -> None:
        if self.max_tokens < 1 or self.display_every_n_tokens < 1:
            raise ValueError("max_tokens and display_every_n_tokens must be positive")


class StopDecision(Enum):
    MORE = "more"
    STOP = "stop"


@dataclass
class ModelContext:
    """Opaque handle to an initialized model and tokenizer."""
    model: Any
    tokenizer: Any
    num_parameters: int = 0


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Loaded:
    context: ModelContext


LoadState = Union[Idle, Loaded]


@dataclass(frozen=True)
class GenerationRequest:
    topic: str
    prompt: str


@dataclass
class GenerationResult:
    """Final decoded text plus throughput as reported by the runtime."""
    text: str
    tokens: list[int] = field(default_factory=list)
    tokens_per_second: float = 0.0


@dataclass(frozen=True)
class SessionState:
    """Snapshot of the observable controller fields."""
    running: bool
    output: str
    model_info: str
    stat: str
    loaded: bool

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
