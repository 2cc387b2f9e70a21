"""Static model capability table and model selection.

Capabilities are keyed by exact model identifier. Unknown models get
:data:`DEFAULT_CAPABILITIES`; nothing is inferred from the model name.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal

Task = Literal["text", "vision", "embeddings"]
Speed = Literal["fast", "balanced", "quality"]

CAPABILITY_NAMES = frozenset({"thinking", "vision", "tools", "structured_output", "embeddings"})


@dataclass(frozen=True)
class ModelCapabilities:
    """Describes feature support for a single model."""

    supports_thinking: bool = False
    supports_vision: bool = False
    supports_tools: bool = False
    supports_structured_output: bool = False
    supports_embeddings: bool = False
    context_window: int = 4096

    def has(self, capability: str) -> bool:
        """Return whether ``capability`` (one of :data:`CAPABILITY_NAMES`) is supported."""
        if capability not in CAPABILITY_NAMES:
            raise ValueError(f"Unknown capability: {capability!r}")
        return bool(getattr(self, f"supports_{capability}"))


DEFAULT_CAPABILITIES = ModelCapabilities()


@dataclass(frozen=True)
class Recommendation:
    """A curated model for a task, tagged with the speed tiers it serves."""

    model: str
    description: str
    tiers: frozenset[str] = frozenset()


@dataclass(frozen=True)
class ModelRequirements:
    """What a caller needs from a model."""

    task: Task = "text"
    speed: Speed | None = None
    capabilities: frozenset[str] = field(default_factory=frozenset)
    min_context_window: int | None = None
    # price per 1000 input + output tokens, only used across providers
    max_cost: float | None = None

    def __post_init__(self) -> None:
        unknown = set(self.capabilities) - CAPABILITY_NAMES
        if unknown:
            raise ValueError(f"Unknown capabilities: {sorted(unknown)}")


def _text(thinking: bool, context: int, *, structured: bool = True, vision: bool = False) -> ModelCapabilities:
    return ModelCapabilities(
        supports_thinking=thinking,
        supports_vision=vision,
        supports_tools=True,
        supports_structured_output=structured,
        context_window=context,
    )


def _embedding(context: int) -> ModelCapabilities:
    return ModelCapabilities(supports_embeddings=True, context_window=context)


BUILTIN_CAPABILITIES: dict[str, ModelCapabilities] = {
    "deepseek-v3.1:671b": _text(True, 32768),
    "qwen3-coder:480b": _text(False, 262144),
    "qwen3-vl:235b": _text(False, 131072, vision=True),
    "qwen3-vl:235b-instruct": _text(False, 131072, vision=True),
    "gpt-oss:20b": _text(True, 32768),
    "gpt-oss:120b": _text(True, 32768),
    "kimi-k2:1t": _text(False, 32768),
    "glm-4.6": _text(False, 202752),
    "minimax-m2": _text(False, 32768),
    "llama-3.2-3b": _text(False, 131072),
    "llama-3.3-70b": _text(False, 131072, structured=False),
    "all-minilm": _embedding(512),
    "embeddinggemma": _embedding(2048),
    "qwen3-embedding": _embedding(32768),
    "sentence-transformers/all-MiniLM-L6-v2": _embedding(512),
    "sentence-transformers/all-mpnet-base-v2": _embedding(514),
    "BAAI/bge-small-en-v1.5": _embedding(512),
}

BUILTIN_RECOMMENDATIONS: dict[str, tuple[Recommendation, ...]] = {
    "text": (
        Recommendation("gpt-oss:20b", "Fast responses for general tasks", frozenset({"fast"})),
        Recommendation("deepseek-v3.1:671b", "Good balance of speed and capability", frozenset({"balanced", "quality"})),
        Recommendation("kimi-k2:1t", "Most capable model for complex tasks", frozenset({"quality"})),
        Recommendation("qwen3-coder:480b", "Specialized for code generation", frozenset({"balanced"})),
    ),
    "vision": (
        Recommendation("qwen3-vl:235b", "General purpose vision model", frozenset({"balanced"})),
        Recommendation("qwen3-vl:235b-instruct", "Instruction-tuned vision model", frozenset({"balanced"})),
    ),
    "embeddings": (
        Recommendation("all-minilm", "Fast multilingual embeddings", frozenset({"fast"})),
        Recommendation("embeddinggemma", "Balanced performance", frozenset({"balanced"})),
        Recommendation("qwen3-embedding", "Highest quality embeddings", frozenset({"quality"})),
    ),
}

BUILTIN_FALLBACKS: dict[str, str] = {
    "text": "gpt-oss:20b",
    "vision": "qwen3-vl:235b",
    "embeddings": "qwen3-embedding",
}

DISPLAY_NAMES: dict[str, str] = {
    "gpt-oss:20b": "GPT-OSS 20B",
    "gpt-oss:120b": "GPT-OSS 120B",
    "deepseek-v3.1:671b": "DeepSeek v3.1 671B",
    "qwen3-coder:480b": "Qwen 3 Coder 480B",
    "qwen3-vl:235b": "Qwen 3 Vision 235B",
    "qwen3-vl:235b-instruct": "Qwen 3 Vision 235B (Instruct)",
    "kimi-k2:1t": "Kimi K2 1T",
    "glm-4.6": "GLM 4.6",
    "minimax-m2": "MiniMax M2",
    "llama-3.2-3b": "Llama 3.2 3B",
    "llama-3.3-70b": "Llama 3.3 70B",
    "embeddinggemma": "Embedding Gemma",
    "qwen3-embedding": "Qwen 3 Embedding",
    "all-minilm": "All-MiniLM",
}


class CapabilityRegistry:
    """Read-only lookup of model capabilities plus a deterministic model picker.

    Built once at startup and shared between providers; it never changes after
    construction.
    """

    def __init__(
        self,
        table: Mapping[str, ModelCapabilities] | None = None,
        recommendations: Mapping[str, Sequence[Recommendation]] | None = None,
        fallbacks: Mapping[str, str] | None = None,
        display_names: Mapping[str, str] | None = None,
    ) -> None:
        self._table = dict(BUILTIN_CAPABILITIES if table is None else table)
        self._recommendations = {
            task: tuple(items)
            for task, items in (BUILTIN_RECOMMENDATIONS if recommendations is None else recommendations).items()
        }
        self._fallbacks = dict(BUILTIN_FALLBACKS if fallbacks is None else fallbacks)
        self._display_names = dict(DISPLAY_NAMES if display_names is None else display_names)

    def get(self, model: str) -> ModelCapabilities:
        """Return capabilities for ``model`` or the documented default."""
        return self._table.get(model, DEFAULT_CAPABILITIES)

    def known(self, model: str) -> bool:
        return model in self._table

    def models(self) -> list[str]:
        return list(self._table)

    def display_name(self, model: str) -> str:
        return self._display_names.get(model, model)

    def extended(self, table: Mapping[str, ModelCapabilities]) -> CapabilityRegistry:
        """Return a new registry with ``table`` entries added or overriding."""
        merged = {**self._table, **table}
        return CapabilityRegistry(merged, self._recommendations, self._fallbacks, self._display_names)

    def select_best_model(self, requirements: ModelRequirements) -> str:
        """Pick the first recommended model meeting ``requirements``.

        Filters run in order: task, speed tier, required capabilities, minimum
        context window. Ties go to declaration order. When nothing survives the
        per-task fallback is returned.
        """
        candidates = list(self._recommendations.get(requirements.task, ()))

        # "balanced" is the neutral tier and does not narrow the list
        if requirements.speed in ("fast", "quality"):
            candidates = [c for c in candidates if requirements.speed in c.tiers]

        for capability in sorted(requirements.capabilities):
            candidates = [c for c in candidates if self.get(c.model).has(capability)]

        if requirements.min_context_window:
            candidates = [
                c for c in candidates if self.get(c.model).context_window >= requirements.min_context_window
            ]

        if candidates:
            return candidates[0].model
        return self._fallbacks.get(requirements.task, self._fallbacks.get("text", "gpt-oss:20b"))
