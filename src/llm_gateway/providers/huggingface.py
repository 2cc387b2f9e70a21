"""Hugging Face inference provider (embeddings only)."""

from __future__ import annotations

import logging
from typing import Any

from llm_gateway.errors import AuthError, GatewayError, RateLimitedError, UnsupportedOperationError, UpstreamApiError
from llm_gateway.normalizer import StreamNormalizer
from llm_gateway.providers.base import TEST_TIMEOUT_MS, BaseProvider, ProviderCapabilities
from llm_gateway.types import ChatRequest, EmbeddingRequest, EmbeddingResponse, ModelInfo, ModelPricing, StreamEvent, Usage

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://router.huggingface.co/hf-inference"
_PROBE_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

EMBEDDING_MODELS: tuple[tuple[str, str, str], ...] = (
    ("sentence-transformers/all-MiniLM-L6-v2", "All-MiniLM-L6-v2", "Fast and efficient English embedding model"),
    ("sentence-transformers/all-mpnet-base-v2", "All-MPNet-Base-v2", "High quality English embedding model"),
    ("BAAI/bge-small-en-v1.5", "BGE Small EN v1.5", "Better English embedding model from BAAI"),
)


def _as_vectors(data: Any) -> list[list[float]]:
    if isinstance(data, list) and data:
        if all(isinstance(row, list) for row in data):
            return data
        if all(isinstance(value, (int, float)) for value in data):
            return [data]
    if isinstance(data, dict) and isinstance(data.get("embeddings"), list):
        return data["embeddings"]
    raise ValueError("unexpected embedding response format")


class HuggingFaceProvider(BaseProvider):
    """Feature-extraction endpoint of the Hugging Face inference router."""

    name = "huggingface"
    display_name = "Hugging Face"
    default_base_url = _DEFAULT_BASE_URL
    provider_capabilities = ProviderCapabilities(
        chat=False,
        streaming=False,
        tools=False,
        vision=False,
        thinking=False,
        embeddings=True,
        structured_output=False,
    )

    async def test(self) -> bool:
        if not self.transport.has_credentials:
            logger.warning("Hugging Face API key not configured")
            return False
        try:
            await self._probe()
        except RateLimitedError:
            # reachable and authenticated, just busy
            return True
        except GatewayError as exc:
            logger.info("%s connectivity test failed: %s", self.name, exc)
            return False
        return True

    async def _probe(self) -> None:
        await self.transport.send(
            "POST",
            f"/models/{_PROBE_MODEL}",
            json={"inputs": ["Hello world"]},
            timeout_ms=TEST_TIMEOUT_MS,
            retries=1,
        )

    async def get_models(self) -> list[ModelInfo]:
        return [
            ModelInfo(
                id=model_id,
                name=name,
                display_name=name,
                description=description,
                capabilities=self.registry.get(model_id),
                supports_text=False,
                pricing=ModelPricing(input=0, output=0),
                provider=self.name,
            )
            for model_id, name, description in EMBEDDING_MODELS
        ]

    async def create_embeddings(self, req: EmbeddingRequest) -> EmbeddingResponse:
        if not self.transport.has_credentials:
            raise AuthError(self.name, "Hugging Face API key not configured")
        inputs = req.inputs
        data = await self.transport.send(
            "POST",
            f"/models/{req.model}",
            json={"inputs": inputs, "options": {"use_cache": True, "wait_for_model": True}},
        )
        try:
            embeddings = _as_vectors(data)
        except ValueError as exc:
            raise UpstreamApiError(self.name, str(exc)) from exc

        # the endpoint reports no usage, estimate ~4 characters per token
        estimated = round(len(" ".join(inputs)) / 4)
        return EmbeddingResponse(
            embeddings=embeddings,
            model=req.model,
            usage=Usage(prompt_tokens=estimated, total_tokens=estimated),
        )

    def _build_payload(self, req: ChatRequest, *, stream: bool) -> dict[str, Any]:
        raise UnsupportedOperationError(self.name, "chat")

    def _translate_chunk(self, chunk: dict[str, Any], normalizer: StreamNormalizer) -> list[StreamEvent]:
        raise UnsupportedOperationError(self.name, "chat")

    def _translate_response(self, data: Any, normalizer: StreamNormalizer) -> None:
        raise UnsupportedOperationError(self.name, "chat")
