"""OpenAI 兼容 API 嵌入客户端

支持 OpenAI、DeepSeek、豆包等兼容 OpenAI API 格式的服务。
未知模型的向量维度在首次使用时通过一次探测请求确定。
"""
import asyncio
import os
from typing import List, Optional

import httpx

from .base import EmbeddingProvider
from config.logging import get_logger
from config.settings import EmbeddingConfig


logger = get_logger(__name__)


DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_BASE_URL = "https://api.openai.com/v1"

# Known vector dimensions
MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "nomic-embed-text": 768,
    "doubao-embedding": 2560,
}


class OpenAIEmbeddingClient(EmbeddingProvider):
    """Embedding client for OpenAI-compatible ``/embeddings`` endpoints."""

    BATCH_SIZE = 100

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_key: API key for authentication.
            base_url: Base URL of the API.
            model: Model name to use for embeddings.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._transport = transport

        self._dimension: Optional[int] = MODEL_DIMENSIONS.get(model)
        self._probe_lock = asyncio.Lock()
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    async def create(cls, config: EmbeddingConfig, model: Optional[str] = None) -> "OpenAIEmbeddingClient":
        """Create a client from configuration.

        The API key comes from ``embedding.remote.api_key`` or the
        ``OPENAI_API_KEY`` environment variable.
        """
        remote = config.remote
        api_key = (remote.api_key if remote else None) or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError(
                "OpenAI API key not found. Please set embedding.remote.api_key "
                "in config/vectors.yaml or the OPENAI_API_KEY environment variable"
            )

        return cls(
            api_key=api_key,
            base_url=(remote.base_url if remote and remote.base_url else DEFAULT_BASE_URL),
            model=model or config.model or DEFAULT_MODEL,
            timeout=remote.timeout if remote else 60.0,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self._timeout),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        client = await self._get_client()
        embeddings: List[List[float]] = []

        for start in range(0, len(texts), self.BATCH_SIZE):
            batch = texts[start : start + self.BATCH_SIZE]
            try:
                response = await client.post("/embeddings", json={"input": batch, "model": self._model})
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"[EMBED] Request to {self._base_url} failed: {e}")
                raise

            # Servers may return items out of order; "index" is authoritative
            items = sorted(response.json()["data"], key=lambda item: item.get("index", 0))
            if len(items) != len(batch):
                raise ValueError(f"Expected {len(batch)} embeddings, got {len(items)}")
            embeddings.extend(item["embedding"] for item in items)

        if self._dimension is None and embeddings:
            self._dimension = len(embeddings[0])
        return embeddings

    async def resolve_dimension(self) -> int:
        if self._dimension is not None:
            return self._dimension
        async with self._probe_lock:
            if self._dimension is None:
                logger.info(f"[EMBED] Probing dimension of {self._model}")
                await self.embed_batch(["dimension probe"])
        return self._dimension

    @property
    def id(self) -> str:
        return f"openai:{self._model}"

    @property
    def model(self) -> str:
        return self._model

    @property
    def vector_dimension(self) -> int:
        return self._dimension or 0
