"""嵌入服务提供者基类

定义嵌入服务提供者的抽象接口。子类只需实现批量嵌入与模型元数据。
"""
from abc import ABC, abstractmethod
from typing import List


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed multiple texts in one request.

        Args:
            texts: List of texts to embed.

        Returns:
            One embedding vector per input text, in input order.
        """

    async def embed_query(self, text: str) -> List[float]:
        vectors = await self.embed_batch([text])
        if len(vectors) != 1:
            raise ValueError(f"{self.id} returned {len(vectors)} vectors for one text")
        return vectors[0]

    async def resolve_dimension(self) -> int:
        """Width of the vectors this provider produces.

        Providers whose width is only known after loading or probing the model
        override this; the default trusts ``vector_dimension``.
        """
        return self.vector_dimension

    async def close(self) -> None:
        """Release network or model resources."""

    @property
    def provider_name(self) -> str:
        return self.id.split(":", 1)[0]

    @property
    @abstractmethod
    def id(self) -> str:
        """Unique identifier, ``<provider>:<model>``."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model name used for embeddings."""

    @property
    @abstractmethod
    def vector_dimension(self) -> int:
        """Best known dimension of the output vectors."""
