"""嵌入服务

按集合类型路由到对应模型的嵌入提供者，并可选地使用持久化缓存。
"""
from typing import Dict, List, Optional

from .base import EmbeddingProvider
from .cache import EmbeddingCache
from .factory import create_embedding_provider
from config.logging import get_logger
from config.settings import CollectionConfig, EmbeddingConfig


logger = get_logger(__name__)


class EmbeddingService:
    """Embedding collaborator used by the vector store.

    Collection types without a model override share the default provider.
    """

    def __init__(
        self,
        default: EmbeddingProvider,
        providers: Optional[Dict[str, EmbeddingProvider]] = None,
        cache: Optional[EmbeddingCache] = None,
    ):
        self.default = default
        self.providers = providers or {}
        self.cache = cache

    @classmethod
    async def create(
        cls,
        config: EmbeddingConfig,
        collections: Dict[str, CollectionConfig],
    ) -> "EmbeddingService":
        """Build providers for the default model and every overridden model.

        Args:
            config: Embedding configuration.
            collections: Collection type -> configuration with optional ``model``.

        Returns:
            A ready EmbeddingService.
        """
        default = await create_embedding_provider(config)
        by_model: Dict[str, EmbeddingProvider] = {default.model: default}
        providers: Dict[str, EmbeddingProvider] = {}

        for collection_type, collection in collections.items():
            if not collection.model:
                continue
            if collection.model not in by_model:
                by_model[collection.model] = await create_embedding_provider(config, collection.model)
            providers[collection_type] = by_model[collection.model]
            logger.info(f"[EMBED] Collection {collection_type} uses model {collection.model}")

        cache = None
        if config.cache.enabled:
            cache = EmbeddingCache(config.cache.path, config.cache.max_entries)

        logger.info(f"[EMBED] Default embedding provider: {default.id}")
        return cls(default, providers, cache)

    def provider_for(self, collection_type: Optional[str] = None) -> EmbeddingProvider:
        if collection_type is None:
            return self.default
        return self.providers.get(collection_type, self.default)

    async def embed(self, text: str, collection_type: Optional[str] = None) -> List[float]:
        """Embed one text with the model configured for ``collection_type``."""
        provider = self.provider_for(collection_type)

        if self.cache is not None:
            try:
                cached = await self.cache.get(provider.provider_name, provider.model, text)
            except Exception as e:
                logger.warning(f"[EMBED] Cache lookup failed: {e}")
                cached = None
            if cached is not None and len(cached) == await provider.resolve_dimension():
                return cached

        vector = await provider.embed_query(text)

        if self.cache is not None:
            try:
                await self.cache.put(provider.provider_name, provider.model, text, vector)
            except Exception as e:
                logger.warning(f"[EMBED] Cache write failed: {e}")

        return vector

    async def get_dimension(self, collection_type: Optional[str] = None) -> int:
        return await self.provider_for(collection_type).resolve_dimension()

    async def close(self) -> None:
        closed = set()
        for provider in [self.default, *self.providers.values()]:
            if id(provider) in closed:
                continue
            closed.add(id(provider))
            await provider.close()
        if self.cache is not None:
            await self.cache.close()
