"""嵌入服务提供者工厂

根据配置创建相应的嵌入服务提供者实例。
"""
import os
from typing import Optional

from .base import EmbeddingProvider
from config.logging import get_logger
from config.settings import EmbeddingConfig

logger = get_logger(__name__)


async def create_embedding_provider(config: EmbeddingConfig, model: Optional[str] = None) -> EmbeddingProvider:
    """Create an embedding provider based on configuration.

    Provider selection for "auto": a configured remote API key selects
    "openai", otherwise the local sentence-transformers model is used.

    Args:
        config: Embedding configuration.
        model: Optional model name overriding ``config.model``.

    Returns:
        An EmbeddingProvider instance.

    Raises:
        ValueError: If the provider is unknown or lacks credentials.
    """
    from .local_client import LocalEmbeddingClient
    from .openai_client import OpenAIEmbeddingClient

    provider = config.provider.lower()

    if provider == "auto":
        has_key = bool((config.remote and config.remote.api_key) or os.environ.get("OPENAI_API_KEY"))
        provider = "openai" if has_key else "local"
        logger.info(f"[EMBED] Auto-detected provider: {provider}")

    if provider == "openai":
        return await OpenAIEmbeddingClient.create(config, model)
    elif provider == "local":
        return await LocalEmbeddingClient.create(config, model)
    else:
        raise ValueError(f"Unknown embedding provider: {provider}")
