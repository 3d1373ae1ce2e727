"""嵌入服务

支持多种嵌入服务提供者：
    - OpenAI 兼容 API（OpenAI、DeepSeek、豆包、Ollama 等）
    - 本地 sentence-transformers 模型

不同集合类型可以配置不同的模型（及维度）。
"""

from .base import EmbeddingProvider
from .cache import EmbeddingCache
from .factory import create_embedding_provider
from .service import EmbeddingService

__all__ = ["EmbeddingProvider", "EmbeddingCache", "EmbeddingService", "create_embedding_provider"]
