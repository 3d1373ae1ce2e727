"""本地嵌入客户端

使用 sentence-transformers 模型在本地生成文本嵌入向量。
"""
import asyncio
from pathlib import Path
from typing import List, Optional

from .base import EmbeddingProvider
from config.logging import get_logger
from config.settings import EmbeddingConfig


logger = get_logger(__name__)


DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

MODEL_DIMENSIONS = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "sentence-transformers/all-mpnet-base-v2": 768,
    "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2": 384,
    "BAAI/bge-small-en-v1.5": 384,
}


class LocalEmbeddingClient(EmbeddingProvider):
    """Offline embedding client backed by sentence-transformers.

    The model is loaded lazily on the first embed or dimension request, in a
    worker thread so the event loop keeps running.
    """

    def __init__(self, model: str = DEFAULT_MODEL, cache_dir: Optional[str] = None, device: str = "cpu"):
        self._model_name = model
        self._cache_dir = cache_dir
        self._device = device

        self._dimension = MODEL_DIMENSIONS.get(model, 0)
        self._model = None
        self._load_lock = asyncio.Lock()

    @classmethod
    async def create(cls, config: EmbeddingConfig, model: Optional[str] = None) -> "LocalEmbeddingClient":
        model_name = model or config.model or DEFAULT_MODEL

        if config.local.model_path and not model:
            model_path = Path(config.local.model_path).expanduser()
            if model_path.exists():
                model_name = str(model_path)
            else:
                logger.warning(f"[EMBED] Model path not found: {model_path}, using {model_name}")

        cache_dir = None
        if config.local.model_cache_dir:
            cache_dir = str(Path(config.local.model_cache_dir).expanduser())

        return cls(model=model_name, cache_dir=cache_dir, device=config.local.device)

    def _load_model_sync(self):
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise ImportError(
                "sentence-transformers is not installed. "
                "Install it with: pip install 'workspace-vectors[local]'"
            )

        logger.info(f"[EMBED] Loading model: {self._model_name}")
        model = SentenceTransformer(self._model_name, cache_folder=self._cache_dir, device=self._device)
        self._dimension = model.get_sentence_embedding_dimension()
        logger.info(f"[EMBED] Model loaded, dimension: {self._dimension}")
        return model

    async def _ensure_model(self):
        if self._model is not None:
            return self._model
        async with self._load_lock:
            if self._model is None:
                loop = asyncio.get_running_loop()
                self._model = await loop.run_in_executor(None, self._load_model_sync)
        return self._model

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        model = await self._ensure_model()
        loop = asyncio.get_running_loop()
        embeddings = await loop.run_in_executor(None, model.encode, texts)
        return embeddings.tolist()

    async def resolve_dimension(self) -> int:
        await self._ensure_model()
        return self._dimension

    @property
    def id(self) -> str:
        return f"local:{self._model_name}"

    @property
    def model(self) -> str:
        return self._model_name

    @property
    def vector_dimension(self) -> int:
        return self._dimension
