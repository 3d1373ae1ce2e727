"""配置管理

从 config/vectors.yaml 加载配置，支持按工作区隔离的向量存储。
"""
import yaml
from pathlib import Path
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = ""
    slow_request_threshold: float = 5.0


# ============================================================================
# Embedding Configuration
# ============================================================================

class RemoteEmbeddingConfig(BaseModel):
    """Remote embedding API configuration."""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = 60.0


class LocalEmbeddingConfig(BaseModel):
    """Local embedding model configuration."""
    model_path: str = ""
    model_cache_dir: str = ""
    device: str = "cpu"


class EmbeddingCacheConfig(BaseModel):
    """Embedding cache configuration."""
    enabled: bool = True
    path: str = "~/.hifide/embedding_cache.sqlite"
    max_entries: int = 10000


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""
    provider: str = "local"  # "openai", "local"
    model: str = ""

    remote: Optional[RemoteEmbeddingConfig] = None
    local: LocalEmbeddingConfig = Field(default_factory=LocalEmbeddingConfig)
    cache: EmbeddingCacheConfig = Field(default_factory=EmbeddingCacheConfig)


# ============================================================================
# Vector Store Configuration
# ============================================================================

class CollectionConfig(BaseModel):
    """One collection type: its physical base name and embedding model."""
    table: str
    searchable: bool = True
    model: Optional[str] = None  # Overrides EmbeddingConfig.model for this type


def _default_collections() -> Dict[str, CollectionConfig]:
    return {
        "code": CollectionConfig(table="code_vectors"),
        "kb": CollectionConfig(table="kb_vectors"),
        "memories": CollectionConfig(table="memory_vectors"),
        "tools": CollectionConfig(table="tools_vectors", searchable=False),
    }


class IndexConfig(BaseModel):
    """ANN index configuration."""
    min_rows: int = 256
    num_partitions: int = 2
    num_sub_vectors: int = 2
    distance_type: str = "cosine"
    # Partitions scanned per query and exact re-ranking multiplier once indexed
    nprobes: int = 20
    refine_factor: int = 10


class VectorStoreConfig(BaseModel):
    """Per-workspace vector store configuration."""
    private_dir: str = ".hifide-private/vectors"
    default_limit: int = 10
    collections: Dict[str, CollectionConfig] = Field(default_factory=_default_collections)
    index: IndexConfig = Field(default_factory=IndexConfig)

    @property
    def collection_types(self) -> List[str]:
        return list(self.collections.keys())

    @property
    def searchable_types(self) -> List[str]:
        return [name for name, c in self.collections.items() if c.searchable]


class Settings(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)

    @classmethod
    def from_yaml(cls, path: str = "config/vectors.yaml") -> "Settings":
        config_path = Path(path)
        if not config_path.exists():
            return cls()

        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        vector_data = dict(data.get("vector_store", {}))
        if "collections" in vector_data:
            vector_data["collections"] = {
                name: CollectionConfig(**col)
                for name, col in (vector_data["collections"] or {}).items()
            }

        return cls(
            server=ServerConfig(**data.get("server", {})),
            logging=LoggingConfig(**data.get("logging", {})),
            embedding=EmbeddingConfig(**data.get("embedding", {})),
            vector_store=VectorStoreConfig(**vector_data),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_yaml()
    return _settings


def reload_settings(config_path: str = "config/vectors.yaml") -> Settings:
    global _settings
    _settings = Settings.from_yaml(config_path)
    return _settings
