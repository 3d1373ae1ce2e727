"""
Shared pytest fixtures for the vector store tests.
"""

import pytest

from config.settings import VectorStoreConfig

from tests.fakes import FakeConnector, FakeEmbeddingService


@pytest.fixture
def embedder():
    return FakeEmbeddingService()


@pytest.fixture
def store_config():
    return VectorStoreConfig()


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return str(root)
