from __future__ import annotations

import logging

from ..interactions.ingestor import FeedbackIngestor
from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .data_store import load_catalog
from .engine import RecommendationEngine
from .repository import InMemoryRepository, Repository

logger = logging.getLogger(__name__)

_engine: RecommendationEngine | None = None
_ingestor: FeedbackIngestor | None = None


def _default_repository(config: EngineConfig) -> Repository:
    if config.catalog_path.exists():
        return InMemoryRepository(products=load_catalog(config.catalog_path))
    logger.warning("Catalog file %s not found, starting with an empty catalog", config.catalog_path)
    return InMemoryRepository()


def get_engine() -> RecommendationEngine:
    """Return the process-wide engine, seeding its repository on first call."""
    if _engine is None:
        reset_engine()
    return _engine


def get_ingestor() -> FeedbackIngestor:
    if _ingestor is None:
        get_engine()
    return _ingestor


def reset_engine(
    repository: Repository | None = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> RecommendationEngine:
    """Replace the process-wide engine and ingestor, e.g. with a test repository."""
    global _engine, _ingestor
    if _engine is not None:
        _engine.close()
    repo = repository if repository is not None else _default_repository(config)
    _engine = RecommendationEngine(repo, config)
    _ingestor = FeedbackIngestor(repo, _engine.cache)
    return _engine
