from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

_BUNDLED_CATALOG = Path(__file__).resolve().parent.parent / "data" / "catalog.csv"


def _default_type_weights() -> dict[str, float]:
    return {"purchase": 1.0, "like": 0.8, "view": 0.3, "dismiss": -0.5}


@dataclass(frozen=True)
class EngineConfig:
    half_life_days: float = float(os.getenv("RECS_HALF_LIFE_DAYS", "30"))
    explicit_weight: float = 1.0
    type_weights: dict[str, float] = field(default_factory=_default_type_weights)
    price_bucket_edges: tuple[float, ...] = (25, 50, 100, 250, 500, 1000, 2500, 5000)

    alpha_min: float = 0.1
    alpha_max: float = 0.9
    alpha_scale: float = 10.0

    diversity_divisor: int = 3
    candidate_pool_factor: int = 2
    max_neighbors: int = 50

    collaborative_timeout_ms: float = float(os.getenv("RECS_COLLAB_TIMEOUT_MS", "250"))
    max_workers: int = int(os.getenv("RECS_MAX_WORKERS", "4"))
    cache_ttl_seconds: float = float(os.getenv("RECS_CACHE_TTL_SECONDS", "300"))

    default_count: int = 10
    max_count: int = 100
    catalog_path: Path = Path(os.getenv("RECS_CATALOG_PATH", str(_BUNDLED_CATALOG)))

    def __post_init__(self) -> None:
        if not 0.0 <= self.alpha_min <= self.alpha_max <= 1.0:
            raise ValueError("alpha bounds must satisfy 0 <= alpha_min <= alpha_max <= 1")
        if self.half_life_days <= 0:
            raise ValueError("half_life_days must be positive")

    @property
    def half_life_seconds(self) -> float:
        return self.half_life_days * 86400.0


DEFAULT_ENGINE_CONFIG = EngineConfig()
