from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InteractionType(str, Enum):
    view = "view"
    like = "like"
    purchase = "purchase"
    dismiss = "dismiss"


class Signal(str, Enum):
    NO_CONFIDENCE = "no-confidence"


NO_CONFIDENCE = Signal.NO_CONFIDENCE


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def make_idempotency_key(
    user_id: str, product_id: str, interaction_type: str, timestamp: datetime,
) -> str:
    raw = f"{user_id}|{product_id}|{interaction_type}|{as_utc(timestamp).isoformat()}"
    return hashlib.sha256(raw.encode()).hexdigest()[:16]


# ── Catalog / users ──────────────────────────────────────────────────────


class PriceRange(ApiModel):
    min: float
    max: float


class PreferenceSet(ApiModel):
    categories: list[str] = Field(default_factory=list)
    price_range: PriceRange | None = None
    brands: list[str] = Field(default_factory=list)
    style_tags: list[str] = Field(default_factory=list)


class User(ApiModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    preferences: PreferenceSet = Field(default_factory=PreferenceSet)


class Product(ApiModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = ""
    category: str
    brand: str
    price: float = Field(..., ge=0.0)
    style_tags: tuple[str, ...] = ()
    available: bool = True


# ── Interactions ─────────────────────────────────────────────────────────


class Interaction(ApiModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    product_id: str
    type: InteractionType
    timestamp: datetime
    idempotency_key: str

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class InteractionEvent(ApiModel):
    user_id: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)
    type: InteractionType
    timestamp: datetime
    idempotency_key: str | None = Field(default=None, min_length=1)

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    def to_interaction(self) -> Interaction:
        key = self.idempotency_key or make_idempotency_key(
            self.user_id, self.product_id, self.type.value, self.timestamp,
        )
        return Interaction(
            user_id=self.user_id,
            product_id=self.product_id,
            type=self.type,
            timestamp=self.timestamp,
            idempotency_key=key,
        )


class IngestResponse(ApiModel):
    accepted: bool
    reason: str | None = None


# ── Recommendations ──────────────────────────────────────────────────────


class ScoredCandidate(ApiModel):
    product_id: str
    category: str = ""
    brand: str = ""
    price: float | None = None
    content_score: float = Field(..., ge=0.0, le=1.0)
    collaborative_score: float | Signal = NO_CONFIDENCE
    combined_score: float = Field(..., ge=0.0, le=1.0)
    confidence: str = "low"
    reasons: list[str] = Field(default_factory=list)


class RecommendationResponse(ApiModel):
    data: list[ScoredCandidate]
    degraded: bool
    fallbacks: list[str] = Field(default_factory=list)
    as_of: datetime | None = None


class PreferencesResponse(ApiModel):
    accepted: bool


class InteractionHistoryResponse(ApiModel):
    data: list[Interaction] = Field(default_factory=list)
