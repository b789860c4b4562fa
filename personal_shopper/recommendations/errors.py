from __future__ import annotations


class RecommendationError(Exception):
    """Base class for every error the recommendation layer defines."""


class InsufficientDataError(RecommendationError):
    """Not enough data for a signal. Always absorbed by a fallback path."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class InvalidPreferenceError(RecommendationError):
    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


class DuplicateInteractionError(RecommendationError):
    reason = "duplicate"

    def __init__(self, idempotency_key: str) -> None:
        super().__init__(f"interaction {idempotency_key!r} already ingested")
        self.idempotency_key = idempotency_key


class TimeoutDegradation(RecommendationError):
    """Collaborative scoring ran past its deadline and was cancelled."""


class CatalogEmptyError(RecommendationError):
    """No available products at all, the only case with an empty result."""


class UnknownEntityError(RecommendationError, LookupError):
    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} {entity_id!r} not found")
        self.kind = kind
        self.entity_id = entity_id
