from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass

from ..analytics.store import record_event
from ..recommendations.cache import ResponseCache
from ..recommendations.errors import DuplicateInteractionError, UnknownEntityError
from ..recommendations.models import Interaction
from ..recommendations.repository import Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    accepted: bool
    error: DuplicateInteractionError | None = None

    @property
    def reason(self) -> str | None:
        return self.error.reason if self.error else None


class FeedbackIngestor:
    """Appends interaction events to the log, at most once per idempotency key.

    Ingestion for one user is serialised through that user's lock; different
    users never contend. A user's lock lives only while some ingest holds it.
    Profiles are not touched here, they are rebuilt from the log on the next
    recommendation request.
    """

    def __init__(self, repository: Repository, cache: ResponseCache | None = None) -> None:
        self.repository = repository
        self.cache = cache
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    def ingest(self, interaction: Interaction) -> IngestResult:
        if self.repository.get_user(interaction.user_id) is None:
            raise UnknownEntityError("user", interaction.user_id)
        if self.repository.get_product(interaction.product_id) is None:
            raise UnknownEntityError("product", interaction.product_id)

        # append_interaction stays the authority for keys racing past this check
        if self.repository.has_interaction_key(interaction.idempotency_key):
            appended = False
        else:
            with self._user_lock(interaction.user_id):
                appended = self.repository.append_interaction(interaction)

        if not appended:
            logger.info("Duplicate interaction %s for user %s", interaction.idempotency_key, interaction.user_id)
            result = IngestResult(accepted=False, error=DuplicateInteractionError(interaction.idempotency_key))
        else:
            if self.cache is not None:
                self.cache.invalidate_user(interaction.user_id)
            result = IngestResult(accepted=True)

        record_event("interaction", {
            "user_id": interaction.user_id,
            "product_id": interaction.product_id,
            "interaction_type": interaction.type.value,
            "accepted": result.accepted,
        })
        return result
