from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime

from .models import Interaction, Product, User, as_utc


class Repository(ABC):
    """Storage the engine reads from and the ingestor appends to."""

    @abstractmethod
    def get_user(self, user_id: str) -> User | None: ...

    @abstractmethod
    def save_user(self, user: User) -> None: ...

    @abstractmethod
    def get_product(self, product_id: str) -> Product | None: ...

    @abstractmethod
    def get_catalog(self, available_only: bool = True) -> list[Product]: ...

    @abstractmethod
    def add_product(self, product: Product) -> None: ...

    @abstractmethod
    def get_interactions(
        self, user_id: str | None = None, since: datetime | None = None,
    ) -> list[Interaction]: ...

    @property
    @abstractmethod
    def revision(self) -> int:
        """Counter bumped by every write; equal revisions mean identical data."""

    @abstractmethod
    def has_interaction_key(self, idempotency_key: str) -> bool: ...

    @abstractmethod
    def append_interaction(self, interaction: Interaction) -> bool:
        """Append unless the idempotency key is known. Returns True if appended."""


class InMemoryRepository(Repository):
    """Dict/list backed store. Reads return snapshots, writes hold a short lock."""

    def __init__(
        self,
        products: list[Product] | None = None,
        users: list[User] | None = None,
        interactions: list[Interaction] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._users: dict[str, User] = {}
        self._products: dict[str, Product] = {}
        self._log: list[Interaction] = []
        self._by_user: dict[str, list[Interaction]] = defaultdict(list)
        self._keys: set[str] = set()
        self._revision = 0

        for product in products or []:
            self.add_product(product)
        for user in users or []:
            self.save_user(user)
        for interaction in interactions or []:
            self.append_interaction(interaction)

    @property
    def revision(self) -> int:
        return self._revision

    def get_user(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    def save_user(self, user: User) -> None:
        with self._lock:
            self._users[user.id] = user
            self._revision += 1

    def get_product(self, product_id: str) -> Product | None:
        return self._products.get(product_id)

    def get_catalog(self, available_only: bool = True) -> list[Product]:
        with self._lock:
            products = list(self._products.values())
        if available_only:
            products = [p for p in products if p.available]
        return sorted(products, key=lambda p: p.id)

    def add_product(self, product: Product) -> None:
        with self._lock:
            self._products[product.id] = product
            self._revision += 1

    def get_interactions(
        self, user_id: str | None = None, since: datetime | None = None,
    ) -> list[Interaction]:
        with self._lock:
            if user_id is None:
                records = list(self._log)
            else:
                records = list(self._by_user.get(user_id, ()))
        if since is not None:
            cutoff = as_utc(since)
            records = [i for i in records if i.timestamp >= cutoff]
        return records

    def has_interaction_key(self, idempotency_key: str) -> bool:
        return idempotency_key in self._keys

    def append_interaction(self, interaction: Interaction) -> bool:
        with self._lock:
            if interaction.idempotency_key in self._keys:
                return False
            self._keys.add(interaction.idempotency_key)
            self._log.append(interaction)
            self._by_user[interaction.user_id].append(interaction)
            self._revision += 1
        return True
