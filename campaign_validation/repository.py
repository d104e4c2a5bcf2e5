"""Entity store abstraction used by auto-create mode.

The validator never talks to a database client directly: it receives an
``EntityRepository`` at construction. ``InMemoryEntityRepository`` is the
reference implementation, used by tests and by callers validating against a
file-based snapshot.

Example:
    >>> repo = InMemoryEntityRepository()
    >>> repo.seed("range", "Lip")
    >>> repo.find_by_name_ci("range", "  LIP ").name
    'Lip'
"""

from __future__ import annotations

import dataclasses
import itertools
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from campaign_validation.parsing import normalize


STATUS_ACTIVE = "active"
STATUS_PENDING_REVIEW = "pending_review"


@dataclass(frozen=True, slots=True)
class StoredEntity:
    """An entity as persisted in the store.

    Attributes:
        id: Store identifier.
        kind: Entity kind ('campaign', 'range', ...).
        name: Display name.
        status: Lifecycle status ('active', 'pending_review', ...).
        archived: Archived entities are invisible to lookups.
        created_by: Creator tag.
        original_name: Name as it appeared in the source file.
        notes: Free-text provenance.
        created_at: Creation timestamp.
    """

    id: str
    kind: str
    name: str
    status: str = STATUS_ACTIVE
    archived: bool = False
    created_by: str | None = None
    original_name: str | None = None
    notes: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "status": self.status,
            "archived": self.archived,
            "createdBy": self.created_by,
            "originalName": self.original_name,
            "notes": self.notes,
            "createdAt": self.created_at.isoformat(),
        }


@runtime_checkable
class EntityRepository(Protocol):
    """Persisted entity store.

    Implementations may block on I/O. Errors they raise propagate to the
    caller of the auto-create methods, wrapped in ``EntityCreationError``.
    """

    def find_by_name_ci(self, kind: str, name: str) -> StoredEntity | None:
        """Find a non-archived entity by case-insensitive, trimmed name."""
        ...

    def create(
        self,
        kind: str,
        *,
        name: str,
        status: str,
        created_by: str,
        original_name: str,
        notes: str,
    ) -> StoredEntity:
        """Insert a new entity and return it."""
        ...

    def close(self) -> None:
        """Release any connection held by the store."""
        ...


class InMemoryEntityRepository:
    """Thread-safe, process-local EntityRepository.

    Attributes:
        create_calls: Number of ``create`` invocations, successful or not.
        closed: Whether ``close`` was called.
    """

    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self._entities: dict[tuple[str, str], StoredEntity] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._fail_with = fail_with
        self.create_calls = 0
        self.closed = False

    def seed(
        self,
        kind: str,
        name: str,
        *,
        status: str = STATUS_ACTIVE,
        archived: bool = False,
    ) -> StoredEntity:
        """Insert an entity directly, bypassing ``create`` accounting."""
        with self._lock:
            entity = StoredEntity(
                id=f"{kind}-{next(self._ids)}",
                kind=kind,
                name=name.strip(),
                status=status,
                archived=archived,
            )
            self._entities[(kind, normalize(name))] = entity
            return entity

    def archive(self, kind: str, name: str) -> None:
        with self._lock:
            key = (kind, normalize(name))
            entity = self._entities.get(key)
            if entity is not None:
                self._entities[key] = dataclasses.replace(entity, archived=True)

    def all(self, kind: str | None = None) -> list[StoredEntity]:
        with self._lock:
            return [e for e in self._entities.values() if kind is None or e.kind == kind]

    def find_by_name_ci(self, kind: str, name: str) -> StoredEntity | None:
        with self._lock:
            entity = self._entities.get((kind, normalize(name)))
        if entity is None or entity.archived:
            return None
        return entity

    def create(
        self,
        kind: str,
        *,
        name: str,
        status: str,
        created_by: str,
        original_name: str,
        notes: str,
    ) -> StoredEntity:
        with self._lock:
            self.create_calls += 1
            if self._fail_with is not None:
                raise self._fail_with
            entity = StoredEntity(
                id=f"{kind}-{next(self._ids)}",
                kind=kind,
                name=name,
                status=status,
                created_by=created_by,
                original_name=original_name,
                notes=notes,
            )
            self._entities[(kind, normalize(name))] = entity
            return entity

    def close(self) -> None:
        self.closed = True
