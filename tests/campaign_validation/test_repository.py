"""Tests for campaign_validation.repository module."""

from __future__ import annotations

import pytest

from campaign_validation.repository import (
    STATUS_ACTIVE,
    STATUS_PENDING_REVIEW,
    EntityRepository,
    InMemoryEntityRepository,
)


class TestInMemoryEntityRepository:
    """Tests for InMemoryEntityRepository."""

    def test_satisfies_protocol(self):
        """Test the in-memory store is an EntityRepository."""
        assert isinstance(InMemoryEntityRepository(), EntityRepository)

    def test_seed_and_find(self):
        """Test lookups are case-insensitive and trimmed."""
        repository = InMemoryEntityRepository()
        entity = repository.seed("campaign", " Disney ")
        assert entity.id == "campaign-1"
        assert entity.status == STATUS_ACTIVE
        assert repository.find_by_name_ci("campaign", "DISNEY  ") == entity
        assert repository.find_by_name_ci("range", "Disney") is None
        assert repository.create_calls == 0

    def test_archived_hidden(self):
        """Test archived entities are invisible to lookups."""
        repository = InMemoryEntityRepository()
        repository.seed("range", "Lip", archived=True)
        repository.seed("range", "Deo")
        repository.archive("range", "deo")
        assert repository.find_by_name_ci("range", "Lip") is None
        assert repository.find_by_name_ci("range", "Deo") is None
        assert len(repository.all("range")) == 2

    def test_create(self):
        """Test create stores every attribute."""
        repository = InMemoryEntityRepository()
        entity = repository.create(
            "campaign",
            name="Summer Glow",
            status=STATUS_PENDING_REVIEW,
            created_by="import_auto",
            original_name="Summer Glow",
            notes="Auto-created during import",
        )
        assert repository.create_calls == 1
        assert repository.find_by_name_ci("campaign", "summer glow") == entity
        assert entity.to_dict()["status"] == "pending_review"

    def test_create_failure(self):
        """Test fail_with makes create raise and still counts the call."""
        repository = InMemoryEntityRepository(fail_with=TimeoutError("slow"))
        with pytest.raises(TimeoutError):
            repository.create(
                "campaign",
                name="X",
                status=STATUS_PENDING_REVIEW,
                created_by="import_auto",
                original_name="X",
                notes="",
            )
        assert repository.create_calls == 1
        assert repository.all() == []

    def test_close(self):
        """Test close marks the store closed."""
        repository = InMemoryEntityRepository()
        repository.close()
        assert repository.closed
