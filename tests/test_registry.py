"""Tests for category and tag registries."""

from datetime import date

import pytest

from projtrack.errors import ConflictError, ValidationError
from projtrack.lifecycle import build_project
from projtrack.manager import ProjectManager
from projtrack.models import DEFAULT_CATEGORY
from projtrack.registry import CategoryRegistry, LabelRegistry, TagRegistry
from projtrack.storage import JsonStorage, MemoryStorage


@pytest.fixture
def storage(clock):
    site = build_project(
        {"title": "Site", "start_date": date(2026, 1, 1),
         "category": "engineering", "tags": ["web", "q2"]},
        clock(),
    )
    site.id = "p1"

    storage = MemoryStorage()
    storage.save_all([
        site,
        build_project(
            {"title": "Ads", "start_date": date(2026, 1, 1),
             "category": "marketing", "tags": ["web"]},
            clock(),
        ),
        build_project({"title": "Misc", "start_date": date(2026, 1, 1)}, clock()),
    ])
    return storage


def test_label_registry_is_abstract(clock):
    with pytest.raises(TypeError):
        LabelRegistry(MemoryStorage(), clock)


class TestCategoryRegistry:
    """Tests for CategoryRegistry."""

    def test_list_includes_default_first_and_names_in_use(self, storage, clock):
        registry = CategoryRegistry(storage, clock)
        assert registry.list() == [DEFAULT_CATEGORY, "engineering", "marketing"]

    def test_list_on_empty_storage(self, clock):
        assert CategoryRegistry(MemoryStorage(), clock).list() == [DEFAULT_CATEGORY]

    def test_add(self, storage, clock):
        registry = CategoryRegistry(storage, clock)

        assert registry.add("research") is True
        assert registry.add("research") is False
        assert "research" in registry.list()
        assert storage.load_labels("categories") == ["research"]

    def test_add_strips_whitespace(self, storage, clock):
        registry = CategoryRegistry(storage, clock)
        registry.add("  ops ")
        assert storage.load_labels("categories") == ["ops"]

    def test_add_default_is_noop(self, storage, clock):
        assert CategoryRegistry(storage, clock).add(DEFAULT_CATEGORY) is False

    def test_add_empty_name(self, storage, clock):
        with pytest.raises(ValidationError):
            CategoryRegistry(storage, clock).add("   ")

    def test_remove_reassigns_projects(self, storage, clock):
        registry = CategoryRegistry(storage, clock)
        before = storage.load_by_id("p1")

        assert registry.remove("engineering") == 1

        after = storage.load_by_id("p1")
        assert after.category == DEFAULT_CATEGORY
        assert after.updated_at > before.updated_at
        assert "engineering" not in registry.list()

    def test_remove_registered_but_unused(self, storage, clock):
        registry = CategoryRegistry(storage, clock)
        registry.add("research")

        assert registry.remove("research") == 0
        assert "research" not in registry.list()

    def test_remove_default_rejected(self, storage, clock):
        with pytest.raises(ValidationError):
            CategoryRegistry(storage, clock).remove(DEFAULT_CATEGORY)

    def test_remove_detects_concurrent_change(self, storage, clock):
        registry = CategoryRegistry(storage, clock)
        original_load_all = storage.load_all

        def load_then_race():
            projects = original_load_all()
            racer = storage.load_by_id("p1")
            racer.title = "Changed elsewhere"
            racer.updated_at = clock()
            storage.save(racer)
            return projects

        storage.load_all = load_then_race
        with pytest.raises(ConflictError):
            registry.remove("engineering")

        assert storage.load_by_id("p1").category == "engineering"

    def test_remove_keeps_projects_created_meanwhile(self, temp_storage, clock):
        """A project saved by another writer during remove() survives it."""
        writer = ProjectManager(JsonStorage(temp_storage), clock=clock)
        writer.create_project({"title": "A", "start_date": "2026-01-01", "category": "ops"})

        class RacingStorage(JsonStorage):
            def load_all(self):
                projects = super().load_all()
                writer.create_project({"title": "B", "start_date": "2026-01-01"})
                return projects

        registry = CategoryRegistry(RacingStorage(temp_storage), clock)
        assert registry.remove("ops") == 1

        stored = {p.title: p for p in JsonStorage(temp_storage).load_all()}
        assert sorted(stored) == ["A", "B"]
        assert stored["A"].category == DEFAULT_CATEGORY


class TestTagRegistry:
    def test_list_sorted_union(self, storage, clock):
        registry = TagRegistry(storage, clock)
        registry.add("backlog")
        assert registry.list() == ["backlog", "q2", "web"]

    def test_remove_strips_from_every_project(self, storage, clock):
        registry = TagRegistry(storage, clock)

        assert registry.remove("web") == 2
        assert all("web" not in p.tags for p in storage.load_all())
        assert storage.load_by_id("p1").tags == ["q2"]

    def test_remove_unknown_tag_changes_nothing(self, storage, clock):
        before = storage.load_all()
        assert TagRegistry(storage, clock).remove("nope") == 0
        assert storage.load_all() == before

    def test_conflict_leaves_tag_registered(self, temp_storage, clock):
        manager = ProjectManager(JsonStorage(temp_storage), clock=clock)
        project = manager.create_project(
            {"title": "Tagged", "start_date": "2026-01-01", "tags": ["x"]}
        )
        manager.add_tag("x")

        class RacingStorage(JsonStorage):
            def load_all(self):
                projects = super().load_all()
                manager.update_project(project.id, {"title": "Edited elsewhere"})
                return projects

        with pytest.raises(ConflictError):
            TagRegistry(RacingStorage(temp_storage), clock).remove("x")

        storage = JsonStorage(temp_storage)
        assert storage.load_labels("tags") == ["x"]
        assert storage.load_by_id(project.id).tags == ["x"]

    def test_persists_with_json_storage(self, temp_storage, clock):
        storage = JsonStorage(temp_storage)
        TagRegistry(storage, clock).add("infra")

        assert TagRegistry(JsonStorage(temp_storage), clock).list() == ["infra"]
