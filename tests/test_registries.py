"""
Tests for content registries merging static and generated definitions.
"""

import json

import pytest

from worlddirector.core.registries import CharacterRegistry, ItemRegistry, LocationRegistry


def write_generated(root, kind, record):
    directory = root / "generated" / f"{kind}s"
    directory.mkdir(parents=True, exist_ok=True)
    (directory / f"{record['id']}.json").write_text(json.dumps(record))


@pytest.fixture
def dirs(tmp_path):
    static = tmp_path / "static"
    static.mkdir()
    (static / "items.json").write_text(json.dumps([
        {"id": "item_pipe", "name": "Lead Pipe", "short_name": "pipe"},
    ]))
    (static / "locations.json").write_text(json.dumps([
        {"id": "room_start", "name": "Plaza", "coordinates": {"x": 10, "y": 10}},
    ]))
    write_generated(tmp_path, "item", {"id": "item_gen", "name": "Neon Blade", "short_name": "blade"})
    return tmp_path


class TestContentRegistry:
    """Test lookups and reload."""

    def test_merges_static_and_generated(self, dirs):
        items = ItemRegistry(str(dirs / "static"), str(dirs / "generated"))
        assert len(items) == 2
        assert "item_pipe" in items
        assert "item_gen" in items

    def test_lookup_by_name_and_short_name(self, dirs):
        items = ItemRegistry(str(dirs / "static"), str(dirs / "generated"))
        assert items.get("NEON BLADE")["id"] == "item_gen"
        assert items.get("pipe")["id"] == "item_pipe"
        assert items.get("missing") is None

    def test_reload_is_full(self, dirs):
        items = ItemRegistry(str(dirs / "static"), str(dirs / "generated"))
        (dirs / "generated" / "items" / "item_gen.json").unlink()
        assert items.reload() == 1
        assert items.get("neon blade") is None

    def test_reload_is_idempotent(self, dirs):
        items = ItemRegistry(str(dirs / "static"), str(dirs / "generated"))
        assert items.reload() == items.reload() == 2

    def test_update_generated_record(self, dirs):
        items = ItemRegistry(str(dirs / "static"), str(dirs / "generated"))
        updated = items.update("item_gen", {"name": "Dull Blade"})

        assert updated["name"] == "Dull Blade"
        on_disk = json.loads((dirs / "generated" / "items" / "item_gen.json").read_text())
        assert on_disk["name"] == "Dull Blade"

    def test_update_static_record(self, dirs):
        items = ItemRegistry(str(dirs / "static"), str(dirs / "generated"))
        items.update("item_pipe", {"cost": 5})

        static = json.loads((dirs / "static" / "items.json").read_text())
        assert static == [{"id": "item_pipe", "name": "Lead Pipe", "short_name": "pipe", "cost": 5}]

    def test_update_unknown_returns_none(self, dirs):
        items = ItemRegistry(str(dirs / "static"), str(dirs / "generated"))
        assert items.update("nope", {"name": "x"}) is None

    def test_delete(self, dirs):
        items = ItemRegistry(str(dirs / "static"), str(dirs / "generated"))
        assert items.delete("item_gen") is True
        assert not (dirs / "generated" / "items" / "item_gen.json").exists()
        assert items.delete("item_gen") is False

    def test_missing_sources(self, tmp_path):
        characters = CharacterRegistry(str(tmp_path / "static"), str(tmp_path / "generated"))
        assert len(characters) == 0
        assert characters.all() == []


class TestLocationRegistry:
    """Test coordinate indexing."""

    def test_at_coordinates(self, dirs):
        locations = LocationRegistry(str(dirs / "static"), str(dirs / "generated"))
        assert locations.at(10, 10)["id"] == "room_start"
        assert locations.at(0, 0) is None

    def test_remove_in_bounds(self, dirs):
        write_generated(dirs, "location", {"id": "room_far", "name": "Far", "coordinates": {"x": 45, "y": 45}})
        locations = LocationRegistry(str(dirs / "static"), str(dirs / "generated"))

        assert locations.remove_in_bounds(0, 0, 19, 19) == 1
        assert locations.at(10, 10) is None
        assert locations.at(45, 45)["id"] == "room_far"
        assert json.loads((dirs / "static" / "locations.json").read_text()) == []

    def test_remove_in_bounds_with_shared_cell(self, dirs):
        write_generated(dirs, "location", {"id": "room_twin", "name": "Twin", "coordinates": {"x": 10, "y": 10}})
        locations = LocationRegistry(str(dirs / "static"), str(dirs / "generated"))

        assert locations.remove_in_bounds(0, 0, 19, 19) == 2
        assert locations.get("room_start") is None
        assert locations.get("room_twin") is None
        assert not (dirs / "generated" / "locations" / "room_twin.json").exists()
