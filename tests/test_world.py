"""
Tests for the in-memory world model and the domain notification bus.
"""

from unittest.mock import MagicMock

from worlddirector.core.events import EventBus, GameEvent
from worlddirector.core.world import (
    TAG_ACTOR,
    TAG_CHARACTER,
    TAG_EVENT_OWNED,
    TAG_LOCATION,
    InMemoryWorld,
    spawn_character,
    spawn_item,
    spawn_location,
)


class TestInMemoryWorld:
    """Test the four world operations and spawn helpers."""

    def test_spawn_character(self):
        world = InMemoryWorld()
        entity = spawn_character(world, {"id": "npc_1", "name": "Rex", "stats": {"health": 10}}, 3, 4,
                                 {TAG_EVENT_OWNED})

        assert world.get_entity(entity.id) is entity
        assert entity.position == (3, 4)
        assert entity.tags == {TAG_ACTOR, TAG_CHARACTER, TAG_EVENT_OWNED}
        assert entity.components["definition_id"] == "npc_1"
        assert entity.components["stats"] == {"health": 10}

    def test_remove_entity(self):
        world = InMemoryWorld()
        entity = spawn_item(world, {"id": "item_1", "name": "Chip"}, 0, 0)

        assert world.remove_entity(entity.id) is True
        assert world.remove_entity(entity.id) is False
        assert world.get_entity(entity.id) is None

    def test_query_by_tag(self):
        world = InMemoryWorld()
        spawn_location(world, {"id": "room_1", "name": "Alley", "coordinates": {"x": 5, "y": 6}})
        spawn_character(world, {"id": "npc_1", "name": "Rex"}, 5, 6)

        locations = world.get_entities_with(TAG_LOCATION)
        assert len(locations) == 1
        assert locations[0].position == (5, 6)
        assert len(world) == 2

    def test_to_dict(self):
        world = InMemoryWorld()
        entity = spawn_character(world, {"id": "npc_1", "name": "Rex"}, 1, 2)
        data = entity.to_dict()
        assert data["position"] == [1, 2]
        assert data["tags"] == sorted(data["tags"])


class TestEventBus:
    """Test fan-out and handler isolation."""

    def test_emit_delivers(self):
        bus = EventBus()
        handler = MagicMock()
        bus.subscribe(GameEvent.ACTOR_MOVED, handler)

        assert bus.emit(GameEvent.ACTOR_MOVED, {"x": 1, "y": 2}) == 1
        handler.assert_called_once_with({"x": 1, "y": 2})

    def test_failing_handler_is_skipped(self):
        bus = EventBus()
        good = MagicMock()
        bus.subscribe(GameEvent.BROADCAST, MagicMock(side_effect=RuntimeError("boom")))
        bus.subscribe(GameEvent.BROADCAST, good)

        assert bus.emit(GameEvent.BROADCAST, {"message": "hi"}) == 1
        good.assert_called_once()

    def test_unsubscribe(self):
        bus = EventBus()
        handler = MagicMock()
        bus.subscribe("combat_started", handler)
        bus.unsubscribe(GameEvent.COMBAT_STARTED, handler)

        assert bus.emit(GameEvent.COMBAT_STARTED) == 0
        handler.assert_not_called()

    def test_notification_kinds(self):
        assert {e.value for e in GameEvent} == {
            "actor_moved", "combat_started", "world_event_started", "world_event_ended", "broadcast",
        }
