"""
Tests for the director command surface: approval workflow, triggers, regions,
definitions, settings and snapshots.
"""

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest

from worlddirector.core.proposals import (
    CharacterPayload,
    CharacterStats,
    ContentKind,
    Proposal,
    ProposalNotFoundError,
    ProposalStatus,
    WorldEventType,
)
from worlddirector.core.world import TAG_CHARACTER, TAG_LOCATION, TAG_STATIONARY, spawn_character
from worlddirector.director import FeatureDisabledError, WorldDirector
from worlddirector.director.lifecycle import ActiveEvent
from worlddirector.generation import GenerationError


@pytest.fixture
def director(tmp_path):
    return WorldDirector(data_dir=str(tmp_path / "data"), snapshot_dir=str(tmp_path / "snapshots"),
                         use_backend=False)


def over_budget_character():
    return Proposal(kind=ContentKind.CHARACTER, payload=CharacterPayload(
        id="npc_titan", name="Titan", description="Far too strong.",
        stats=CharacterStats(health=99999),
    ))


class TestSettings:
    """Test pause state and personality persistence."""

    def test_starts_paused(self, director):
        assert director.get_status()["paused"] is True

    def test_pause_resume_persisted(self, director, tmp_path):
        director.resume()
        on_disk = json.loads((tmp_path / "data" / "director_config.json").read_text())
        assert on_disk["paused"] is False

    def test_personality_partial_update(self, director):
        personality = director.update_personality({"aggression": {"value": 0.7}})
        assert personality.aggression.value == 0.7
        assert personality.aggression.enabled is False
        assert personality.chaos.value == 0.2

    def test_glitch_config_update(self, director):
        glitch = director.update_glitch_config({"mob_count": 2})
        assert glitch.mob_count == 2
        assert glitch.item_count == 5

    def test_guardrail_update_refreshes_backend(self, director):
        director.update_guardrails({"profiles": {"local": {"model": "mistral:7b"}}})
        assert director.backend.profiles["local"].model == "mistral:7b"

    def test_guardrails_masked(self, director):
        director.update_guardrails({"profiles": {"local": {"api_key": "sk-abcdefghijklmnop"}}})
        assert director.get_guardrails()["profiles"]["local"]["api_key"] == "sk-a********mnop"

    def test_logs_and_thoughts_bounded(self, director):
        for i in range(1100):
            director.log("info", f"entry {i}")
        for i in range(150):
            director.think(f"thought {i}")
        assert len(director.logs) == 1000
        assert len(director.thoughts) == 100
        assert director.thoughts[-1]["message"] == "thought 149"

    def test_notifications(self, director):
        listener = MagicMock()
        unsubscribe = director.subscribe_notifications(listener)
        director.broadcast("hello", "info")
        listener.assert_called_with({"type": "broadcast", "data": {"message": "hello", "level": "info"}})

        unsubscribe()
        listener.reset_mock()
        director.think("quiet")
        listener.assert_not_called()


class TestApprovalWorkflow:
    """Test queueing, approval and rejection."""

    def test_manual_character_is_queued(self, director):
        proposal = asyncio.run(director.manual_trigger("character"))
        assert proposal.status == ProposalStatus.DRAFT
        assert director.get_pending() == [proposal]

    def test_approve_publishes(self, director, tmp_path):
        proposal = asyncio.run(director.manual_trigger("item", {"type": "weapon"}))
        approved = asyncio.run(director.approve_proposal(proposal.id))

        assert approved.status == ProposalStatus.PUBLISHED
        assert director.get_pending() == []
        assert director.get_item(proposal.payload.id) is not None
        assert (tmp_path / "data" / "generated" / "items" / f"{proposal.payload.id}.json").exists()

    def test_approve_unknown(self, director):
        with pytest.raises(ProposalNotFoundError):
            asyncio.run(director.approve_proposal("missing"))

    def test_approve_with_errors_stays_queued(self, director):
        proposal = over_budget_character()
        asyncio.run(director.submit_proposal(proposal))

        result = asyncio.run(director.approve_proposal(proposal.id))
        assert result.status == ProposalStatus.DRAFT
        assert result.validation_errors == ["Character health 99999 exceeds budget of 1000"]
        assert director.get_pending() == [proposal]

    def test_edit_then_approve(self, director):
        proposal = over_budget_character()
        asyncio.run(director.submit_proposal(proposal))

        edited = director.edit_proposal(proposal.id, {"stats": {"health": 500, "attack": 10, "defense": 5}})
        assert edited.validation_errors == []
        assert asyncio.run(director.approve_proposal(proposal.id)).status == ProposalStatus.PUBLISHED

    def test_reject(self, director):
        proposal = asyncio.run(director.manual_trigger("quest"))
        assert director.reject_proposal(proposal.id) is True
        assert proposal.status == ProposalStatus.REJECTED
        assert director.get_pending() == []
        assert director.reject_proposal(proposal.id) is False

    def test_auto_approval_publishes_immediately(self, director):
        director.update_guardrails({"features": {"require_human_approval": False}})
        proposal = asyncio.run(director.manual_trigger("quest"))
        assert proposal.status == ProposalStatus.PUBLISHED
        assert director.get_pending() == []

    def test_auto_approval_still_queues_invalid(self, director):
        director.update_guardrails({"features": {"require_human_approval": False}})
        proposal = over_budget_character()
        proposal.validation_errors = ["Character health 99999 exceeds budget of 1000"]
        asyncio.run(director.submit_proposal(proposal))
        assert director.get_pending() == [proposal]

    def test_approving_location_spawns_room_and_vendor(self, director):
        proposal = asyncio.run(director.manual_trigger("location", {"x": 70, "y": 70}))
        asyncio.run(director.approve_proposal(proposal.id))

        rooms = director.world.get_entities_with(TAG_LOCATION)
        assert [r.position for r in rooms] == [(70, 70)]
        vendors = [e for e in director.world.get_entities_with(TAG_CHARACTER) if e.has(TAG_STATIONARY)]
        assert len(vendors) == 1 and vendors[0].position == (70, 70)
        assert director.chunks.is_chunk_generated(3, 3)

    def test_approving_event_starts_it(self, director):
        proposal = asyncio.run(director.manual_trigger("event", {"event_type": "traveling_merchant"}))
        assert isinstance(proposal, Proposal)

        asyncio.run(director.approve_proposal(proposal.id))
        events = director.list_active_events()
        assert len(events) == 1
        assert events[0]["type"] == "traveling_merchant"

    def test_publish_failure_marks_failed(self, director):
        proposal = asyncio.run(director.manual_trigger("item"))
        with patch.object(director.publisher, "publish", side_effect=OSError("disk full")):
            result = asyncio.run(director.approve_proposal(proposal.id))
        assert result.status == ProposalStatus.FAILED
        assert director.get_pending() == []


class TestManualTriggers:
    """Test trigger routing and feature gates."""

    def test_disabled_feature(self, director):
        director.update_guardrails({"features": {"enable_items": False}})
        with pytest.raises(FeatureDisabledError):
            asyncio.run(director.manual_trigger("item"))

    def test_unknown_trigger(self, director):
        with pytest.raises(ValueError):
            asyncio.run(director.manual_trigger("dragon"))

    def test_unknown_event_type(self, director):
        with pytest.raises(ValueError):
            asyncio.run(director.manual_trigger("event", {"event_type": "parade"}))

    def test_generation_times_trimmed_on_generate(self, director):
        director._generation_times.extend([0.0] * 50)
        asyncio.run(director.manual_trigger("quest"))
        assert len(director._generation_times) == 1

    def test_location_on_occupied_spot(self, director):
        director.update_guardrails({"features": {"require_human_approval": False}})
        asyncio.run(director.manual_trigger("location", {"x": 70, "y": 70}))

        with pytest.raises(ValueError, match="occupied"):
            asyncio.run(director.manual_trigger("location", {"x": 70, "y": 70}))
        assert len(director.locations) == 1

    def test_mob_trigger(self, director):
        proposal = asyncio.run(director.manual_trigger("mob"))
        assert proposal.payload.behavior == "aggressive"

    def test_named_event_is_forced(self, director):
        result = asyncio.run(director.manual_trigger("data_courier"))
        assert isinstance(result, ActiveEvent)

    def test_boss_trigger(self, director):
        result = asyncio.run(director.manual_trigger("boss"))
        assert isinstance(result, ActiveEvent)
        assert result.type == WorldEventType.BOSS_SPAWN
        assert any(m.label == "auto:boss_spawn" for m in director.list_snapshots())


class TestRegions:
    """Test chunk generation and deletion through the director."""

    def test_generate_chunk(self, director):
        created = asyncio.run(director.generate_chunk(2, 3))

        assert 1 <= len(created) <= 5
        for location in created:
            assert 40 <= location["coordinates"]["x"] <= 59
            assert 60 <= location["coordinates"]["y"] <= 79
        assert director.chunks.is_chunk_generated(2, 3)
        assert len(director.locations) == len(created)

    def test_generate_existing_chunk_is_noop(self, director):
        assert asyncio.run(director.generate_chunk(0, 0)) == []

    def test_delete_chunk_snapshots_first(self, director):
        asyncio.run(director.generate_chunk(2, 3))
        assert director.delete_chunk(2, 3) is True

        assert not director.chunks.is_chunk_generated(2, 3)
        assert len(director.locations) == 0
        assert director.world.get_entities_with(TAG_LOCATION) == []
        assert any(m.label == "auto:chunk_delete_2_3" for m in director.list_snapshots())

    def test_delete_unknown_chunk(self, director):
        assert director.delete_chunk(8, 8) is False
        assert director.list_snapshots() == []

    def test_get_chunks(self, director):
        chunks = director.get_chunks()
        assert chunks["chunk_size"] == 20
        assert [0, 0] in chunks["generated"]


class TestDefinitions:
    """Test character and item management."""

    def publish_character(self, director):
        director.update_guardrails({"features": {"require_human_approval": False}})
        return asyncio.run(director.manual_trigger("character"))

    def test_update_character(self, director):
        proposal = self.publish_character(director)
        updated = director.update_character(proposal.payload.id, {"name": "Renamed"})
        assert updated["name"] == "Renamed"
        assert director.get_character("renamed")["id"] == proposal.payload.id

    def test_delete_character_removes_instances(self, director):
        proposal = self.publish_character(director)
        definition = director.get_character(proposal.payload.id)
        entity = spawn_character(director.world, definition, 1, 1)

        assert director.delete_character(proposal.payload.id) is True
        assert director.get_character(proposal.payload.id) is None
        assert director.world.get_entity(entity.id) is None
        assert director.delete_character(proposal.payload.id) is False

    def test_delete_item(self, director):
        director.update_guardrails({"features": {"require_human_approval": False}})
        proposal = asyncio.run(director.manual_trigger("item"))
        assert director.delete_item(proposal.payload.id) is True
        assert director.get_item(proposal.payload.id) is None

    def test_spawn_roaming_character(self, director):
        entity = asyncio.run(director.spawn_roaming_character())
        assert entity["position"] == [10, 10]
        assert director.get_character(entity["components"]["definition_id"]) is not None

    def test_regenerate_portrait_without_backend(self, director):
        proposal = self.publish_character(director)
        with pytest.raises(GenerationError):
            asyncio.run(director.regenerate_portrait(proposal.payload.id))

    def test_regenerate_portrait(self, director):
        proposal = self.publish_character(director)
        director.use_backend = True
        generator = director.generators[ContentKind.CHARACTER]
        with patch.object(generator, "generate_portrait", return_value="https://img.example/new.png"):
            updated = asyncio.run(director.regenerate_portrait(proposal.payload.id))
        assert updated["portrait_url"] == "https://img.example/new.png"

    def test_regenerate_portrait_unknown(self, director):
        assert asyncio.run(director.regenerate_portrait("npc_missing")) is None

    def test_glitch_run(self, director):
        director.update_glitch_config({"mob_count": 2, "item_count": 3, "legendary_chance": 1.0})
        result = asyncio.run(director.generate_glitch_run())

        assert len(result["mobs"]) == 2
        assert len(result["items"]) == 3
        assert all(i["name"].startswith("[GLITCH]") and i["rarity"] == "legendary" for i in result["items"])


class TestSnapshots:
    """Test snapshot commands and reload after restore."""

    def test_restore_reloads_state(self, director):
        director.update_guardrails({"budgets": {"max_gold_drop": 42}})
        manifest = director.create_snapshot("baseline")

        director.update_guardrails({"budgets": {"max_gold_drop": 7}})
        director.update_guardrails({"features": {"require_human_approval": False}})
        asyncio.run(director.manual_trigger("item"))
        assert len(director.items) == 1

        director.restore_snapshot(manifest.snapshot_id)

        assert director.config().budgets.max_gold_drop == 42
        assert len(director.items) == 0
        assert any(m.label == "auto:pre_restore" for m in director.list_snapshots())

    def test_auto_snapshot_disabled(self, director):
        director.update_guardrails({"features": {"auto_snapshot_high_risk": False}})
        assert director.maybe_snapshot("boss_spawn") is None
        assert director.list_snapshots() == []

    def test_delete_snapshot(self, director):
        manifest = director.create_snapshot()
        assert director.delete_snapshot(manifest.snapshot_id) is True
        assert director.list_snapshots() == []
