"""
Tests for the director admin API.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from worlddirector.api import main
from worlddirector.director import WorldDirector


@pytest.fixture
def director(tmp_path):
    return WorldDirector(data_dir=str(tmp_path / "data"), snapshot_dir=str(tmp_path / "snapshots"),
                         use_backend=False)


@pytest.fixture
def client(director, monkeypatch):
    monkeypatch.setattr(main, "director", director)
    return TestClient(main.app)


class TestServiceEndpoints:
    """Test health, status and director controls."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] in ("healthy", "degraded")
        assert data["paused"] is True
        assert data["backend"] is None

    def test_health_reports_unreachable_backend(self, client, director):
        director.use_backend = True
        unreachable = {"healthy": False, "profile": "local", "reason": "connection refused"}
        with patch.object(director.backend, "health_check", AsyncMock(return_value=unreachable)):
            data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert "Generation backend unreachable: connection refused" in data["config_issues"]

    def test_pause_resume(self, client, director):
        assert client.post("/director/resume").json() == {"paused": False}
        assert director.settings.paused is False
        assert client.post("/director/pause").json() == {"paused": True}
        assert client.get("/status").json()["paused"] is True

    def test_personality_update(self, client):
        response = client.put("/director/personality", json={"chaos": {"value": 0.9}})
        assert response.status_code == 200
        assert response.json()["chaos"] == {"value": 0.9, "enabled": True}

    def test_personality_out_of_range(self, client):
        response = client.put("/director/personality", json={"chaos": {"value": 1.5}})
        assert response.status_code == 422

    def test_glitch_config(self, client):
        response = client.put("/director/glitch", json={"item_count": 1})
        assert response.json()["item_count"] == 1


class TestGuardrailEndpoints:
    """Test guardrail read and update."""

    def test_secrets_masked(self, client):
        client.put("/guardrails", json={"profiles": {"local": {"api_key": "sk-abcdefghijklmnop"}}})
        data = client.get("/guardrails").json()
        assert data["profiles"]["local"]["api_key"] == "sk-a********mnop"

    def test_masked_echo_keeps_secret(self, client, director):
        client.put("/guardrails", json={"profiles": {"local": {"api_key": "sk-abcdefghijklmnop"}}})
        client.put("/guardrails", json={"profiles": {"local": {"api_key": "sk-a********mnop"}}})
        assert director.config().profiles["local"].api_key == "sk-abcdefghijklmnop"

    def test_invalid_update(self, client):
        response = client.put("/guardrails", json={"budgets": {"max_weapon_damage": -5}})
        assert response.status_code == 400


class TestProposalEndpoints:
    """Test trigger, list, approve and reject."""

    def test_trigger_then_approve(self, client):
        response = client.post("/trigger", json={"kind": "Item"})
        assert response.status_code == 200
        body = response.json()
        assert body["result_type"] == "proposal"
        proposal_id = body["result"]["id"]

        listed = client.get("/proposals").json()
        assert listed["total_count"] == 1

        approved = client.post(f"/proposals/{proposal_id}/approve")
        assert approved.status_code == 200
        assert approved.json()["status"] == "published"
        assert client.get("/proposals").json()["total_count"] == 0

        item_id = approved.json()["payload"]["id"]
        assert client.get(f"/items/{item_id}").status_code == 200

    def test_reject(self, client):
        proposal_id = client.post("/trigger", json={"kind": "quest"}).json()["result"]["id"]
        assert client.post(f"/proposals/{proposal_id}/reject", json={"reason": "dull"}).status_code == 200
        assert client.post(f"/proposals/{proposal_id}/reject").status_code == 404

    def test_unknown_proposal(self, client):
        assert client.post("/proposals/missing/approve").status_code == 404
        assert client.put("/proposals/missing", json={"payload": {}}).status_code == 404

    def test_trigger_disabled_feature(self, client):
        client.put("/guardrails", json={"features": {"enable_quests": False}})
        assert client.post("/trigger", json={"kind": "quest"}).status_code == 403

    def test_trigger_unknown_kind(self, client):
        assert client.post("/trigger", json={"kind": "dragon"}).status_code == 400

    def test_trigger_named_event(self, client):
        body = client.post("/trigger", json={"kind": "traveling_merchant"}).json()
        assert body["result_type"] == "event"

        events = client.get("/events").json()
        assert events["total_count"] == 1
        event_id = events["events"][0]["id"]
        assert client.delete(f"/events/{event_id}").status_code == 200
        assert client.delete(f"/events/{event_id}").status_code == 404


class TestRegionAndDefinitionEndpoints:
    """Test chunks, characters and items."""

    def test_chunks(self, client):
        assert client.get("/chunks").json()["generated"] == [[0, 0]]

        generated = client.post("/chunks/1/1").json()
        assert generated["cx"] == 1 and generated["locations"]
        assert [1, 1] in client.get("/chunks").json()["generated"]

        assert client.delete("/chunks/1/1").status_code == 200
        assert client.delete("/chunks/1/1").status_code == 404

    def test_character_not_found(self, client):
        assert client.get("/characters/npc_missing").status_code == 404
        assert client.put("/characters/npc_missing", json={"changes": {"name": "x"}}).status_code == 404
        assert client.delete("/characters/npc_missing").status_code == 404

    def test_roaming_character(self, client):
        entity = client.post("/characters/roaming").json()
        definition_id = entity["components"]["definition_id"]

        renamed = client.put(f"/characters/{definition_id}", json={"changes": {"name": "Ghost"}})
        assert renamed.json()["name"] == "Ghost"
        assert len(client.get("/characters").json()) == 1

    def test_portrait_without_backend(self, client):
        definition_id = client.post("/characters/roaming").json()["components"]["definition_id"]
        assert client.post(f"/characters/{definition_id}/portrait").status_code == 503


class TestSnapshotEndpoints:
    """Test snapshot create, list, restore and delete."""

    def test_lifecycle(self, client):
        created = client.post("/snapshots", json={"label": "nightly"}).json()
        snapshot_id = created["snapshot_id"]

        listed = client.get("/snapshots").json()
        assert listed["snapshots"][0]["label"] == "nightly"

        assert client.post(f"/snapshots/{snapshot_id}/restore").status_code == 200
        assert client.delete(f"/snapshots/{snapshot_id}").status_code == 200
        assert client.delete(f"/snapshots/{snapshot_id}").status_code == 404

    def test_restore_unknown(self, client):
        response = client.post("/snapshots/snapshot_20240101_000000_deadbeef/restore")
        assert response.status_code == 404

    def test_restore_invalid_id(self, client):
        assert client.post("/snapshots/not-a-snapshot/restore").status_code == 400
