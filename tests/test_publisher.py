"""
Tests for publishing approved proposals as content records.
"""

import json
from unittest.mock import patch

import pytest

from worlddirector.core.proposals import (
    ContentKind,
    Flavor,
    ItemPayload,
    Proposal,
    ProposalStatus,
    WorkflowStateError,
)
from worlddirector.core.publisher import Publisher


@pytest.fixture
def publisher(tmp_path):
    return Publisher(str(tmp_path / "generated"))


@pytest.fixture
def proposal():
    return Proposal(
        kind=ContentKind.ITEM,
        payload=ItemPayload(id="item_abc", name="Neon Blade", short_name="blade", description="Glows."),
        flavor=Flavor(rationale="Needed a blade."),
    )


class TestPublisher:
    """Test publish state rules and record layout."""

    def test_publish_draft_fails_and_writes_nothing(self, publisher, proposal, tmp_path):
        with pytest.raises(WorkflowStateError):
            publisher.publish(proposal)

        assert proposal.status == ProposalStatus.DRAFT
        assert not (tmp_path / "generated").exists()

    def test_publish_writes_record(self, publisher, proposal, tmp_path):
        proposal.approve()
        path = publisher.publish(proposal)

        assert path == tmp_path / "generated" / "items" / "item_abc.json"
        assert proposal.status == ProposalStatus.PUBLISHED

        record = json.loads(path.read_text())
        assert record["name"] == "Neon Blade"
        assert record["_metadata"]["proposal_id"] == proposal.id
        assert record["_metadata"]["seed"] == proposal.seed
        assert record["_metadata"]["flavor"]["rationale"] == "Needed a blade."
        assert record["_metadata"]["published_at"] >= record["_metadata"]["generated_at"]

    def test_second_publish_fails(self, publisher, proposal, tmp_path):
        proposal.approve()
        publisher.publish(proposal)

        with pytest.raises(WorkflowStateError):
            publisher.publish(proposal)
        assert len(list((tmp_path / "generated" / "items").glob("*.json"))) == 1

    def test_write_failure_keeps_status(self, publisher, proposal):
        proposal.approve()
        with patch("builtins.open", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                publisher.publish(proposal)
        assert proposal.status == ProposalStatus.APPROVED

    def test_failed_replace_leaves_no_partial_files(self, publisher, proposal, tmp_path):
        proposal.approve()
        with patch("worlddirector.core.publisher.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                publisher.publish(proposal)

        items_dir = tmp_path / "generated" / "items"
        assert list(items_dir.iterdir()) == []
        assert proposal.status == ProposalStatus.APPROVED

    def test_list_published(self, publisher, proposal):
        proposal.approve()
        publisher.publish(proposal)

        assert [r["id"] for r in publisher.list_published(ContentKind.ITEM)] == ["item_abc"]
        assert publisher.list_published(ContentKind.QUEST) == []
        assert len(publisher.list_published()) == 1
