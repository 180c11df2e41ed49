"""
Tests for proposal validation against budgets and banned terms.
"""

import pytest

from worlddirector.core.guardrails import GuardrailConfig
from worlddirector.core.proposals import (
    CharacterPayload,
    CharacterStats,
    ContentKind,
    Flavor,
    ItemPayload,
    Proposal,
    QuestPayload,
    QuestRewards,
)
from worlddirector.core.validator import validate


@pytest.fixture
def config():
    return GuardrailConfig(banned_terms=["Megacorp"])


class TestValidator:
    """Test the pure validator."""

    def test_valid_item(self, config):
        proposal = Proposal(kind=ContentKind.ITEM, payload=ItemPayload(
            id="item_1", name="Pipe", short_name="pipe", description="Heavy.",
            type="weapon", cost=50, attributes={"damage": 10},
        ))
        result = validate(proposal, config)
        assert result.valid
        assert result.errors == []

    def test_item_over_budget(self, config):
        proposal = Proposal(kind=ContentKind.ITEM, payload=ItemPayload(
            id="item_1", name="Doom Cannon", short_name="cannon", description="Very loud.",
            type="weapon", cost=20000, attributes={"damage": 999},
        ))
        result = validate(proposal, config)
        assert not result.valid
        assert "Weapon damage 999 exceeds budget of 50" in result.errors
        assert "Item cost 20000 exceeds budget of 10000" in result.errors

    def test_character_stats_over_budget(self, config):
        proposal = Proposal(kind=ContentKind.CHARACTER, payload=CharacterPayload(
            id="npc_1", name="Titan", description="Big.",
            stats=CharacterStats(health=5000, attack=10, defense=5),
        ))
        result = validate(proposal, config)
        assert result.errors == ["Character health 5000 exceeds budget of 1000"]

    def test_quest_rewards_over_budget(self, config):
        proposal = Proposal(kind=ContentKind.QUEST, payload=QuestPayload(
            id="quest_1", title="Heist", description="Rob the vault.", giver_id="npc_1",
            rewards=QuestRewards(gold=501, xp=6000),
        ))
        result = validate(proposal, config)
        assert len(result.errors) == 2

    def test_banned_term_case_insensitive(self, config):
        proposal = Proposal(kind=ContentKind.CHARACTER, payload=CharacterPayload(
            id="npc_1", name="Guard", description="Works for MEGACORP security.",
            dialogue=["Move along."],
        ))
        result = validate(proposal, config)
        assert result.errors == ["Banned term 'Megacorp' found in description"]

    def test_banned_term_in_flavor(self, config):
        proposal = Proposal(
            kind=ContentKind.CHARACTER,
            payload=CharacterPayload(id="npc_1", name="Guard", description="Bored."),
            flavor=Flavor(rationale="Funded by megacorp interests."),
        )
        assert not validate(proposal, config).valid

    def test_validator_does_not_mutate(self, config):
        proposal = Proposal(kind=ContentKind.CHARACTER, payload=CharacterPayload(
            id="npc_1", name="Titan", description="Big.",
            stats=CharacterStats(health=5000),
        ))
        before = proposal.to_dict()
        validate(proposal, config)
        assert proposal.to_dict() == before
