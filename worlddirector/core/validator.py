"""
Proposal validator - budget ceilings and banned-term checks. Pure: never mutates the proposal.
"""

from dataclasses import dataclass, field
from typing import List

from .guardrails import GuardrailConfig
from .proposals import (
    CharacterPayload,
    ItemPayload,
    Proposal,
    QuestPayload,
)


@dataclass
class ValidationResult:
    """Result of validating a proposal against guardrails."""
    valid: bool
    errors: List[str] = field(default_factory=list)


def _text_fields(proposal: Proposal) -> List[tuple]:
    payload = proposal.payload
    fields = [("name", getattr(payload, "name", "")), ("description", payload.description)]
    if isinstance(payload, CharacterPayload):
        fields.extend(("dialogue", line) for line in payload.dialogue)
    if proposal.flavor:
        fields.append(("rationale", proposal.flavor.rationale))
        fields.append(("lore", proposal.flavor.lore))
    return fields


def _check_ceiling(errors: List[str], label: str, value, ceiling) -> None:
    if value is not None and value > ceiling:
        errors.append(f"{label} {value} exceeds budget of {ceiling}")


def validate(proposal: Proposal, config: GuardrailConfig) -> ValidationResult:
    """Check a proposal against the banned-term filter and the per-kind budgets."""
    errors: List[str] = []
    budgets = config.budgets

    for field_name, text in _text_fields(proposal):
        term = config.find_banned_term(text)
        if term:
            errors.append(f"Banned term '{term}' found in {field_name}")

    payload = proposal.payload

    if isinstance(payload, ItemPayload):
        _check_ceiling(errors, "Weapon damage", payload.attributes.get("damage"), budgets.max_weapon_damage)
        _check_ceiling(errors, "Armor defense", payload.attributes.get("defense"), budgets.max_armor_defense)
        _check_ceiling(errors, "Item cost", payload.cost, budgets.max_item_value)

    elif isinstance(payload, CharacterPayload):
        _check_ceiling(errors, "Character health", payload.stats.health, budgets.max_character_health)
        _check_ceiling(errors, "Character attack", payload.stats.attack, budgets.max_character_attack)
        _check_ceiling(errors, "Character defense", payload.stats.defense, budgets.max_character_defense)

    elif isinstance(payload, QuestPayload):
        _check_ceiling(errors, "Quest gold reward", payload.rewards.gold, budgets.max_gold_drop)
        _check_ceiling(errors, "Quest XP reward", payload.rewards.xp, budgets.max_quest_xp_reward)

    return ValidationResult(valid=not errors, errors=errors)
