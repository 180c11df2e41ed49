"""
Character generator - townsfolk, mobs, bosses and event characters.
"""

import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core.guardrails import GenerationRole, GuardrailConfig
from ..core.proposals import (
    CharacterPayload,
    CharacterStats,
    ContentKind,
    PassResult,
    Proposal,
    new_content_id,
)
from .backend import GenerationBackend
from .base import CREATIVE_PASS, LOGIC_PASS, PORTRAIT_PASS, BaseGenerator, clamp, merge_text

BEHAVIORS = ["aggressive", "neutral", "cautious", "friendly", "elusive", "passive"]


@dataclass(frozen=True)
class Archetype:
    name: str
    behavior: str
    health_mult: float
    attack_mult: float
    defense_mult: float


TOWNSFOLK = [
    Archetype("Thug", "aggressive", 0.8, 1.2, 0.5),
    Archetype("Merchant", "neutral", 1.0, 0.5, 1.0),
    Archetype("Corporate Agent", "cautious", 1.2, 1.0, 1.2),
    Archetype("Street Doc", "friendly", 0.9, 0.3, 0.8),
    Archetype("Hacker", "elusive", 0.7, 1.5, 0.4),
]

MOBS = [
    Archetype("Vermin", "aggressive", 0.4, 0.8, 0.2),
    Archetype("Glitch Construct", "aggressive", 0.6, 1.2, 0.4),
    Archetype("Rogue Drone", "aggressive", 0.5, 1.0, 0.8),
    Archetype("Feral Mutant", "aggressive", 1.2, 1.1, 0.6),
]

BOSSES = [
    Archetype("Cyber-Monstrosity", "aggressive", 5.0, 2.0, 2.0),
    Archetype("Rogue AI Avatar", "aggressive", 4.0, 3.0, 1.5),
    Archetype("Corporate Hit-Squad Leader", "aggressive", 3.0, 2.5, 2.5),
    Archetype("Mutated Alpha", "aggressive", 6.0, 1.8, 1.2),
]

EVENT_ROLES = {
    "merchant": Archetype("Traveling Merchant", "passive", 1.0, 0.3, 1.0),
    "courier": Archetype("Data Courier", "passive", 0.8, 0.3, 0.6),
    "mysterious": Archetype("Hooded Stranger", "passive", 1.0, 0.5, 1.0),
}

FIRST_NAMES = ["Jax", "Kira", "Vex", "Zero", "Nyx", "Cipher", "Echo", "Raze", "Sloane", "Mako"]
LAST_NAMES = ["Vance", "Korp", "Steel", "Neon", "Shadow", "Flux", "Void", "Chrome", "Glitch", "Matrix"]
MOB_ADJECTIVES = ["Giant", "Mutated", "Cyber", "Neon", "Toxic"]
MOB_NOUNS = ["Rat", "Roach", "Sludge", "Hound", "Spider"]
BOSS_TITLES = ["Omega", "Titan", "Apex", "Void", "Prime"]
BOSS_NOUNS = ["Stalker", "Reaper", "Colossus", "Executioner", "Entity"]

DIALOGUE = {
    "boss": ["YOU ARE BUT A GLITCH IN MY SYSTEM.", "OBSOLETE.", "PREPARE FOR DELETION."],
    "mob": ["*hisses*", "*screeches*", "*growls*", "*chitters*"],
    "merchant": ["Rare goods from far sprawls, choomba.", "Credits up front.", "I won't be here long."],
    "courier": ["This package can't wait.", "I need someone I can trust.", "Clock's ticking."],
    "mysterious": ["What is hidden is never lost.", "Follow the static.", "The first clue is closer than you think."],
    None: ["Watch your back, choomba.", "Got any credits?", "The Matrix is watching."],
}

DIALOGUE_LIMITS = {"boss": 15, "mob": 10, None: 50}


def _pick_archetype(subtype: Optional[str], restricted: bool) -> Archetype:
    if subtype == "boss":
        return random.choice(BOSSES)
    if subtype == "mob":
        return random.choice(MOBS)
    if subtype in EVENT_ROLES:
        return EVENT_ROLES[subtype]
    if restricted:
        return next(a for a in TOWNSFOLK if a.behavior == "aggressive")
    return random.choice(TOWNSFOLK)


def _fallback_name(subtype: Optional[str], archetype: Archetype) -> str:
    if subtype == "boss":
        return f"[BOSS] {random.choice(BOSS_TITLES)} {random.choice(BOSS_NOUNS)}"
    if subtype == "mob":
        return f"{random.choice(MOB_ADJECTIVES)} {random.choice(MOB_NOUNS)}"
    if subtype in EVENT_ROLES:
        return f"{random.choice(FIRST_NAMES)} the {archetype.name}"
    return f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}"


def _fallback_description(subtype: Optional[str], archetype: Archetype) -> str:
    if subtype == "boss":
        return f"A towering, nightmare-inducing {archetype.name.lower()} that radiates pure malice."
    if subtype == "mob":
        return f"A repulsive {archetype.name.lower()} lurking in the shadows."
    return f"A {archetype.name.lower()} seen wandering the neon-lit streets."


class CharacterGenerator(BaseGenerator):
    """Generates characters; ``context['subtype']`` selects mob, boss, merchant, courier or mysterious."""

    kind = ContentKind.CHARACTER

    async def generate(self, config: GuardrailConfig, backend: Optional[GenerationBackend] = None,
                       context: Optional[Dict[str, Any]] = None) -> Proposal:
        context = context or {}
        subtype = (context.get("subtype") or "").lower() or None
        restricted = config.features.restricted_mode
        hostile = subtype in ("mob", "boss") or restricted
        archetype = _pick_archetype(subtype, restricted)
        budgets = config.budgets

        fields: Dict[str, Any] = {
            "name": _fallback_name(subtype, archetype),
            "description": _fallback_description(subtype, archetype),
            "behavior": archetype.behavior,
            "rationale": f"Generated a {archetype.name} to populate the area.",
        }
        dialogue: List[str] = list(DIALOGUE.get(subtype, DIALOGUE[None]))

        def roll() -> float:
            return 0.8 + random.random() * 0.4

        stats = {
            "health": clamp(budgets.max_character_health * archetype.health_mult * roll(), 1,
                            budgets.max_character_health, 1),
            "attack": clamp(budgets.max_character_attack * archetype.attack_mult * roll() * 0.2, 1,
                            budgets.max_character_attack, 1),
            "defense": clamp(budgets.max_character_defense * archetype.defense_mult * roll() * 0.2, 1,
                             budgets.max_character_defense, 1),
        }
        portrait_url = ""
        passes: List[PassResult] = []

        if backend is not None:
            async def creative():
                prompt = (
                    f"Generate a unique cyberpunk {'BOSS' if subtype == 'boss' else 'creature' if subtype == 'mob' else 'character'}.\n"
                    f"Archetype: {archetype.name}\n"
                    f"Context: {context.get('context', 'The city is under heavy corporate surveillance.')}\n"
                    f"{'This character MUST be hostile.' if hostile else ''}\n"
                    f"Behavior: choose from {BEHAVIORS}.\n"
                    "Return ONLY a JSON object with fields: name, description, behavior, dialogue (array of strings), rationale."
                )
                return await self._ask_json(backend, prompt, "You are the lead narrative designer for the sprawl.",
                                            GenerationRole.CREATIVE)

            data = await self._run_pass(passes, CREATIVE_PASS, creative)
            if data:
                merge_text(fields, data, ["name", "description", "rationale"])
                if data.get("behavior") in BEHAVIORS:
                    fields["behavior"] = data["behavior"]
                lines = data.get("dialogue")
                if isinstance(lines, list):
                    lines = [str(line) for line in lines if str(line).strip()]
                    if lines:
                        dialogue = lines[:DIALOGUE_LIMITS.get(subtype, DIALOGUE_LIMITS[None])]

            async def logic():
                prompt = (
                    f"Balance the stats for this character:\n"
                    f"Name: {fields['name']}\nDescription: {fields['description']}\n"
                    f"Archetype: {archetype.name}\nBehavior: {fields['behavior']}\n"
                    f"MAX LIMITS - Health: {budgets.max_character_health}, Attack: {budgets.max_character_attack}, "
                    f"Defense: {budgets.max_character_defense}\n"
                    "Return ONLY a JSON object with fields: health, attack, defense."
                )
                return await self._ask_json(backend, prompt, "You are a game balance engineer.", GenerationRole.LOGIC)

            data = await self._run_pass(passes, LOGIC_PASS, logic)
            if data:
                stats["health"] = clamp(data.get("health"), 1, budgets.max_character_health, stats["health"])
                stats["attack"] = clamp(data.get("attack"), 1, budgets.max_character_attack, stats["attack"])
                stats["defense"] = clamp(data.get("defense"), 1, budgets.max_character_defense, stats["defense"])

            if context.get("portrait", True):
                async def portrait():
                    return await self.generate_portrait(backend, f"{fields['name']}: {fields['description']}")

                portrait_url = await self._run_pass(passes, PORTRAIT_PASS, portrait) or ""

        if hostile:
            fields["behavior"] = "aggressive"

        payload = CharacterPayload(
            id=new_content_id("npc"),
            name=fields["name"],
            description=fields["description"],
            stats=CharacterStats(**stats),
            behavior=fields["behavior"],
            dialogue=dialogue,
            faction=context.get("faction") or random.choice(["Street", "Corporate"]),
            tags=[archetype.name.lower()] + ([subtype] if subtype else []),
            can_move=subtype not in EVENT_ROLES,
            portrait_url=portrait_url,
        )
        return self._build_proposal(payload, passes, fields["rationale"], context)
