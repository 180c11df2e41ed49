"""
Item generator - weapons, armor, consumables and cyberware with budget-clamped mechanics.
"""

import random
from typing import Any, Dict, List, Optional

from ..core.guardrails import GenerationRole, GuardrailConfig
from ..core.proposals import ContentKind, ItemPayload, PassResult, Proposal, new_content_id
from .backend import GenerationBackend
from .base import CREATIVE_PASS, LOGIC_PASS, PORTRAIT_PASS, BaseGenerator, clamp, merge_text

ITEM_TYPES = ["weapon", "armor", "consumable", "item", "cyberware"]
RARITIES = ["common", "uncommon", "rare", "epic", "legendary"]
PREFIXES = ["Rusty", "Chrome", "Neon", "Void", "Elite", "Prototype", "Glitch"]
SLOTS = ["head", "torso", "legs", "waist", "feet", "hands", "back", "neural"]


def _short_name(name: str) -> str:
    words = name.split()
    return words[-1].lower() if words else "item"


class ItemGenerator(BaseGenerator):
    """Generates items. ``context`` may force ``type`` and ``rarity``."""

    kind = ContentKind.ITEM

    async def generate(self, config: GuardrailConfig, backend: Optional[GenerationBackend] = None,
                       context: Optional[Dict[str, Any]] = None) -> Proposal:
        context = context or {}
        budgets = config.budgets

        forced_type = context.get("type") if context.get("type") in ITEM_TYPES else None
        item_type = forced_type or random.choice(ITEM_TYPES[:4])
        rarity = context.get("rarity") if context.get("rarity") in RARITIES else None
        if rarity is None and (context.get("subtype") or "").lower() == "legendary":
            rarity = "legendary"
        rarity = rarity or random.choice(RARITIES)

        fields: Dict[str, Any] = {
            "name": context.get("name") or f"{random.choice(PREFIXES)} {item_type.capitalize()}",
            "description": f"A {rarity} grade {item_type}.",
            "rationale": f"Generated a {rarity} {item_type} for the world.",
        }
        attributes: Dict[str, Any] = {}
        short_name = _short_name(fields["name"])
        image_url = ""
        passes: List[PassResult] = []

        if backend is not None:
            async def creative():
                prompt = (
                    "Generate a unique cyberpunk item.\n"
                    f"Suggested Type: {item_type}\nRarity: {rarity}\n"
                    f"Context: {context.get('context', '')}\n"
                    f"Type may change unless fixed; choose from {ITEM_TYPES}.\n"
                    f"If armor or cyberware, give a slot from {SLOTS}.\n"
                    "Return ONLY a JSON object with fields: name, type, description, rationale, slot (optional)."
                )
                return await self._ask_json(backend, prompt, "You are a master item crafter.", GenerationRole.CREATIVE)

            data = await self._run_pass(passes, CREATIVE_PASS, creative)
            if data:
                merge_text(fields, data, ["name", "description", "rationale"])
                if not forced_type and data.get("type") in ITEM_TYPES:
                    item_type = data["type"]
                if data.get("slot") in SLOTS:
                    attributes["slot"] = data["slot"]
                short_name = _short_name(fields["name"])

        rarity_mult = RARITIES.index(rarity) + 1
        if item_type == "weapon":
            attributes["damage"] = clamp(5 * rarity_mult, 1, budgets.max_weapon_damage, 1)
        if item_type == "armor":
            attributes["defense"] = clamp(3 * rarity_mult, 1, budgets.max_armor_defense, 1)
        cost = clamp(100 * rarity_mult, 0, budgets.max_item_value, 0)
        weight = round(1 + random.random() * 4, 1) if item_type == "weapon" else round(0.1 + random.random() * 1.9, 1)

        if backend is not None:
            async def logic():
                prompt = (
                    "Balance the mechanics for this item.\n"
                    f"Name: {fields['name']}\nType: {item_type}\nRarity: {rarity}\n"
                    f"Max Damage: {budgets.max_weapon_damage}\nMax Defense: {budgets.max_armor_defense}\n"
                    f"Max Cost: {budgets.max_item_value}\n"
                    "Weapons: damage, range. Armor: defense, penalty. Consumables: effect, charges.\n"
                    "All items: cost, weight, short_name (one lowercase word).\n"
                    "Return ONLY a JSON object with the allowed fields for the item type."
                )
                return await self._ask_json(backend, prompt, "You are a game balance engineer.", GenerationRole.LOGIC)

            data = await self._run_pass(passes, LOGIC_PASS, logic)
            if data:
                if item_type == "weapon":
                    attributes["damage"] = clamp(data.get("damage"), 1, budgets.max_weapon_damage, attributes["damage"])
                    if "range" in data:
                        attributes["range"] = clamp(data.get("range"), 1, 100, 1)
                if item_type == "armor":
                    attributes["defense"] = clamp(data.get("defense"), 1, budgets.max_armor_defense, attributes["defense"])
                    if "penalty" in data:
                        attributes["penalty"] = clamp(data.get("penalty"), 0, 50, 0)
                if item_type == "consumable":
                    if isinstance(data.get("effect"), str):
                        attributes["effect"] = data["effect"]
                    if "charges" in data:
                        attributes["charges"] = clamp(data.get("charges"), 1, 5, 1)
                cost = clamp(data.get("cost"), 0, budgets.max_item_value, cost)
                if isinstance(data.get("weight"), (int, float)) and not isinstance(data.get("weight"), bool):
                    weight = round(max(0.1, min(100.0, float(data["weight"]))), 1)
                if isinstance(data.get("short_name"), str) and data["short_name"].strip():
                    short_name = data["short_name"].strip().split()[0].lower()

            if context.get("portrait", True):
                async def portrait():
                    return await self.generate_portrait(backend, f"{fields['name']}, a {rarity} {item_type}: {fields['description']}")

                image_url = await self._run_pass(passes, PORTRAIT_PASS, portrait) or ""

        payload = ItemPayload(
            id=new_content_id("item"),
            name=fields["name"],
            short_name=short_name,
            description=fields["description"],
            type=item_type,
            rarity=rarity,
            cost=cost,
            weight=weight,
            attributes=attributes,
            image_url=image_url,
        )
        return self._build_proposal(payload, passes, fields["rationale"], context)
