"""
Location generator - new rooms for world expansion.
"""

import random
from typing import Any, Dict, List, Optional

from ..core.guardrails import GenerationRole, GuardrailConfig
from ..core.proposals import ContentKind, Coordinates, LocationPayload, PassResult, Proposal, new_content_id
from .backend import GenerationBackend
from .base import CREATIVE_PASS, BaseGenerator, merge_text

LOCATION_NAMES = {
    "street": ["Neon Alley", "Chrome Street", "Void Plaza", "Glitch Boulevard"],
    "shop": ["Cyber-Market", "The Mod Shop", "Data Haven", "Synapse Bar"],
    "dungeon": ["Abandoned Server Room", "Sewer Pipe 04", "Corporate Basement", "Undercity Tunnel"],
    "indoor": ["Capsule Hotel", "Safehouse", "Apartment 402", "Office Suite"],
}


class LocationGenerator(BaseGenerator):
    """Generates locations at ``context['x']``, ``context['y']`` (random when absent)."""

    kind = ContentKind.LOCATION

    async def generate(self, config: GuardrailConfig, backend: Optional[GenerationBackend] = None,
                       context: Optional[Dict[str, Any]] = None) -> Proposal:
        context = context or {}
        location_type = context.get("type")
        if location_type not in LOCATION_NAMES:
            location_type = random.choice(list(LOCATION_NAMES))

        fields: Dict[str, Any] = {
            "name": random.choice(LOCATION_NAMES[location_type]),
            "description": f"A {location_type} area. The air is thick with the smell of ozone and rain.",
            "rationale": f"Expanding the world with a new {location_type} block.",
        }
        passes: List[PassResult] = []

        if backend is not None:
            async def creative():
                prompt = (
                    "Generate a unique cyberpunk location.\n"
                    f"Type: {location_type}\n"
                    "Description: 2-3 sentences of sensory detail.\n"
                    "Return ONLY a JSON object with fields: name, description, rationale."
                )
                return await self._ask_json(
                    backend, prompt,
                    "You are the lead architect for the sprawl. You describe spaces through light, sound and decay.",
                    GenerationRole.CREATIVE,
                )

            data = await self._run_pass(passes, CREATIVE_PASS, creative)
            if data:
                merge_text(fields, data, ["name", "description", "rationale"])

        x = context.get("x")
        y = context.get("y")
        payload = LocationPayload(
            id=new_content_id("room"),
            name=fields["name"],
            description=fields["description"],
            type=location_type,
            coordinates=Coordinates(
                x=int(x) if x is not None else random.randint(0, 99),
                y=int(y) if y is not None else random.randint(0, 99),
            ),
        )
        return self._build_proposal(payload, passes, fields["rationale"], context)
