"""
Quest generator - job offers with budget-clamped rewards.
"""

import random
from typing import Any, Dict, List, Optional

from ..core.guardrails import GenerationRole, GuardrailConfig
from ..core.proposals import (
    ContentKind,
    PassResult,
    Proposal,
    QuestPayload,
    QuestRewards,
    QuestStep,
    new_content_id,
)
from .backend import GenerationBackend
from .base import CREATIVE_PASS, LOGIC_PASS, BaseGenerator, clamp, merge_text

QUEST_TEMPLATES = {
    "eliminate": ("Eliminate Target", "A high-value target needs to be removed.", "kill"),
    "data_retrieval": ("Data Retrieval", "Recover the encrypted drive from the secure facility.", "fetch"),
    "recon": ("Reconnaissance", "Scan the perimeter of the corporate HQ.", "explore"),
    "informant": ("Meet Informant", "Meet the contact in the back alley of Sector 4.", "talk"),
    "delivery": ("Urgent Delivery", "Get the sealed package to its recipient before time runs out.", "deliver"),
    "collection": ("Hidden Cache", "Something valuable has been hidden in the sprawl. Find it.", "fetch"),
}

# Templates the generator picks from when no quest type is requested
RANDOM_TEMPLATES = ["eliminate", "data_retrieval", "recon", "informant"]


class QuestGenerator(BaseGenerator):
    """Generates quests. Context: quest_type, giver_id, giver_name, giver_description, target_id, world_context."""

    kind = ContentKind.QUEST

    async def generate(self, config: GuardrailConfig, backend: Optional[GenerationBackend] = None,
                       context: Optional[Dict[str, Any]] = None) -> Proposal:
        context = context or {}
        budgets = config.budgets

        quest_type = context.get("quest_type")
        if quest_type not in QUEST_TEMPLATES:
            quest_type = random.choice(RANDOM_TEMPLATES)
        title, description, step_type = QUEST_TEMPLATES[quest_type]
        giver_name = context.get("giver_name") or "A mysterious contact"

        fields: Dict[str, Any] = {
            "title": title,
            "description": description,
            "rationale": f"Generated a {quest_type} quest.",
        }
        rewards = {
            "gold": random.randint(0, budgets.max_gold_drop),
            "xp": random.randint(0, budgets.max_quest_xp_reward),
        }
        passes: List[PassResult] = []

        if backend is not None:
            async def creative():
                prompt = (
                    "Generate a gritty cyberpunk quest.\n"
                    f"Giver: {giver_name} ({context.get('giver_description', '')})\n"
                    f"World Context: {context.get('world_context', '')}\n"
                    f"Type: {quest_type}\n"
                    f"Frame it as a job offer or a desperate plea from {giver_name}.\n"
                    "Return ONLY a JSON object with fields: title, description, rationale."
                )
                return await self._ask_json(backend, prompt, "You are a fixer handing out work in the sprawl.",
                                            GenerationRole.CREATIVE)

            data = await self._run_pass(passes, CREATIVE_PASS, creative)
            if data:
                merge_text(fields, data, ["title", "description", "rationale"])

            async def logic():
                prompt = (
                    "Balance the rewards for this quest.\n"
                    f"Title: {fields['title']}\nDescription: {fields['description']}\nType: {quest_type}\n"
                    f"MAX LIMITS - Credits: {budgets.max_gold_drop}, XP: {budgets.max_quest_xp_reward}\n"
                    "Return ONLY a JSON object with fields: gold, xp."
                )
                return await self._ask_json(backend, prompt, "You are a game balance engineer.", GenerationRole.LOGIC)

            data = await self._run_pass(passes, LOGIC_PASS, logic)
            if data:
                rewards["gold"] = clamp(data.get("gold"), 0, budgets.max_gold_drop, rewards["gold"])
                rewards["xp"] = clamp(data.get("xp"), 0, budgets.max_quest_xp_reward, rewards["xp"])

        payload = QuestPayload(
            id=new_content_id("quest"),
            title=fields["title"],
            description=fields["description"],
            giver_id=context.get("giver_id") or "npc_director",
            steps=[
                QuestStep(
                    id="step_1",
                    description=context.get("step_description") or f"Complete the {quest_type.replace('_', ' ')} objective.",
                    type=step_type,
                    target=context.get("target_id") or "any",
                    count=1,
                )
            ],
            rewards=QuestRewards(items=list(context.get("reward_items", [])), **rewards),
        )
        return self._build_proposal(payload, passes, fields["rationale"], context)
