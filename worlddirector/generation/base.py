"""
Generator base - deterministic fallback first, then optional creative, logic and portrait passes.
A failed pass keeps the fallback and is recorded as a PassResult on the proposal.
"""

import numbers
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from util.logging import logger
from ..core.guardrails import GenerationRole, GuardrailConfig
from ..core.proposals import ContentKind, Flavor, PassResult, Proposal
from .backend import GenerationBackend, GenerationError
from .parsing import parse_json

CREATIVE_PASS = "creative"
LOGIC_PASS = "logic"
PORTRAIT_PASS = "portrait"


def clamp(value: Any, minimum: float, maximum: float, fallback: float) -> int:
    """Clamp a backend-supplied number into [minimum, maximum].

    Anything that is not a real number (including bools and numeric strings)
    yields the fallback, which is itself clamped.
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        value = fallback
    return int(max(minimum, min(maximum, value)))


class BaseGenerator(ABC):
    """Abstract base for content generators."""

    kind: ContentKind = None

    @abstractmethod
    async def generate(self, config: GuardrailConfig, backend: Optional[GenerationBackend] = None,
                       context: Optional[Dict[str, Any]] = None) -> Proposal:
        """
        Produce a draft proposal.

        Args:
            config: Guardrails supplying the numeric ceilings
            backend: Optional generation backend; without one only the fallback is used
            context: Kind-specific hints (subtype, coordinates, giver, ...)

        Returns:
            Proposal in draft status
        """
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def _build_proposal(self, payload: Any, passes: List[PassResult], rationale: str,
                        context: Optional[Dict[str, Any]] = None) -> Proposal:
        context = context or {}
        proposal = Proposal(
            kind=self.kind,
            payload=payload,
            generated_by=context.get("generated_by", "director"),
            flavor=Flavor(rationale=rationale, lore=context.get("lore", "")),
            passes=passes,
        )
        logger.log_proposal_created(proposal.id, self.kind.value, proposal.generated_by)
        return proposal

    async def _run_pass(self, passes: List[PassResult], pass_name: str,
                        step: Callable[[], Awaitable[Any]]) -> Any:
        """Run one pass. Any failure is logged, recorded and swallowed; returns None on failure."""
        try:
            result = await step()
        except Exception as e:
            passes.append(PassResult(name=pass_name, ok=False, error=f"{type(e).__name__}: {e}"))
            logger.log_generation_pass(self.name, pass_name, False, str(e))
            return None
        passes.append(PassResult(name=pass_name, ok=True))
        logger.log_generation_pass(self.name, pass_name, True)
        return result

    async def _ask_json(self, backend: GenerationBackend, prompt: str, system_prompt: str,
                        role: GenerationRole) -> Dict[str, Any]:
        response = await backend.chat(prompt, system_prompt, role)
        return parse_json(response.text)

    async def generate_portrait(self, backend: GenerationBackend, subject: str) -> str:
        """Ask for an image description, then render it. Raises if no image comes back."""
        data = await self._ask_json(
            backend,
            f"Write a concise visual description for a portrait of: {subject}\n"
            "Return ONLY a JSON object with field: prompt.",
            "You are a concept artist describing gritty neon-lit cyberpunk portraits.",
            GenerationRole.CREATIVE,
        )
        image_prompt = data.get("prompt") or subject
        image = await backend.generate_image(str(image_prompt))
        if not image.url:
            raise GenerationError("Image backend returned no image")
        return image.url


def merge_text(target: Dict[str, Any], data: Dict[str, Any], fields: List[str]) -> None:
    """Copy non-empty string fields from backend data."""
    for field_name in fields:
        value = data.get(field_name)
        if isinstance(value, str) and value.strip():
            target[field_name] = value.strip()
