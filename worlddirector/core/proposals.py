"""
Proposal model - generated content awaiting validation, approval and publishing.
The payload is a tagged union keyed by ContentKind; shape and tag are checked on every construction.
"""

import random
import string
import time
import uuid
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class ContentKind(str, Enum):
    CHARACTER = "character"
    ITEM = "item"
    QUEST = "quest"
    LOCATION = "location"
    EVENT = "event"


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"
    FAILED = "failed"


class WorldEventType(str, Enum):
    MOB_INVASION = "mob_invasion"
    BOSS_SPAWN = "boss_spawn"
    TRAVELING_MERCHANT = "traveling_merchant"
    DATA_COURIER = "data_courier"
    SCAVENGER_HUNT = "scavenger_hunt"


class WorkflowStateError(Exception):
    """Raised when a proposal transition is not valid from its current status."""
    pass


class ProposalNotFoundError(KeyError):
    """Raised when a proposal id is not in the pending queue."""
    pass


class CharacterStats(BaseModel):
    health: int = Field(100, ge=1)
    attack: int = Field(10, ge=0)
    defense: int = Field(5, ge=0)


class CharacterPayload(BaseModel):
    kind: Literal["character"] = "character"
    id: str
    name: str
    description: str
    stats: CharacterStats = Field(default_factory=CharacterStats)
    behavior: Literal["aggressive", "neutral", "cautious", "friendly", "elusive", "passive"] = "neutral"
    dialogue: List[str] = Field(default_factory=list)
    faction: Optional[str] = None
    equipment: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    can_move: bool = True
    portrait_url: str = ""


class ItemPayload(BaseModel):
    kind: Literal["item"] = "item"
    id: str
    name: str
    short_name: str
    description: str
    type: Literal["weapon", "armor", "consumable", "item", "cyberware"] = "item"
    rarity: Literal["common", "uncommon", "rare", "epic", "legendary"] = "common"
    cost: int = Field(0, ge=0)
    weight: float = Field(1.0, ge=0)
    attributes: Dict[str, Any] = Field(default_factory=dict)
    effects: List[Dict[str, Any]] = Field(default_factory=list)
    image_url: str = ""


class QuestStep(BaseModel):
    id: str
    description: str
    type: Literal["kill", "fetch", "talk", "explore", "deliver"]
    target: str = "any"
    count: int = Field(1, ge=1)


class QuestRewards(BaseModel):
    gold: int = Field(0, ge=0)
    xp: int = Field(0, ge=0)
    items: List[str] = Field(default_factory=list)


class QuestPayload(BaseModel):
    kind: Literal["quest"] = "quest"
    id: str
    title: str
    description: str
    giver_id: str
    steps: List[QuestStep] = Field(default_factory=list)
    rewards: QuestRewards = Field(default_factory=QuestRewards)
    requirements: Dict[str, Any] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.title


class Coordinates(BaseModel):
    x: int
    y: int
    z: int = 0


class LocationPayload(BaseModel):
    kind: Literal["location"] = "location"
    id: str
    name: str
    description: str
    coordinates: Coordinates
    exits: Dict[str, str] = Field(default_factory=dict)
    type: Literal["street", "indoor", "shop", "dungeon", "safehouse"] = "street"
    features: List[str] = Field(default_factory=list)
    spawns: List[str] = Field(default_factory=list)


class EventPayload(BaseModel):
    kind: Literal["event"] = "event"
    id: str
    type: WorldEventType
    description: str
    duration: int = Field(ge=0)  # milliseconds
    zone_id: Optional[str] = None
    effects: List[str] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.type.value


Payload = Annotated[
    Union[CharacterPayload, ItemPayload, QuestPayload, LocationPayload, EventPayload],
    Field(discriminator="kind"),
]


class Flavor(BaseModel):
    rationale: str = ""
    lore: str = ""


class PassResult(BaseModel):
    """Outcome of one enrichment pass."""
    name: str
    ok: bool
    error: Optional[str] = None


def new_seed() -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=8))


def new_content_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:10]}"


class Proposal(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: ContentKind
    status: ProposalStatus = ProposalStatus.DRAFT
    payload: Payload
    seed: str = Field(default_factory=new_seed)
    generated_by: str = "director"
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000))
    flavor: Optional[Flavor] = None
    validation_errors: List[str] = Field(default_factory=list)
    score: Optional[float] = None
    tags: List[str] = Field(default_factory=list)
    passes: List[PassResult] = Field(default_factory=list)

    @model_validator(mode="after")
    def payload_matches_kind(self):
        if self.payload.kind != self.kind.value:
            raise ValueError(f"payload kind '{self.payload.kind}' does not match proposal kind '{self.kind.value}'")
        return self

    @property
    def degraded(self) -> bool:
        """True if any enrichment pass failed and fallback content was kept."""
        return any(not p.ok for p in self.passes)

    def _transition(self, target: ProposalStatus, allowed_from: List[ProposalStatus]) -> None:
        if self.status not in allowed_from:
            raise WorkflowStateError(
                f"Proposal {self.id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target

    def approve(self) -> None:
        self._transition(ProposalStatus.APPROVED, [ProposalStatus.DRAFT])

    def reject(self) -> None:
        if self.status == ProposalStatus.REJECTED:
            return
        self._transition(ProposalStatus.REJECTED, [ProposalStatus.DRAFT, ProposalStatus.APPROVED])

    def mark_published(self) -> None:
        self._transition(ProposalStatus.PUBLISHED, [ProposalStatus.APPROVED])

    def mark_failed(self) -> None:
        self._transition(ProposalStatus.FAILED, [ProposalStatus.DRAFT, ProposalStatus.APPROVED])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage and transport."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proposal":
        return cls.model_validate(data)
