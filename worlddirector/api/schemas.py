"""
Request and response models for the director admin API.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any


class HealthResponse(BaseModel):
    status: str
    version: str
    paused: bool
    automation_running: bool
    config_issues: List[str] = Field(default_factory=list)
    backend: Optional[Dict[str, Any]] = None


class TraitUpdate(BaseModel):
    value: Optional[float] = Field(None, ge=0.0, le=1.0)
    enabled: Optional[bool] = None


class PersonalityUpdateRequest(BaseModel):
    chaos: Optional[TraitUpdate] = None
    aggression: Optional[TraitUpdate] = None
    expansion: Optional[TraitUpdate] = None

    def changes(self) -> Dict[str, Any]:
        return {
            name: trait.model_dump(exclude_none=True)
            for name, trait in (("chaos", self.chaos), ("aggression", self.aggression), ("expansion", self.expansion))
            if trait is not None
        }


class GlitchConfigUpdateRequest(BaseModel):
    mob_count: Optional[int] = Field(None, ge=0)
    item_count: Optional[int] = Field(None, ge=0)
    legendary_chance: Optional[float] = Field(None, ge=0.0, le=1.0)


class TriggerRequest(BaseModel):
    kind: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('kind')
    @classmethod
    def kind_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('kind cannot be empty')
        return v.strip().lower()


class TriggerResponse(BaseModel):
    kind: str
    result_type: str  # proposal, event, none
    result: Optional[Dict[str, Any]] = None


class RejectRequest(BaseModel):
    reason: str = ""
    actor: str = "admin"


class ApproveRequest(BaseModel):
    actor: str = "admin"


class ProposalEditRequest(BaseModel):
    payload: Dict[str, Any]


class ProposalListResponse(BaseModel):
    proposals: List[Dict[str, Any]]
    total_count: int


class DefinitionUpdateRequest(BaseModel):
    changes: Dict[str, Any]

    @field_validator('changes')
    @classmethod
    def id_is_immutable(cls, v):
        if "id" in v:
            raise ValueError('id cannot be changed')
        return v


class ChunkResponse(BaseModel):
    chunk_size: int
    generated: List[List[int]]
    frontier: List[List[int]]


class ChunkGenerateResponse(BaseModel):
    cx: int
    cy: int
    locations: List[Dict[str, Any]]


class SnapshotCreateRequest(BaseModel):
    label: str = "manual"


class SnapshotListResponse(BaseModel):
    snapshots: List[Dict[str, Any]]
    total_count: int


class EventListResponse(BaseModel):
    events: List[Dict[str, Any]]
    total_count: int
