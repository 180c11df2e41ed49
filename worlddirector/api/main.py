"""
Director admin API - pause/resume, personality, guardrails, approvals, triggers,
regions, definitions, events and snapshots.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware

from util.logging import logger
from .schemas import (
    HealthResponse,
    PersonalityUpdateRequest,
    GlitchConfigUpdateRequest,
    TriggerRequest,
    TriggerResponse,
    ApproveRequest,
    RejectRequest,
    ProposalEditRequest,
    ProposalListResponse,
    DefinitionUpdateRequest,
    ChunkResponse,
    ChunkGenerateResponse,
    SnapshotCreateRequest,
    SnapshotListResponse,
    EventListResponse,
)
from ..core.config import API_CORS_ORIGINS, VERSION, debug_enabled, validate_director_config
from ..core.proposals import Proposal, ProposalNotFoundError, WorkflowStateError
from ..core.snapshots import RestoreError, SnapshotError
from ..director import FeatureDisabledError, WorldDirector
from ..director.lifecycle import ActiveEvent
from ..generation import GenerationError

director: Optional[WorldDirector] = None


def get_director() -> WorldDirector:
    """Dependency returning the process-wide director, created on first use."""
    global director
    if director is None:
        director = WorldDirector()
    return director


@asynccontextmanager
async def lifespan(app: FastAPI):
    instance = get_director()
    instance.start()
    logger.info("Director admin API started")
    yield
    instance.stop()
    logger.info("Director admin API stopped")


app = FastAPI(
    title="World Director API",
    version=VERSION,
    description="Admin surface for the autonomous world content and event director",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=API_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
async def health_check_endpoint(d: WorldDirector = Depends(get_director)):
    """Check director health, including reachability of the default chat backend."""
    issues = validate_director_config()
    backend = await d.backend.health_check() if d.use_backend else None
    if backend is not None and not backend["healthy"]:
        issues.append(f"Generation backend unreachable: {backend.get('reason', 'unknown')}")
    return HealthResponse(
        status="healthy" if not issues else "degraded",
        version=VERSION,
        paused=d.settings.paused,
        automation_running=d.automation.running,
        config_issues=issues,
        backend=backend,
    )


@app.get("/status")
def status_endpoint(d: WorldDirector = Depends(get_director)):
    return d.get_status()


@app.post("/director/pause")
def pause_endpoint(d: WorldDirector = Depends(get_director)):
    d.pause()
    return {"paused": True}


@app.post("/director/resume")
def resume_endpoint(d: WorldDirector = Depends(get_director)):
    d.resume()
    return {"paused": False}


@app.put("/director/personality")
def personality_endpoint(req: PersonalityUpdateRequest, d: WorldDirector = Depends(get_director)):
    return d.update_personality(req.changes()).model_dump()


@app.put("/director/glitch")
def glitch_config_endpoint(req: GlitchConfigUpdateRequest, d: WorldDirector = Depends(get_director)):
    return d.update_glitch_config(req.model_dump(exclude_none=True)).model_dump()


@app.post("/director/glitch/run")
async def glitch_run_endpoint(d: WorldDirector = Depends(get_director)):
    return await d.generate_glitch_run()


@app.get("/guardrails")
def get_guardrails_endpoint(d: WorldDirector = Depends(get_director)):
    """Guardrail document with secrets masked."""
    return d.get_guardrails()


@app.put("/guardrails")
def update_guardrails_endpoint(changes: dict, d: WorldDirector = Depends(get_director)):
    try:
        return d.update_guardrails(changes)
    except ValueError as e:
        # pydantic ValidationError is a ValueError
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/proposals", response_model=ProposalListResponse)
def list_proposals_endpoint(d: WorldDirector = Depends(get_director)):
    proposals = [p.to_dict() for p in d.get_pending()]
    return ProposalListResponse(proposals=proposals, total_count=len(proposals))


@app.post("/proposals/{proposal_id}/approve")
async def approve_proposal_endpoint(proposal_id: str, req: Optional[ApproveRequest] = None,
                                    d: WorldDirector = Depends(get_director)):
    try:
        proposal = await d.approve_proposal(proposal_id, actor=req.actor if req else "admin")
    except ProposalNotFoundError:
        raise HTTPException(status_code=404, detail=f"Proposal not found: {proposal_id}")
    except WorkflowStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return proposal.to_dict()


@app.post("/proposals/{proposal_id}/reject")
def reject_proposal_endpoint(proposal_id: str, req: Optional[RejectRequest] = None,
                             d: WorldDirector = Depends(get_director)):
    req = req or RejectRequest()
    if not d.reject_proposal(proposal_id, actor=req.actor, reason=req.reason):
        raise HTTPException(status_code=404, detail=f"Proposal not found: {proposal_id}")
    return {"success": True, "proposal_id": proposal_id}


@app.put("/proposals/{proposal_id}")
def edit_proposal_endpoint(proposal_id: str, req: ProposalEditRequest, d: WorldDirector = Depends(get_director)):
    try:
        return d.edit_proposal(proposal_id, req.payload).to_dict()
    except ProposalNotFoundError:
        raise HTTPException(status_code=404, detail=f"Proposal not found: {proposal_id}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/trigger", response_model=TriggerResponse)
async def trigger_endpoint(req: TriggerRequest, d: WorldDirector = Depends(get_director)):
    try:
        result = await d.manual_trigger(req.kind, req.payload)
    except FeatureDisabledError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if isinstance(result, Proposal):
        return TriggerResponse(kind=req.kind, result_type="proposal", result=result.to_dict())
    if isinstance(result, ActiveEvent):
        return TriggerResponse(kind=req.kind, result_type="event", result=result.to_dict())
    return TriggerResponse(kind=req.kind, result_type="none")


@app.get("/chunks", response_model=ChunkResponse)
def get_chunks_endpoint(d: WorldDirector = Depends(get_director)):
    return ChunkResponse(**d.get_chunks())


@app.post("/chunks/{cx}/{cy}", response_model=ChunkGenerateResponse)
async def generate_chunk_endpoint(cx: int, cy: int, d: WorldDirector = Depends(get_director)):
    locations = await d.generate_chunk(cx, cy)
    return ChunkGenerateResponse(cx=cx, cy=cy, locations=locations)


@app.delete("/chunks/{cx}/{cy}")
def delete_chunk_endpoint(cx: int, cy: int, d: WorldDirector = Depends(get_director)):
    if not d.delete_chunk(cx, cy):
        raise HTTPException(status_code=404, detail=f"Chunk not generated: {cx},{cy}")
    return {"success": True, "cx": cx, "cy": cy}


@app.get("/characters")
def list_characters_endpoint(d: WorldDirector = Depends(get_director)):
    return d.get_characters()


@app.get("/characters/{character_id}")
def get_character_endpoint(character_id: str, d: WorldDirector = Depends(get_director)):
    character = d.get_character(character_id)
    if character is None:
        raise HTTPException(status_code=404, detail=f"Character not found: {character_id}")
    return character


@app.put("/characters/{character_id}")
def update_character_endpoint(character_id: str, req: DefinitionUpdateRequest,
                              d: WorldDirector = Depends(get_director)):
    character = d.update_character(character_id, req.changes)
    if character is None:
        raise HTTPException(status_code=404, detail=f"Character not found: {character_id}")
    return character


@app.delete("/characters/{character_id}")
def delete_character_endpoint(character_id: str, d: WorldDirector = Depends(get_director)):
    if not d.delete_character(character_id):
        raise HTTPException(status_code=404, detail=f"Character not found: {character_id}")
    return {"success": True, "id": character_id}


@app.post("/characters/{character_id}/portrait")
async def regenerate_portrait_endpoint(character_id: str, d: WorldDirector = Depends(get_director)):
    try:
        character = await d.regenerate_portrait(character_id)
    except GenerationError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if character is None:
        raise HTTPException(status_code=404, detail=f"Character not found: {character_id}")
    return character


@app.post("/characters/roaming")
async def spawn_roaming_endpoint(d: WorldDirector = Depends(get_director)):
    return await d.spawn_roaming_character()


@app.get("/items")
def list_items_endpoint(d: WorldDirector = Depends(get_director)):
    return d.get_items()


@app.get("/items/{item_id}")
def get_item_endpoint(item_id: str, d: WorldDirector = Depends(get_director)):
    item = d.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item not found: {item_id}")
    return item


@app.put("/items/{item_id}")
def update_item_endpoint(item_id: str, req: DefinitionUpdateRequest, d: WorldDirector = Depends(get_director)):
    item = d.update_item(item_id, req.changes)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item not found: {item_id}")
    return item


@app.delete("/items/{item_id}")
def delete_item_endpoint(item_id: str, d: WorldDirector = Depends(get_director)):
    if not d.delete_item(item_id):
        raise HTTPException(status_code=404, detail=f"Item not found: {item_id}")
    return {"success": True, "id": item_id}


@app.get("/events", response_model=EventListResponse)
def list_events_endpoint(d: WorldDirector = Depends(get_director)):
    events = d.list_active_events()
    return EventListResponse(events=events, total_count=len(events))


@app.delete("/events/{event_id}")
def stop_event_endpoint(event_id: str, d: WorldDirector = Depends(get_director)):
    if not d.stop_event(event_id):
        raise HTTPException(status_code=404, detail=f"Event not found: {event_id}")
    return {"success": True, "event_id": event_id}


@app.post("/events/cleanup")
def cleanup_events_endpoint(d: WorldDirector = Depends(get_director)):
    return {"removed": d.cleanup_orphaned_entities()}


@app.get("/snapshots", response_model=SnapshotListResponse)
def list_snapshots_endpoint(d: WorldDirector = Depends(get_director)):
    snapshots = [m.to_dict() for m in d.list_snapshots()]
    return SnapshotListResponse(snapshots=snapshots, total_count=len(snapshots))


@app.post("/snapshots")
def create_snapshot_endpoint(req: Optional[SnapshotCreateRequest] = None, d: WorldDirector = Depends(get_director)):
    try:
        return d.create_snapshot((req or SnapshotCreateRequest()).label).to_dict()
    except SnapshotError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/snapshots/{snapshot_id}/restore")
def restore_snapshot_endpoint(snapshot_id: str, d: WorldDirector = Depends(get_director)):
    try:
        return d.restore_snapshot(snapshot_id).to_dict()
    except RestoreError as e:
        status = 404 if "not found" in str(e).lower() else 400
        raise HTTPException(status_code=status, detail=str(e))


@app.delete("/snapshots/{snapshot_id}")
def delete_snapshot_endpoint(snapshot_id: str, d: WorldDirector = Depends(get_director)):
    if not d.delete_snapshot(snapshot_id):
        raise HTTPException(status_code=404, detail=f"Snapshot not found: {snapshot_id}")
    return {"success": True, "snapshot_id": snapshot_id}
