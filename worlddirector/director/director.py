"""
World director - owns every service and exposes the command surface used by the
automation loop, the event manager and the admin API.
"""

import random
import time
from collections import deque
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from util.logging import audit_event, logger
from ..core.config import (
    DATA_DIR,
    DIRECTOR_LOG_LIMIT,
    DIRECTOR_THOUGHT_LIMIT,
    SNAPSHOT_DIR,
)
from ..core.events import EventBus, GameEvent
from ..core.guardrails import GuardrailConfig, GuardrailStore
from ..core.proposals import (
    ContentKind,
    Proposal,
    ProposalNotFoundError,
    ProposalStatus,
    WorldEventType,
)
from ..core.publisher import Publisher
from ..core.registries import CharacterRegistry, ContentRegistry, ItemRegistry, LocationRegistry
from ..core.snapshots import SnapshotError, SnapshotManager, SnapshotManifest
from ..core.validator import validate
from ..core.world import (
    TAG_CHARACTER,
    TAG_STATIONARY,
    InMemoryWorld,
    WorldModel,
    spawn_character,
    spawn_item,
    spawn_location,
)
from ..generation import (
    CharacterGenerator,
    GenerationBackend,
    GenerationError,
    ItemGenerator,
    LocationGenerator,
    QuestGenerator,
)
from ..generation.base import BaseGenerator
from .activity import ActivityTracker
from .automation import AutomationLoop
from .chunks import ChunkTracker
from .lifecycle import ActiveEvent, EventLifecycleManager
from .settings import DirectorSettings, GlitchConfig, Personality, SettingsStore

ROAMING_SPAWN = (10, 10)
GLITCH_AREA = (-100, -100)
RATE_WINDOW_SEC = 60


class FeatureDisabledError(Exception):
    """Raised when a manual trigger targets a feature switched off in the guardrails."""
    pass


def _now_ms() -> int:
    return int(time.time() * 1000)


class WorldDirector:
    """Autonomous content and event director for one world."""

    def __init__(self, world: Optional[WorldModel] = None, bus: Optional[EventBus] = None,
                 guardrails: Optional[GuardrailStore] = None, backend: Optional[GenerationBackend] = None,
                 data_dir: str = DATA_DIR, snapshot_dir: str = SNAPSHOT_DIR, use_backend: bool = True):
        self.data_dir = Path(data_dir)
        self.world = world if world is not None else InMemoryWorld()
        self.bus = bus if bus is not None else EventBus()

        self.guardrails = guardrails or GuardrailStore(str(self.data_dir / "guardrails.json"))
        self.backend = backend or GenerationBackend(self.guardrails.get_config().profiles)
        self.use_backend = use_backend
        self.guardrails.subscribe(self._on_guardrails_changed)

        generated_dir = str(self.data_dir / "generated")
        static_dir = str(self.data_dir / "static")
        self.characters = CharacterRegistry(static_dir, generated_dir)
        self.items = ItemRegistry(static_dir, generated_dir)
        self.locations = LocationRegistry(static_dir, generated_dir)
        self.publisher = Publisher(generated_dir)

        self.generators: Dict[ContentKind, BaseGenerator] = {
            ContentKind.CHARACTER: CharacterGenerator(),
            ContentKind.ITEM: ItemGenerator(),
            ContentKind.QUEST: QuestGenerator(),
            ContentKind.LOCATION: LocationGenerator(),
        }

        self.settings_store = SettingsStore(str(self.data_dir / "director_config.json"))
        self.snapshots = SnapshotManager(str(self.data_dir), snapshot_dir)
        self.chunks = ChunkTracker(self.world, self.locations)
        self.activity = ActivityTracker(self.bus)
        self.lifecycle = EventLifecycleManager(self)
        self.automation = AutomationLoop(self)

        self.pending: List[Proposal] = []
        self.logs: deque = deque(maxlen=DIRECTOR_LOG_LIMIT)
        self.thoughts: deque = deque(maxlen=DIRECTOR_THOUGHT_LIMIT)
        self._listeners: List[Callable[[Dict[str, Any]], None]] = []
        self._generation_times: deque = deque()

        self.log("info", "World Director initialized")

    # --- lifecycle -------------------------------------------------------

    def start(self) -> None:
        """Start the automation loop and the guardrail watcher on the running loop."""
        self.automation.start()
        self.guardrails.start_watching()

    def stop(self) -> None:
        self.automation.stop()
        self.guardrails.stop_watching()

    # --- logs, thoughts and notifications --------------------------------

    def log(self, level: str, message: str) -> None:
        entry = {"timestamp": _now_ms(), "level": level, "message": message}
        self.logs.append(entry)
        if level in ("error", "warning"):
            getattr(logger, level)(message)
        else:
            logger.info(message)
        self._push("log", entry)

    def think(self, message: str) -> None:
        entry = {"timestamp": _now_ms(), "message": message}
        self.thoughts.append(entry)
        self._push("thought", entry)

    def subscribe_notifications(self, callback: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        """Register a push listener. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _push(self, kind: str, data: Any) -> None:
        for callback in list(self._listeners):
            try:
                callback({"type": kind, "data": data})
            except Exception as e:
                logger.debug(f"Notification listener failed: {e}")

    def broadcast(self, message: str, level: str = "info") -> None:
        """Announce a message to every player-facing channel."""
        payload = {"message": message, "level": level}
        self.bus.emit(GameEvent.BROADCAST, payload)
        self._push("broadcast", payload)

    def get_status(self) -> Dict[str, Any]:
        settings = self.settings
        return {
            "paused": settings.paused,
            "personality": settings.personality.model_dump(),
            "glitch": settings.glitch.model_dump(),
            "pending_proposals": len(self.pending),
            "active_events": [e.to_dict() for e in self.lifecycle.active_events],
            "generated_chunks": len(self.chunks.get_generated_chunks()),
            "automation_running": self.automation.running,
            "logs": list(self.logs)[-100:],
            "thoughts": list(self.thoughts),
        }

    # --- settings --------------------------------------------------------

    @property
    def settings(self) -> DirectorSettings:
        return self.settings_store.settings

    def pause(self) -> None:
        self.settings_store.set_paused(True)
        self.log("warning", "Director paused")

    def resume(self) -> None:
        self.settings_store.set_paused(False)
        self.log("success", "Director resumed")

    def update_personality(self, changes: Dict[str, Any]) -> Personality:
        personality = self.settings_store.update_personality(changes)
        self.log("info", f"Personality updated: {personality.model_dump()}")
        return personality

    def update_glitch_config(self, changes: Dict[str, Any]) -> GlitchConfig:
        glitch = self.settings_store.update_glitch(changes)
        self.log("info", f"Glitch config updated: {glitch.model_dump()}")
        return glitch

    # --- guardrails ------------------------------------------------------

    def config(self) -> GuardrailConfig:
        return self.guardrails.get_config()

    def get_guardrails(self) -> Dict[str, Any]:
        return self.guardrails.masked_config()

    def update_guardrails(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        self.guardrails.save_config(changes)
        self.log("info", "Guardrails updated")
        return self.guardrails.masked_config()

    def _on_guardrails_changed(self, config: GuardrailConfig) -> None:
        self.backend.update_profiles(config.profiles)

    # --- generation and the proposal workflow ----------------------------

    def _trim_generation_times(self) -> None:
        cutoff = time.time() - RATE_WINDOW_SEC
        while self._generation_times and self._generation_times[0] < cutoff:
            self._generation_times.popleft()

    def can_generate(self) -> bool:
        """True while generations in the last minute are under the throttle."""
        self._trim_generation_times()
        return len(self._generation_times) < self.config().throttles.max_generations_per_minute

    async def generate(self, kind: ContentKind, context: Optional[Dict[str, Any]] = None) -> Proposal:
        """Generate a draft and attach its validation errors."""
        kind = ContentKind(kind)
        generator = self.generators.get(kind)
        if generator is None:
            raise ValueError(f"No generator for {kind.value}")

        config = self.config()
        self._trim_generation_times()
        self._generation_times.append(time.time())
        proposal = await generator.generate(config, self.backend if self.use_backend else None, context)

        result = validate(proposal, config)
        proposal.validation_errors = result.errors
        logger.log_validation(proposal.id, result.errors)
        if proposal.degraded:
            self.log("warning", f"{kind.value} {proposal.payload.name} generated with fallback content")
        return proposal

    def _registry_for(self, kind: ContentKind) -> Optional[ContentRegistry]:
        return {
            ContentKind.CHARACTER: self.characters,
            ContentKind.ITEM: self.items,
            ContentKind.LOCATION: self.locations,
        }.get(kind)

    def auto_publish(self, proposal: Proposal) -> Proposal:
        """Approve and publish internally generated content without queueing it."""
        if proposal.status == ProposalStatus.DRAFT:
            proposal.approve()
        try:
            self.publisher.publish(proposal)
        except OSError as e:
            proposal.mark_failed()
            self.log("error", f"Failed to persist {proposal.kind.value} {proposal.payload.id}: {e}")
            return proposal

        registry = self._registry_for(proposal.kind)
        if registry is not None:
            registry.reload()
        return proposal

    def get_pending(self) -> List[Proposal]:
        return list(self.pending)

    def _find_pending(self, proposal_id: str) -> Proposal:
        for proposal in self.pending:
            if proposal.id == proposal_id:
                return proposal
        raise ProposalNotFoundError(proposal_id)

    def _drop_pending(self, proposal_id: str) -> None:
        self.pending = [p for p in self.pending if p.id != proposal_id]

    async def submit_proposal(self, proposal: Proposal) -> Proposal:
        """Queue a draft for review, or apply it at once when approval is not required.

        Drafts carrying validation errors are always queued.
        """
        if self.config().features.require_human_approval or proposal.validation_errors:
            self.pending = self.pending + [proposal]
            self.log("info", f"Proposal {proposal.id} ({proposal.kind.value}: {proposal.payload.name}) awaiting review")
            self._push("proposal", proposal.to_dict())
            return proposal
        return await self._apply(proposal)

    async def approve_proposal(self, proposal_id: str, actor: str = "admin") -> Proposal:
        """Approve a queued proposal and carry out its effects.

        Raises ProposalNotFoundError for an id that is not pending. A proposal that
        still fails validation stays queued as a draft with its errors refreshed.
        """
        proposal = self._find_pending(proposal_id)
        logger.log_proposal_decision(proposal_id, "approved", actor)
        return await self._apply(proposal)

    async def _apply(self, proposal: Proposal) -> Proposal:
        result = validate(proposal, self.config())
        proposal.validation_errors = result.errors
        if not result.valid:
            if proposal not in self.pending:
                self.pending = self.pending + [proposal]
            self.log("warning", f"Proposal {proposal.id} failed validation: {'; '.join(result.errors)}")
            return proposal

        proposal.approve()
        try:
            self.publisher.publish(proposal)
        except OSError as e:
            proposal.mark_failed()
            self._drop_pending(proposal.id)
            self.log("error", f"Failed to publish proposal {proposal.id}: {e}")
            return proposal

        self._drop_pending(proposal.id)
        registry = self._registry_for(proposal.kind)
        if registry is not None:
            registry.reload()

        if proposal.kind == ContentKind.EVENT:
            await self.lifecycle.trigger_world_event(
                proposal.payload.type, force=True, duration_override=proposal.payload.duration
            )
        elif proposal.kind == ContentKind.LOCATION:
            await self._spawn_location_with_vendor(proposal)

        self.log("success", f"Published {proposal.kind.value} {proposal.payload.name}")
        self._push("published", proposal.to_dict())
        return proposal

    async def _spawn_location_with_vendor(self, proposal: Proposal) -> None:
        payload = proposal.payload
        spawn_location(self.world, payload.model_dump())
        x, y = payload.coordinates.x, payload.coordinates.y
        self.chunks.mark_chunk_generated(*self.chunks.get_chunk_coords(x, y))

        try:
            vendor = await self.generate(ContentKind.CHARACTER, {
                "subtype": "merchant",
                "context": f"A street vendor working out of {payload.name}.",
                "generated_by": "director:vendor",
                "portrait": False,
            })
            self.auto_publish(vendor)
            spawn_character(self.world, vendor.payload.model_dump(), x, y, {TAG_STATIONARY})
        except Exception as e:
            self.log("error", f"Failed to spawn vendor for {payload.name}: {e}")

    def reject_proposal(self, proposal_id: str, actor: str = "admin", reason: str = "") -> bool:
        """Reject and drop a queued proposal. Unknown or already removed ids return False."""
        proposal = next((p for p in self.pending if p.id == proposal_id), None)
        if proposal is None:
            return False
        proposal.reject()
        self._drop_pending(proposal_id)
        logger.log_proposal_decision(proposal_id, "rejected", actor, reason)
        audit_event("proposal.rejected", {"proposal_id": proposal_id}, {"reason": reason})
        self.log("info", f"Rejected proposal {proposal_id}")
        return True

    def edit_proposal(self, proposal_id: str, payload_changes: Dict[str, Any]) -> Proposal:
        """Apply field edits to a queued draft; the result is revalidated."""
        proposal = self._find_pending(proposal_id)
        data = proposal.to_dict()
        data["payload"] = {**data["payload"], **payload_changes, "kind": proposal.kind.value}
        edited = Proposal.from_dict(data)
        edited.validation_errors = validate(edited, self.config()).errors
        self.pending = [edited if p.id == proposal_id else p for p in self.pending]
        return edited

    # --- events ----------------------------------------------------------

    async def trigger_world_event(self, event_type: Union[str, WorldEventType], force: bool = False,
                                  duration_override: Optional[int] = None,
                                  position: Optional[tuple] = None) -> Union[ActiveEvent, Proposal, None]:
        return await self.lifecycle.trigger_world_event(event_type, force, duration_override, position)

    def stop_event(self, event_id: str) -> bool:
        return self.lifecycle.stop_event(event_id)

    def list_active_events(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.lifecycle.active_events]

    def cleanup_orphaned_entities(self) -> int:
        return self.lifecycle.cleanup_orphaned_entities()

    async def manual_trigger(self, kind: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """Run an admin trigger by name.

        Content kinds are generated and submitted through the proposal workflow;
        named world events (and ``boss``) start immediately. ``event`` goes
        through the approval gate.
        """
        payload = dict(payload or {})
        features = self.config().features
        self.log("info", f"Manual trigger: {kind}")

        if kind in ("character", "mob"):
            if not features.enable_characters:
                raise FeatureDisabledError("Character generation is disabled")
            context = {"generated_by": "admin", **payload}
            if kind == "mob":
                context["subtype"] = "mob"
            return await self.submit_proposal(await self.generate(ContentKind.CHARACTER, context))

        if kind == "item":
            if not features.enable_items:
                raise FeatureDisabledError("Item generation is disabled")
            return await self.submit_proposal(
                await self.generate(ContentKind.ITEM, {"generated_by": "admin", **payload})
            )

        if kind == "quest":
            if not features.enable_quests:
                raise FeatureDisabledError("Quest generation is disabled")
            return await self.submit_proposal(
                await self.generate(ContentKind.QUEST, {"generated_by": "admin", **payload})
            )

        if kind == "location":
            if not features.enable_expansions:
                raise FeatureDisabledError("Expansions are disabled")
            if "x" not in payload or "y" not in payload:
                spot = self.automation.find_adjacent_empty_spot()
                if spot is None:
                    raise ValueError("No free location spot available")
                payload["x"], payload["y"] = spot
            elif self.locations.at(payload["x"], payload["y"]) is not None:
                raise ValueError(f"Location spot {payload['x']},{payload['y']} is already occupied")
            return await self.submit_proposal(
                await self.generate(ContentKind.LOCATION, {"generated_by": "admin", **payload})
            )

        if kind == "boss":
            return await self.trigger_world_event(WorldEventType.BOSS_SPAWN, force=True)

        if kind == "event":
            event_type = payload.get("event_type")
            if event_type not in {t.value for t in WorldEventType}:
                raise ValueError(f"Unknown event type: {event_type}")
            return await self.trigger_world_event(event_type, duration_override=payload.get("duration"))

        if kind in {t.value for t in WorldEventType}:
            return await self.trigger_world_event(kind, force=True, duration_override=payload.get("duration"))

        raise ValueError(f"Unknown trigger: {kind}")

    # --- regions ---------------------------------------------------------

    def get_chunks(self) -> Dict[str, Any]:
        return {
            "chunk_size": self.chunks.chunk_size,
            "generated": [list(c) for c in self.chunks.get_generated_chunks()],
            "frontier": [list(c) for c in self.chunks.get_chunks_to_generate()],
        }

    async def generate_chunk(self, cx: int, cy: int) -> List[Dict[str, Any]]:
        """Fill an ungenerated chunk with 3-5 published locations and mark it."""
        if self.chunks.is_chunk_generated(cx, cy):
            self.log("info", f"Chunk {cx},{cy} already generated")
            return []

        bounds = self.chunks.get_chunk_bounds(cx, cy)
        created = []
        taken = set()
        for _ in range(random.randint(3, 5)):
            x = random.randint(bounds["min_x"], bounds["max_x"])
            y = random.randint(bounds["min_y"], bounds["max_y"])
            if (x, y) in taken or self.locations.at(x, y) is not None:
                continue
            taken.add((x, y))
            try:
                proposal = await self.generate(
                    ContentKind.LOCATION, {"x": x, "y": y, "generated_by": f"chunk:{cx},{cy}"}
                )
                self.auto_publish(proposal)
                if proposal.status == ProposalStatus.PUBLISHED:
                    spawn_location(self.world, proposal.payload.model_dump())
                    created.append(proposal.payload.model_dump())
            except Exception as e:
                self.log("error", f"Failed to generate location at {x},{y}: {e}")

        self.chunks.mark_chunk_generated(cx, cy)
        self.log("success", f"Generated chunk {cx},{cy} with {len(created)} locations")
        return created

    def delete_chunk(self, cx: int, cy: int) -> bool:
        if not self.chunks.is_chunk_generated(cx, cy):
            return False
        self.maybe_snapshot(f"chunk_delete_{cx}_{cy}")
        deleted = self.chunks.delete_chunk(cx, cy)
        if deleted:
            self.log("warning", f"Deleted chunk {cx},{cy}")
        return deleted

    # --- definitions -----------------------------------------------------

    def get_characters(self) -> List[Dict[str, Any]]:
        return self.characters.all()

    def get_character(self, character_id: str) -> Optional[Dict[str, Any]]:
        return self.characters.get(character_id)

    def update_character(self, character_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.characters.update(character_id, changes)

    def delete_character(self, character_id: str) -> bool:
        """Delete a character definition and every live instance of it."""
        if not self.characters.delete(character_id):
            return False
        removed = 0
        for entity in self.world.get_entities_with(TAG_CHARACTER):
            if entity.components.get("definition_id") == character_id and self.world.remove_entity(entity.id):
                removed += 1
        self.log("warning", f"Deleted character {character_id} and {removed} live instances")
        return True

    def get_items(self) -> List[Dict[str, Any]]:
        return self.items.all()

    def get_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        return self.items.get(item_id)

    def update_item(self, item_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.items.update(item_id, changes)

    def delete_item(self, item_id: str) -> bool:
        deleted = self.items.delete(item_id)
        if deleted:
            self.log("warning", f"Deleted item {item_id}")
        return deleted

    async def spawn_roaming_character(self) -> Dict[str, Any]:
        proposal = await self.generate(ContentKind.CHARACTER, {"generated_by": "director:roaming"})
        self.auto_publish(proposal)
        entity = spawn_character(self.world, proposal.payload.model_dump(), *ROAMING_SPAWN)
        self.log("success", f"Spawned roaming character {entity.name}")
        return entity.to_dict()

    async def regenerate_portrait(self, character_id: str) -> Optional[Dict[str, Any]]:
        """Render a new portrait for an existing character. Unknown ids return None."""
        character = self.characters.get(character_id)
        if character is None:
            return None
        if not self.use_backend:
            raise GenerationError("No generation backend available")

        generator = self.generators[ContentKind.CHARACTER]
        url = await generator.generate_portrait(
            self.backend, f"{character.get('name')}: {character.get('description', '')}"
        )
        self.log("success", f"Regenerated portrait for {character.get('name')}")
        return self.characters.update(character["id"], {"portrait_url": url})

    async def generate_glitch_run(self) -> Dict[str, List[Dict[str, Any]]]:
        """Populate the glitch area with mobs and items per the glitch config."""
        glitch = self.settings.glitch
        result = {"mobs": [], "items": []}

        for _ in range(glitch.mob_count):
            try:
                proposal = await self.generate(ContentKind.CHARACTER, {
                    "subtype": "mob", "generated_by": "director:glitch", "portrait": False,
                })
                self.auto_publish(proposal)
                spawn_character(self.world, proposal.payload.model_dump(),
                                GLITCH_AREA[0] + random.randint(-5, 5), GLITCH_AREA[1] + random.randint(-5, 5))
                result["mobs"].append(proposal.payload.model_dump())
            except Exception as e:
                self.log("error", f"Glitch mob failed: {e}")

        for _ in range(glitch.item_count):
            try:
                legendary = random.random() < glitch.legendary_chance
                context = {"generated_by": "director:glitch", "portrait": False}
                if legendary:
                    context["rarity"] = "legendary"
                proposal = await self.generate(ContentKind.ITEM, context)
                if legendary:
                    proposal.payload.name = f"[GLITCH] {proposal.payload.name}"
                self.auto_publish(proposal)
                spawn_item(self.world, proposal.payload.model_dump(),
                           GLITCH_AREA[0] + random.randint(-5, 5), GLITCH_AREA[1] + random.randint(-5, 5))
                result["items"].append(proposal.payload.model_dump())
            except Exception as e:
                self.log("error", f"Glitch item failed: {e}")

        self.log("success", f"Glitch run: {len(result['mobs'])} mobs, {len(result['items'])} items")
        return result

    # --- snapshots -------------------------------------------------------

    def maybe_snapshot(self, reason: str) -> Optional[SnapshotManifest]:
        """Snapshot before a high-risk action when enabled. Failures are logged, not raised."""
        if not self.config().features.auto_snapshot_high_risk:
            return None
        try:
            return self.snapshots.create_snapshot(f"auto:{reason}")
        except SnapshotError as e:
            self.log("error", f"Auto snapshot before {reason} failed: {e}")
            return None

    def create_snapshot(self, label: str = "manual") -> SnapshotManifest:
        manifest = self.snapshots.create_snapshot(label)
        self.log("success", f"Snapshot {manifest.snapshot_id} created")
        return manifest

    def list_snapshots(self) -> List[SnapshotManifest]:
        return self.snapshots.list_snapshots()

    def delete_snapshot(self, snapshot_id: str) -> bool:
        return self.snapshots.delete_snapshot(snapshot_id)

    def restore_snapshot(self, snapshot_id: str) -> SnapshotManifest:
        """Restore the data directory and reload everything read from it."""
        self.maybe_snapshot("pre_restore")
        manifest = self.snapshots.restore_snapshot(snapshot_id)

        config = self.guardrails.load()
        self.backend.update_profiles(config.profiles)
        self.settings_store.load()
        for registry in (self.characters, self.items, self.locations):
            registry.reload()
        self.chunks.reload()

        self.log("warning", f"Restored snapshot {snapshot_id}")
        return manifest
