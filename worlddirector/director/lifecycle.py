"""
Event lifecycle manager - time-bounded world events and the entities they own.
Expiry is found by polling; teardown removes every owned entity exactly once.
"""

import random
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from util.logging import logger
from ..core.events import GameEvent
from ..core.proposals import (
    CharacterStats,
    ContentKind,
    EventPayload,
    Proposal,
    WorldEventType,
    new_content_id,
)
from ..core.world import (
    TAG_EVENT_OWNED,
    TAG_HIDDEN,
    TAG_STATIONARY,
    spawn_character,
    spawn_item,
)

if TYPE_CHECKING:
    from .director import WorldDirector

MINUTE_MS = 60 * 1000

EVENT_DURATIONS = {
    WorldEventType.MOB_INVASION: 30 * MINUTE_MS,
    WorldEventType.BOSS_SPAWN: 15 * MINUTE_MS,
    WorldEventType.TRAVELING_MERCHANT: 20 * MINUTE_MS,
    WorldEventType.DATA_COURIER: 20 * MINUTE_MS,
    WorldEventType.SCAVENGER_HUNT: 20 * MINUTE_MS,
}

START_MESSAGES = {
    WorldEventType.MOB_INVASION: ("danger", "WARNING: Hostile signatures flooding the sector. Defend yourselves!"),
    WorldEventType.BOSS_SPAWN: ("danger", "ALERT: A massive anomaly has manifested. Approach with extreme caution."),
    WorldEventType.TRAVELING_MERCHANT: ("success", "A traveling merchant has been spotted in the sector. Seek them out before they move on!"),
    WorldEventType.DATA_COURIER: ("info", "URGENT: A data courier is seeking assistance with a time-sensitive delivery."),
    WorldEventType.SCAVENGER_HUNT: ("warning", "ENCRYPTED TRANSMISSION: The first clue awaits those brave enough to seek the hidden treasure..."),
}

END_MESSAGES = {
    WorldEventType.MOB_INVASION: "The invasion has been repelled. The streets are quiet... for now.",
    WorldEventType.BOSS_SPAWN: "The anomaly has dissipated.",
    WorldEventType.TRAVELING_MERCHANT: "The traveling merchant has packed up and moved on.",
    WorldEventType.DATA_COURIER: "The courier's window has closed. The package is gone.",
    WorldEventType.SCAVENGER_HUNT: "The treasure signal has gone dark.",
}

ORIGIN = (10, 10)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ActiveEvent:
    """A running world event and the entity ids it exclusively owns."""
    id: str
    type: WorldEventType
    start_time: int
    duration: int
    entity_ids: List[str] = field(default_factory=list)

    @property
    def expires_at(self) -> int:
        return self.start_time + self.duration

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["expires_at"] = self.expires_at
        return data


def _scatter(center: tuple, spread: int = 5) -> tuple:
    return center[0] + random.randint(-spread, spread), center[1] + random.randint(-spread, spread)


class EventLifecycleManager:
    """Spawns world events through the director and tears them down on expiry or stop."""

    def __init__(self, director: "WorldDirector"):
        self.director = director
        self._active: List[ActiveEvent] = []

    @property
    def active_events(self) -> List[ActiveEvent]:
        return list(self._active)

    def register(self, event_type: WorldEventType, entity_ids: List[str], duration: int,
                 start_time: Optional[int] = None) -> Optional[ActiveEvent]:
        """Track spawned entities under a new event. Nothing is tracked for an empty spawn."""
        if not entity_ids:
            return None
        event = ActiveEvent(
            id=f"evt_{uuid.uuid4().hex[:12]}",
            type=WorldEventType(event_type),
            start_time=start_time if start_time is not None else _now_ms(),
            duration=duration,
            entity_ids=list(entity_ids),
        )
        self._active = self._active + [event]
        logger.log_event_lifecycle(event.id, event.type.value, "started", len(event.entity_ids),
                                   {"duration_ms": duration})
        return event

    async def trigger_world_event(self, event_type: Union[str, WorldEventType], force: bool = False,
                                  duration_override: Optional[int] = None,
                                  position: Optional[tuple] = None) -> Union[ActiveEvent, Proposal, None]:
        """Start an event, or queue an event proposal when approval is required and not forced.

        Returns the ActiveEvent, the queued Proposal, or None if nothing could be spawned.
        """
        event_type = WorldEventType(event_type)
        duration = duration_override or EVENT_DURATIONS[event_type]
        config = self.director.config()

        if config.features.require_human_approval and not force:
            proposal = Proposal(
                kind=ContentKind.EVENT,
                payload=EventPayload(
                    id=new_content_id("event"),
                    type=event_type,
                    description=START_MESSAGES[event_type][1],
                    duration=duration,
                    zone_id=f"{position[0]},{position[1]}" if position else None,
                ),
                generated_by="director:event",
            )
            self.director.log("info", f"Event {event_type.value} queued for approval ({proposal.id})")
            await self.director.submit_proposal(proposal)
            return proposal

        center = tuple(position) if position else ORIGIN
        self.director.log("info", f"Triggering {event_type.value} at {center[0]},{center[1]} for {duration / MINUTE_MS:.1f}m")
        level, message = START_MESSAGES[event_type]
        self.director.broadcast(message, level)

        spawners = {
            WorldEventType.MOB_INVASION: self._spawn_invasion,
            WorldEventType.BOSS_SPAWN: self._spawn_boss,
            WorldEventType.TRAVELING_MERCHANT: self._spawn_merchant,
            WorldEventType.DATA_COURIER: self._spawn_courier,
            WorldEventType.SCAVENGER_HUNT: self._spawn_scavenger_hunt,
        }
        entity_ids = await spawners[event_type](center)

        event = self.register(event_type, entity_ids, duration)
        if event is None:
            self.director.log("warning", f"Event {event_type.value} spawned nothing and was not registered")
            return None

        self.director.bus.emit(GameEvent.WORLD_EVENT_STARTED, event.to_dict())
        self.director.log("success", f"Event {event_type.value} ({event.id}) registered with {len(entity_ids)} entities")
        return event

    async def _spawn_invasion(self, center: tuple) -> List[str]:
        entity_ids = []
        count = random.randint(10, 19)
        for _ in range(count):
            try:
                proposal = await self.director.generate(
                    ContentKind.CHARACTER,
                    {"subtype": "mob", "generated_by": "event:invasion", "portrait": False},
                )
                self.director.auto_publish(proposal)
                x, y = _scatter(center)
                entity = spawn_character(self.director.world, proposal.payload.model_dump(), x, y, {TAG_EVENT_OWNED})
                entity_ids.append(entity.id)
            except Exception as e:
                # One failed mob never aborts the rest of the wave
                logger.error(f"Failed to spawn invasion mob: {e}")
        self.director.log("info", f"Invasion spawned {len(entity_ids)}/{count} mobs")
        return entity_ids

    async def generate_boss(self, position: tuple = ORIGIN, extra_tags: Optional[set] = None) -> Optional[str]:
        """Generate a boss with linked legendary loot and spawn it. Returns the entity id."""
        self.director.maybe_snapshot("boss_spawn")

        proposal = await self.director.generate(
            ContentKind.CHARACTER, {"subtype": "boss", "generated_by": "event:boss"}
        )
        payload = proposal.payload
        payload.stats = CharacterStats(
            health=payload.stats.health * 5,
            attack=payload.stats.attack * 2,
            defense=payload.stats.defense * 2,
        )

        try:
            loot = await self.director.generate(
                ContentKind.ITEM, {"subtype": "legendary", "generated_by": "boss:loot", "portrait": False}
            )
            self.director.auto_publish(loot)
            payload.equipment = payload.equipment + [loot.payload.id]
        except Exception as e:
            logger.error(f"Failed to generate boss loot: {e}")

        self.director.auto_publish(proposal)
        entity = spawn_character(self.director.world, payload.model_dump(), position[0], position[1],
                                 {TAG_EVENT_OWNED} | set(extra_tags or ()))
        self.director.log("success", f"Boss {payload.name} spawned at {position[0]},{position[1]}")
        return entity.id

    async def _spawn_boss(self, center: tuple) -> List[str]:
        try:
            entity_id = await self.generate_boss(center)
        except Exception as e:
            logger.error(f"Failed to spawn boss: {e}")
            return []
        return [entity_id] if entity_id else []

    async def _event_character(self, subtype: str, tag: str, context_text: str) -> Proposal:
        proposal = await self.director.generate(
            ContentKind.CHARACTER,
            {"subtype": subtype, "generated_by": f"event:{subtype}", "context": context_text},
        )
        proposal.payload.tags = [tag, "passive"]
        proposal.payload.behavior = "passive"
        proposal.payload.can_move = False
        return proposal

    async def _spawn_merchant(self, center: tuple) -> List[str]:
        try:
            merchant = await self._event_character(
                "merchant", "event_merchant",
                "A wandering merchant with rare and exotic goods and stories from distant sectors.",
            )
            stock = []
            for _ in range(random.randint(3, 5)):
                try:
                    item = await self.director.generate(ContentKind.ITEM, {
                        "rarity": "epic" if random.random() < 0.3 else "rare",
                        "generated_by": "event:merchant_inventory",
                        "portrait": False,
                    })
                    self.director.auto_publish(item)
                    stock.append(item.payload.id)
                except Exception as e:
                    logger.error(f"Failed to stock merchant item: {e}")

            merchant.payload.equipment = merchant.payload.equipment + stock
            self.director.auto_publish(merchant)
            x, y = _scatter(center)
            entity = spawn_character(self.director.world, merchant.payload.model_dump(), x, y,
                                     {TAG_EVENT_OWNED, TAG_STATIONARY})
            entity.components["inventory"] = {"title": f"{merchant.payload.name} - Exotic Wares", "items": stock}
            self.director.log("success", f"Spawned traveling merchant at {x},{y} with {len(stock)} items")
            return [entity.id]
        except Exception as e:
            logger.error(f"Failed to spawn traveling merchant: {e}")
            return []

    async def _spawn_courier(self, center: tuple) -> List[str]:
        try:
            courier = await self._event_character(
                "courier", "event_courier",
                "A nervous courier with an urgent package that needs a trustworthy runner.",
            )
            package = await self.director.generate(ContentKind.ITEM, {
                "type": "item",
                "name": "Sealed Data Package",
                "generated_by": "event:courier_package",
                "context": "A sealed package or data chip that needs urgent delivery.",
                "portrait": False,
            })
            self.director.auto_publish(package)
            courier.payload.equipment = courier.payload.equipment + [package.payload.id]
            self.director.auto_publish(courier)

            quest = await self.director.generate(ContentKind.QUEST, {
                "quest_type": "delivery",
                "giver_id": courier.payload.id,
                "giver_name": courier.payload.name,
                "giver_description": courier.payload.description,
                "target_id": package.payload.id,
                "step_description": f"Deliver the {package.payload.name} before the courier's window closes.",
                "generated_by": "event:courier_quest",
            })
            self.director.auto_publish(quest)

            x, y = _scatter(center)
            entity = spawn_character(self.director.world, courier.payload.model_dump(), x, y,
                                     {TAG_EVENT_OWNED, TAG_STATIONARY})
            entity.components["carrying"] = [package.payload.id]
            entity.components["quest_id"] = quest.payload.id
            self.director.log("success", f"Spawned data courier at {x},{y} with quest {quest.payload.id}")
            return [entity.id]
        except Exception as e:
            logger.error(f"Failed to spawn data courier: {e}")
            return []

    async def _spawn_scavenger_hunt(self, center: tuple) -> List[str]:
        try:
            giver = await self._event_character(
                "mysterious", "event_scavenger",
                "A hooded figure who speaks in riddles and offers the first clue to a treasure hunt.",
            )
            treasure = await self.director.generate(ContentKind.ITEM, {
                "rarity": "legendary",
                "generated_by": "event:scavenger_treasure",
                "portrait": False,
            })
            self.director.auto_publish(treasure)
            self.director.auto_publish(giver)

            quest = await self.director.generate(ContentKind.QUEST, {
                "quest_type": "collection",
                "giver_id": giver.payload.id,
                "giver_name": giver.payload.name,
                "giver_description": giver.payload.description,
                "target_id": treasure.payload.id,
                "step_description": f"Find the hidden {treasure.payload.name}.",
                "reward_items": [treasure.payload.id],
                "generated_by": "event:scavenger_quest",
            })
            self.director.auto_publish(quest)

            gx, gy = _scatter(center)
            giver_entity = spawn_character(self.director.world, giver.payload.model_dump(), gx, gy,
                                           {TAG_EVENT_OWNED, TAG_STATIONARY})
            giver_entity.components["quest_id"] = quest.payload.id

            tx, ty = _scatter(center, spread=15)
            treasure_entity = spawn_item(self.director.world, treasure.payload.model_dump(), tx, ty,
                                         {TAG_EVENT_OWNED, TAG_HIDDEN})
            self.director.log("success", f"Scavenger hunt started: giver at {gx},{gy}, treasure hidden")
            return [giver_entity.id, treasure_entity.id]
        except Exception as e:
            logger.error(f"Failed to start scavenger hunt: {e}")
            return []

    def _teardown(self, event: ActiveEvent, reason: str) -> int:
        world = self.director.world
        removed = 0
        for entity_id in event.entity_ids:
            if world.get_entity(entity_id) is not None and world.remove_entity(entity_id):
                removed += 1

        self.director.broadcast(END_MESSAGES[event.type], "system")
        self.director.bus.emit(GameEvent.WORLD_EVENT_ENDED, {**event.to_dict(), "reason": reason})
        logger.log_event_lifecycle(event.id, event.type.value, reason, removed)
        return removed

    def check_active_events(self, now: Optional[int] = None) -> List[ActiveEvent]:
        """Tear down every event past start + duration. Returns the events that ended."""
        now = now if now is not None else _now_ms()
        expired = [e for e in self._active if e.is_expired(now)]
        if not expired:
            return []

        for event in expired:
            self.director.log("info", f"Event {event.type.value} ({event.id}) expired, cleaning up")
            self._teardown(event, "expired")

        expired_ids = {e.id for e in expired}
        self._active = [e for e in self._active if e.id not in expired_ids]
        return expired

    def stop_event(self, event_id: str) -> bool:
        """Tear down an event now. Unknown ids return False."""
        event = next((e for e in self._active if e.id == event_id), None)
        if event is None:
            self.director.log("warning", f"Cannot stop event {event_id}: not found")
            return False

        removed = self._teardown(event, "stopped")
        self._active = [e for e in self._active if e.id != event_id]
        self.director.log("success", f"Event {event_id} stopped, removed {removed} entities")
        return True

    def cleanup_orphaned_entities(self) -> int:
        """Remove event-owned entities that no active event claims."""
        owned = {entity_id for event in self._active for entity_id in event.entity_ids}
        removed = 0
        for entity in self.director.world.get_entities_with(TAG_EVENT_OWNED):
            if entity.id not in owned and self.director.world.remove_entity(entity.id):
                removed += 1
        if removed:
            self.director.log("info", f"Cleaned up {removed} orphaned event entities")
        return removed
