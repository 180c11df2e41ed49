"""
Activity tracker - decaying per-zone interaction weight used to find quiet zones.
"""

import math
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..core.events import EventBus, GameEvent

ZONE_SIZE = 10
MOVE_WEIGHT = 1.0
COMBAT_WEIGHT = 5.0
DECAY_FACTOR = 0.95
QUIET_AFTER_MS = 5 * 60 * 1000
QUIET_WEIGHT = 10.0


@dataclass
class ZoneActivity:
    interaction_count: float = 0.0
    last_interaction: int = 0  # epoch ms


def _now_ms() -> int:
    return int(time.time() * 1000)


class ActivityTracker:
    """Listens to movement and combat notifications and keeps a weight per zone."""

    def __init__(self, bus: Optional[EventBus] = None, zone_size: int = ZONE_SIZE):
        self.zone_size = zone_size
        self.zones: Dict[Tuple[int, int], ZoneActivity] = {}
        if bus is not None:
            bus.subscribe(GameEvent.ACTOR_MOVED, self._on_moved)
            bus.subscribe(GameEvent.COMBAT_STARTED, self._on_combat)

    def zone_for(self, x: float, y: float) -> Tuple[int, int]:
        return math.floor(x / self.zone_size), math.floor(y / self.zone_size)

    def zone_center(self, zone: Tuple[int, int]) -> Tuple[int, int]:
        half = self.zone_size // 2
        return zone[0] * self.zone_size + half, zone[1] * self.zone_size + half

    def _on_moved(self, payload: Dict[str, Any]) -> None:
        if "x" in payload and "y" in payload:
            self.record(payload["x"], payload["y"], MOVE_WEIGHT)

    def _on_combat(self, payload: Dict[str, Any]) -> None:
        if "x" in payload and "y" in payload:
            self.record(payload["x"], payload["y"], COMBAT_WEIGHT)

    def record(self, x: float, y: float, weight: float, now: Optional[int] = None) -> None:
        zone = self.zones.setdefault(self.zone_for(x, y), ZoneActivity())
        zone.interaction_count += weight
        zone.last_interaction = now if now is not None else _now_ms()

    def update(self) -> None:
        """Decay every zone by a fixed fraction."""
        for zone in self.zones.values():
            zone.interaction_count *= DECAY_FACTOR

    def get_quiet_zones(self, now: Optional[int] = None) -> List[Tuple[int, int]]:
        """Known zones untouched for longer than the quiet window and carrying little weight."""
        now = now if now is not None else _now_ms()
        return [
            key for key, zone in self.zones.items()
            if now - zone.last_interaction > QUIET_AFTER_MS and zone.interaction_count < QUIET_WEIGHT
        ]
