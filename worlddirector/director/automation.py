"""
Automation loop - periodic personality-driven checks that spawn events and expand the map.
"""

import asyncio
import random
import time
from typing import TYPE_CHECKING, Optional, Tuple

from util.logging import logger
from ..core.config import DIRECTOR_TICK_SEC
from ..core.proposals import ContentKind, ProposalStatus, WorldEventType

if TYPE_CHECKING:
    from .director import WorldDirector

INTERVENTION_CHANCE = 0.2
NEIGHBOUR_OFFSETS = ((1, 0), (-1, 0), (0, 1), (0, -1))
DEFAULT_EXPANSION_SPOT = (10, 10)


class AutomationLoop:
    """Drives the director on a fixed tick while it is not paused."""

    def __init__(self, director: "WorldDirector", interval: float = DIRECTOR_TICK_SEC):
        self.director = director
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Automation loop started with {self.interval}s tick")

    def stop(self) -> None:
        if self._task:
            self._task.cancel()
            self._task = None
            logger.info("Automation loop stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Automation tick failed: {e}")

    async def tick(self) -> None:
        """One pass: expire events, then run each check in isolation."""
        if self.director.settings.paused:
            self.director.think("Director is paused. Watching.")
            return

        self.director.lifecycle.check_active_events()

        for check_name, check in (
            ("aggression", self.check_aggression),
            ("expansion", self.check_expansion),
            ("chaos", self.check_chaos),
            ("intervention", self.check_intervention),
        ):
            start_time = time.time()
            try:
                outcome = await check()
                logger.log_automation_check(check_name, start_time, time.time(), "success",
                                            {"outcome": outcome})
            except Exception as e:
                logger.log_automation_check(check_name, start_time, time.time(), "failed",
                                            {"error": str(e)})
                self.director.log("error", f"Automation check {check_name} failed: {e}")

    async def check_aggression(self) -> str:
        trait = self.director.settings.personality.aggression
        if not trait.enabled:
            return "disabled"
        threshold = trait.value * self.director.config().budgets.aggression_probability
        if random.random() >= threshold:
            return "idle"
        self.director.think("The streets are too calm. Sending trouble.")
        await self.director.trigger_world_event(WorldEventType.MOB_INVASION)
        return "invasion"

    async def check_expansion(self) -> str:
        trait = self.director.settings.personality.expansion
        config = self.director.config()
        if not trait.enabled or not config.features.enable_expansions:
            return "disabled"
        if random.random() >= trait.value * config.budgets.expansion_probability:
            return "idle"

        pending_locations = [
            p for p in self.director.pending
            if p.kind == ContentKind.LOCATION and p.status == ProposalStatus.DRAFT
        ]
        if len(pending_locations) >= config.throttles.max_active_expansions:
            self.director.think("Expansion deferred: proposals already awaiting review.")
            return "throttled"
        if not self.director.can_generate():
            self.director.think("Expansion deferred: generation rate limit reached.")
            return "throttled"

        spot = self.find_adjacent_empty_spot()
        if spot is None:
            return "no_space"

        x, y = spot
        self.director.think(f"The map feels small. Drafting a new location at {x},{y}.")
        proposal = await self.director.generate(
            ContentKind.LOCATION, {"x": x, "y": y, "generated_by": "director:expansion"}
        )
        await self.director.submit_proposal(proposal)
        return "proposed"

    def find_adjacent_empty_spot(self) -> Optional[Tuple[int, int]]:
        """A free cell next to an existing room, skipping cells with a pending location."""
        locations = self.director.locations
        rooms = locations.coordinates()
        if not rooms:
            return DEFAULT_EXPANSION_SPOT

        pending = {
            (p.payload.coordinates.x, p.payload.coordinates.y)
            for p in self.director.pending
            if p.kind == ContentKind.LOCATION
        }
        random.shuffle(rooms)
        for x, y in rooms:
            for dx, dy in NEIGHBOUR_OFFSETS:
                candidate = (x + dx, y + dy)
                if locations.at(*candidate) is None and candidate not in pending:
                    return candidate
        return None

    async def check_chaos(self) -> str:
        trait = self.director.settings.personality.chaos
        if not trait.enabled:
            return "disabled"
        if random.random() >= trait.value * self.director.config().budgets.chaos_probability:
            return "idle"
        self.director.think("A ripple of static passes through the grid.")
        return "ripple"

    async def check_intervention(self) -> str:
        activity = self.director.activity
        activity.update()
        quiet = activity.get_quiet_zones()
        if not quiet or random.random() >= INTERVENTION_CHANCE:
            return "idle"

        zone = random.choice(quiet)
        x, y = activity.zone_center(zone)
        self.director.think(f"Zone {zone[0]},{zone[1]} has gone quiet. Stirring things up.")
        await self.director.trigger_world_event(WorldEventType.MOB_INVASION, position=(x, y))
        return "invasion"
