"""
Chunk tracker - which fixed-size regions of the world have been procedurally expanded.
"""

import math
from typing import Dict, List, Set, Tuple

from util.logging import logger
from ..core.registries import LocationRegistry
from ..core.world import TAG_ACTOR, TAG_CHARACTER, TAG_ITEM, TAG_LOCATION, WorldModel

CHUNK_SIZE = 20


def chunk_key(cx: int, cy: int) -> str:
    return f"{cx},{cy}"


class ChunkTracker:
    """Set of generated region keys, seeded from the origin and every persisted location."""

    def __init__(self, world: WorldModel, locations: LocationRegistry, chunk_size: int = CHUNK_SIZE):
        self.world = world
        self.locations = locations
        self.chunk_size = chunk_size
        self._generated: Set[str] = set()
        self.reload()

    def reload(self) -> None:
        """Rebuild the generated set from the origin chunk and the location registry."""
        self._generated = {chunk_key(0, 0)}
        for x, y in self.locations.coordinates():
            self._generated.add(chunk_key(*self.get_chunk_coords(x, y)))

    def get_chunk_coords(self, x: float, y: float) -> Tuple[int, int]:
        return math.floor(x / self.chunk_size), math.floor(y / self.chunk_size)

    def is_chunk_generated(self, cx: int, cy: int) -> bool:
        return chunk_key(cx, cy) in self._generated

    def mark_chunk_generated(self, cx: int, cy: int) -> None:
        self._generated.add(chunk_key(cx, cy))

    def get_generated_chunks(self) -> List[Tuple[int, int]]:
        return sorted(tuple(int(v) for v in key.split(",")) for key in self._generated)

    def get_chunk_bounds(self, cx: int, cy: int) -> Dict[str, int]:
        """Inclusive world-coordinate bounds of a chunk."""
        return {
            "min_x": cx * self.chunk_size,
            "max_x": (cx + 1) * self.chunk_size - 1,
            "min_y": cy * self.chunk_size,
            "max_y": (cy + 1) * self.chunk_size - 1,
        }

    def get_chunks_to_generate(self) -> List[Tuple[int, int]]:
        """Frontier: chunks holding or bordering a positioned actor that are not generated yet."""
        frontier = set()
        for entity in self.world.get_entities_with(TAG_ACTOR):
            if entity.position is None:
                continue
            cx, cy = self.get_chunk_coords(*entity.position)
            for dx in (-1, 0, 1):
                for dy in (-1, 0, 1):
                    if not self.is_chunk_generated(cx + dx, cy + dy):
                        frontier.add((cx + dx, cy + dy))
        return sorted(frontier)

    def delete_chunk(self, cx: int, cy: int) -> bool:
        """Remove a chunk's live entities and persisted locations and unmark it.

        Returns False for a chunk that was never generated.
        """
        key = chunk_key(cx, cy)
        if key not in self._generated:
            return False

        bounds = self.get_chunk_bounds(cx, cy)

        def inside(position) -> bool:
            return (position is not None
                    and bounds["min_x"] <= position[0] <= bounds["max_x"]
                    and bounds["min_y"] <= position[1] <= bounds["max_y"])

        removed_entities = 0
        for tag in (TAG_LOCATION, TAG_CHARACTER, TAG_ITEM):
            for entity in self.world.get_entities_with(tag):
                if inside(entity.position) and self.world.remove_entity(entity.id):
                    removed_entities += 1

        removed_records = self.locations.remove_in_bounds(
            bounds["min_x"], bounds["min_y"], bounds["max_x"], bounds["max_y"]
        )
        self._generated.discard(key)

        logger.log_operation("chunk.delete", "success", {
            "chunk": key,
            "entities_removed": removed_entities,
            "records_removed": removed_records,
        })
        return True
