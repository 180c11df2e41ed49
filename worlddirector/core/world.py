"""
World model contract - the entity store the director adds to, removes from and queries.
Includes an in-memory implementation used by the admin server and tests.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

# Capability tags the director relies on
TAG_ACTOR = "actor"
TAG_CHARACTER = "character"
TAG_ITEM = "item"
TAG_LOCATION = "location"
TAG_EVENT_OWNED = "event_owned"
TAG_HIDDEN = "hidden"
TAG_STATIONARY = "stationary"


@dataclass
class Entity:
    """A live world entity: identity, position, capability tags and a free-form component bag."""
    id: str
    name: str
    tags: Set[str] = field(default_factory=set)
    position: Optional[Tuple[int, int]] = None
    components: Dict[str, Any] = field(default_factory=dict)

    def has(self, tag: str) -> bool:
        return tag in self.tags

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tags": sorted(self.tags),
            "position": list(self.position) if self.position else None,
            "components": self.components,
        }


class WorldModel(ABC):
    """Entity store consulted by the director through four operations."""

    @abstractmethod
    def add_entity(self, entity: Entity) -> Entity:
        pass

    @abstractmethod
    def remove_entity(self, entity_id: str) -> bool:
        """Remove an entity. Returns False when it does not exist."""
        pass

    @abstractmethod
    def get_entity(self, entity_id: str) -> Optional[Entity]:
        pass

    @abstractmethod
    def get_entities_with(self, tag: str) -> List[Entity]:
        pass


class InMemoryWorld(WorldModel):
    """Dictionary backed world model."""

    def __init__(self):
        self._entities: Dict[str, Entity] = {}

    def add_entity(self, entity: Entity) -> Entity:
        self._entities[entity.id] = entity
        return entity

    def remove_entity(self, entity_id: str) -> bool:
        return self._entities.pop(entity_id, None) is not None

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def get_entities_with(self, tag: str) -> List[Entity]:
        return [e for e in self._entities.values() if tag in e.tags]

    def __len__(self) -> int:
        return len(self._entities)


def _instance_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def spawn_character(world: WorldModel, definition: Dict[str, Any], x: int, y: int,
                    extra_tags: Optional[Set[str]] = None) -> Entity:
    """Instantiate a character definition at a position."""
    tags = {TAG_ACTOR, TAG_CHARACTER} | set(extra_tags or ())
    entity = Entity(
        id=_instance_id("ent"),
        name=definition.get("name", "Unknown"),
        tags=tags,
        position=(int(x), int(y)),
        components={
            "definition_id": definition.get("id"),
            "stats": dict(definition.get("stats", {})),
            "behavior": definition.get("behavior"),
            "dialogue": list(definition.get("dialogue", [])),
            "equipment": list(definition.get("equipment", [])),
            "can_move": definition.get("can_move", True),
        },
    )
    return world.add_entity(entity)


def spawn_item(world: WorldModel, definition: Dict[str, Any], x: int, y: int,
               extra_tags: Optional[Set[str]] = None) -> Entity:
    """Instantiate an item definition lying on the ground at a position."""
    tags = {TAG_ITEM} | set(extra_tags or ())
    entity = Entity(
        id=_instance_id("ent"),
        name=definition.get("name", "Unknown item"),
        tags=tags,
        position=(int(x), int(y)),
        components={
            "definition_id": definition.get("id"),
            "rarity": definition.get("rarity"),
            "attributes": dict(definition.get("attributes", {})),
        },
    )
    return world.add_entity(entity)


def spawn_location(world: WorldModel, definition: Dict[str, Any]) -> Entity:
    """Instantiate a location definition at its own coordinates."""
    coords = definition.get("coordinates") or {}
    entity = Entity(
        id=_instance_id("room"),
        name=definition.get("name", "Unnamed location"),
        tags={TAG_LOCATION},
        position=(int(coords.get("x", 0)), int(coords.get("y", 0))),
        components={
            "definition_id": definition.get("id"),
            "type": definition.get("type"),
            "description": definition.get("description", ""),
        },
    )
    return world.add_entity(entity)
