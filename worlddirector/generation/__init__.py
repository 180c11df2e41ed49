"""
Content generation - backend routing, response parsing and the per-kind generators.
"""

from .backend import ChatResult, GenerationBackend, GenerationError, ImageResult
from .characters import CharacterGenerator
from .items import ItemGenerator
from .locations import LocationGenerator
from .parsing import ParseError, parse_json
from .quests import QuestGenerator

__all__ = [
    "ChatResult",
    "GenerationBackend",
    "GenerationError",
    "ImageResult",
    "CharacterGenerator",
    "ItemGenerator",
    "LocationGenerator",
    "QuestGenerator",
    "ParseError",
    "parse_json",
]
