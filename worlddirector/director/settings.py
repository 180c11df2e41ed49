"""
Director settings - pause state, personality weights and event-spawn configuration.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, Field, ValidationError

from util.logging import logger
from ..core.config import DIRECTOR_CONFIG_PATH


class Trait(BaseModel):
    value: float = Field(0.0, ge=0.0, le=1.0)
    enabled: bool = False


class Personality(BaseModel):
    chaos: Trait = Field(default_factory=lambda: Trait(value=0.2, enabled=True))
    aggression: Trait = Field(default_factory=lambda: Trait(value=0.0, enabled=False))
    expansion: Trait = Field(default_factory=lambda: Trait(value=0.1, enabled=True))


class GlitchConfig(BaseModel):
    mob_count: int = Field(5, ge=0)
    item_count: int = Field(5, ge=0)
    legendary_chance: float = Field(0.05, ge=0.0, le=1.0)


class DirectorSettings(BaseModel):
    paused: bool = True
    personality: Personality = Field(default_factory=Personality)
    glitch: GlitchConfig = Field(default_factory=GlitchConfig)


def _merge(model: BaseModel, changes: Dict[str, Any]) -> BaseModel:
    data = model.model_dump()
    for key, value in (changes or {}).items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    return type(model).model_validate(data)


class SettingsStore:
    """Loads and persists DirectorSettings; unreadable files fall back to defaults."""

    def __init__(self, path: str = DIRECTOR_CONFIG_PATH):
        self.path = Path(path)
        self.settings = DirectorSettings()
        self.load()

    def load(self) -> DirectorSettings:
        if not self.path.exists():
            self.settings = DirectorSettings()
            return self.settings
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                self.settings = DirectorSettings.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Failed to load director settings from {self.path}, using defaults: {e}")
            self.settings = DirectorSettings()
        return self.settings

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.settings.model_dump(), f, indent=2)
        os.replace(tmp_path, self.path)

    def set_paused(self, paused: bool) -> None:
        self.settings.paused = paused
        self.save()

    def update_personality(self, changes: Dict[str, Any]) -> Personality:
        self.settings.personality = _merge(self.settings.personality, changes)
        self.save()
        return self.settings.personality

    def update_glitch(self, changes: Dict[str, Any]) -> GlitchConfig:
        self.settings.glitch = _merge(self.settings.glitch, changes)
        self.save()
        return self.settings.glitch
