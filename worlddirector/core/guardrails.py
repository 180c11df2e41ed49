"""
Guardrail config store - budgets, throttles, feature flags, backend routing profiles and banned terms.
Persisted as one JSON document with encrypted secrets, hot-reloaded on external edits.
"""

import asyncio
import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from util.logging import audit_event, logger
from .config import CONFIG_POLL_SEC, GUARDRAILS_PATH, OLLAMA_HOST, OLLAMA_MODEL
from .secrets import SecretError, decrypt_secret, encrypt_secret, is_masked_echo, mask_secret

log = logging.getLogger(__name__)


class GenerationRole(str, Enum):
    DEFAULT = "default"
    CREATIVE = "creative"
    LOGIC = "logic"
    IMAGE = "image"


class Budgets(BaseModel):
    max_weapon_damage: int = Field(50, ge=1)
    max_armor_defense: int = Field(20, ge=1)
    max_gold_drop: int = Field(500, ge=0)
    max_item_value: int = Field(10000, ge=0)
    max_character_health: int = Field(1000, ge=1)
    max_character_attack: int = Field(100, ge=1)
    max_character_defense: int = Field(50, ge=1)
    max_quest_xp_reward: int = Field(5000, ge=0)
    aggression_probability: float = Field(0.1, ge=0.0, le=1.0)
    expansion_probability: float = Field(0.1, ge=0.0, le=1.0)
    chaos_probability: float = Field(0.1, ge=0.0, le=1.0)


class Throttles(BaseModel):
    max_generations_per_minute: int = Field(10, ge=0)
    max_active_expansions: int = Field(1, ge=0)


class Features(BaseModel):
    require_human_approval: bool = True
    auto_snapshot_high_risk: bool = True
    enable_characters: bool = True
    enable_items: bool = True
    enable_quests: bool = True
    enable_expansions: bool = True
    restricted_mode: bool = False


class BackendProfile(BaseModel):
    name: str
    provider: str = "local"  # local|openai|gemini|pollinations|stable-diffusion
    base_url: str = ""
    api_key: str = ""
    model: str = ""
    roles: List[GenerationRole] = Field(default_factory=list)


def _default_profiles() -> Dict[str, BackendProfile]:
    return {
        "local": BackendProfile(
            name="local",
            provider="local",
            base_url=OLLAMA_HOST,
            model=OLLAMA_MODEL,
            roles=[GenerationRole.DEFAULT, GenerationRole.CREATIVE, GenerationRole.LOGIC],
        )
    }


class GuardrailConfig(BaseModel):
    budgets: Budgets = Field(default_factory=Budgets)
    throttles: Throttles = Field(default_factory=Throttles)
    features: Features = Field(default_factory=Features)
    profiles: Dict[str, BackendProfile] = Field(default_factory=_default_profiles)
    banned_terms: List[str] = Field(default_factory=list)

    def check_content(self, text: Optional[str]) -> bool:
        """Return False if text contains any banned term (case-insensitive substring)."""
        return self.find_banned_term(text) is None

    def find_banned_term(self, text: Optional[str]) -> Optional[str]:
        if not text:
            return None
        lowered = text.lower()
        for term in self.banned_terms:
            if term and term.lower() in lowered:
                return term
        return None


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` onto ``base`` without mutating either."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def build_config(data: Optional[Dict[str, Any]]) -> GuardrailConfig:
    """Backfill a possibly partial document with defaults and validate it.

    Profiles are a named table, so a persisted table replaces the default one
    instead of being merged key by key.
    """
    defaults = GuardrailConfig().model_dump(mode="json")
    if not data:
        return GuardrailConfig()
    merged = _deep_merge(defaults, {k: v for k, v in data.items() if k != "profiles"})
    if isinstance(data.get("profiles"), dict) and data["profiles"]:
        merged["profiles"] = {
            name: {"name": name, **profile} for name, profile in data["profiles"].items()
        }
    return GuardrailConfig.model_validate(merged)


class GuardrailStore:
    """Owns the live GuardrailConfig and its backing document."""

    def __init__(self, path: str = GUARDRAILS_PATH, poll_interval: float = CONFIG_POLL_SEC):
        self.path = Path(path)
        self.poll_interval = poll_interval
        self._config = GuardrailConfig()
        self._subscribers: List[Callable[[GuardrailConfig], None]] = []
        self._mtime: Optional[float] = None
        self._watch_task: Optional[asyncio.Task] = None
        self.load()

    def load(self) -> GuardrailConfig:
        """Load the document from disk; any failure falls back to full defaults."""
        if not self.path.exists():
            self._config = GuardrailConfig()
            self._mtime = None
            return self._config

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            config = build_config(data)
            for profile in config.profiles.values():
                profile.api_key = decrypt_secret(profile.api_key)
            self._config = config
        except (OSError, json.JSONDecodeError, ValidationError, SecretError, TypeError, ValueError) as e:
            logger.error(f"Failed to load guardrails from {self.path}, using defaults: {e}")
            self._config = GuardrailConfig()

        self._mtime = self._current_mtime()
        return self._config

    def get_config(self) -> GuardrailConfig:
        """Complete config; callers get a copy and cannot mutate the live one."""
        return self._config.model_copy(deep=True)

    def masked_config(self) -> Dict[str, Any]:
        """Config document suitable for display, with every secret masked."""
        data = self._config.model_dump(mode="json")
        for profile in data["profiles"].values():
            profile["api_key"] = mask_secret(profile["api_key"])
        return data

    def save_config(self, new_config: Any) -> GuardrailConfig:
        """Persist a new config and notify subscribers.

        Accepts a GuardrailConfig or a (possibly partial) dict. A ``profiles``
        table in the dict replaces the stored table; each named profile is
        still overlaid on the stored profile of the same name. Secrets that
        arrive as the masked display form of the stored secret keep the stored
        value.
        """
        if isinstance(new_config, GuardrailConfig):
            config = new_config.model_copy(deep=True)
        else:
            current = self._config.model_dump(mode="json")
            changes = dict(new_config or {})
            merged = _deep_merge(current, {k: v for k, v in changes.items() if k != "profiles"})
            if isinstance(changes.get("profiles"), dict):
                merged["profiles"] = {
                    name: _deep_merge(current["profiles"].get(name, {}), profile or {})
                    for name, profile in changes["profiles"].items()
                }
            config = build_config(merged)

        for name, profile in config.profiles.items():
            previous = self._config.profiles.get(name)
            if previous and is_masked_echo(profile.api_key, previous.api_key):
                profile.api_key = previous.api_key

        self._write(config)
        self._config = config
        audit_event("guardrail.saved", {"path": str(self.path)}, {"profiles": list(config.profiles)})
        self._notify()
        return self.get_config()

    def _write(self, config: GuardrailConfig) -> None:
        data = config.model_dump(mode="json")
        for profile in data["profiles"].values():
            profile["api_key"] = encrypt_secret(profile["api_key"])

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)
        self._mtime = self._current_mtime()

    def subscribe(self, callback: Callable[[GuardrailConfig], None]) -> Callable[[], None]:
        """Register a reload listener. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback(self.get_config())
            except Exception as e:
                logger.error(f"Guardrail subscriber {getattr(callback, '__name__', callback)} failed: {e}")

    def _current_mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except OSError:
            return None

    def poll_for_changes(self) -> bool:
        """Reload and notify if the backing file changed since the last load or save."""
        mtime = self._current_mtime()
        if mtime is None or mtime == self._mtime:
            return False

        logger.info(f"Guardrail file {self.path} changed on disk, reloading")
        self.load()
        self._notify()
        return True

    async def _watch_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                self.poll_for_changes()
            except Exception as e:
                logger.error(f"Guardrail watcher error: {e}")

    def start_watching(self) -> None:
        """Start polling the backing file on the running event loop."""
        if self._watch_task and not self._watch_task.done():
            return
        self._watch_task = asyncio.get_running_loop().create_task(self._watch_loop())
        log.debug("Guardrail watcher started for %s", self.path)

    def stop_watching(self) -> None:
        if self._watch_task:
            self._watch_task.cancel()
            self._watch_task = None
