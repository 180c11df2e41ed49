"""
Content registries - lookup tables merging static definitions with published generated content.
Keyed by id and by lower-cased name; reload is always a full rebuild.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from util.logging import logger
from .config import GENERATED_DIR, STATIC_DIR
from .proposals import ContentKind
from .publisher import kind_directory


class ContentRegistry:
    """Definitions for one content kind.

    Static definitions come from ``<static_dir>/<kind>s.json`` (a list of
    records); generated ones from ``<generated_dir>/<kind>s/*.json``. A
    generated record with the same id overrides the static one.
    """

    kind: ContentKind = None

    def __init__(self, static_dir: str = STATIC_DIR, generated_dir: str = GENERATED_DIR):
        self.static_path = Path(static_dir) / f"{self.kind.value}s.json"
        self.generated_dir = kind_directory(Path(generated_dir), self.kind)
        self._by_id: Dict[str, Dict[str, Any]] = {}
        self._by_name: Dict[str, str] = {}
        self._sources: Dict[str, Path] = {}
        self.reload()

    def reload(self) -> int:
        """Drop everything and load both sources again. Returns the entry count."""
        self._by_id.clear()
        self._by_name.clear()
        self._sources.clear()

        for record in self._read_static():
            self._register(record, self.static_path)

        if self.generated_dir.exists():
            for path in sorted(self.generated_dir.glob("*.json")):
                try:
                    with open(path, "r", encoding="utf-8") as f:
                        self._register(json.load(f), path)
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning(f"Skipping unreadable {self.kind.value} record {path}: {e}")

        logger.log_operation(f"registry.{self.kind.value}.reload", "success", {"count": len(self._by_id)})
        return len(self._by_id)

    def _read_static(self) -> List[Dict[str, Any]]:
        if not self.static_path.exists():
            return []
        try:
            with open(self.static_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Static {self.kind.value} definitions unreadable at {self.static_path}: {e}")
            return []
        return list(data.values()) if isinstance(data, dict) else list(data)

    def _aliases(self, record: Dict[str, Any]) -> List[str]:
        return [record.get("name") or record.get("title") or ""]

    def _register(self, record: Dict[str, Any], source: Path) -> None:
        entry_id = record.get("id")
        if not entry_id:
            return
        self._by_id[entry_id] = record
        self._sources[entry_id] = source
        for alias in self._aliases(record):
            if alias:
                self._by_name[alias.lower()] = entry_id

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Look up by id first, then by case-insensitive name or alias."""
        if key in self._by_id:
            return self._by_id[key]
        entry_id = self._by_name.get(key.lower()) if key else None
        return self._by_id.get(entry_id) if entry_id else None

    def all(self) -> List[Dict[str, Any]]:
        return list(self._by_id.values())

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._by_id)

    def update(self, entry_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Merge changes into a definition, write it back to its source and reload."""
        record = self._by_id.get(entry_id)
        if record is None:
            return None
        updated = {**record, **changes, "id": entry_id}
        self._write_back(entry_id, updated)
        self.reload()
        return self._by_id.get(entry_id)

    def delete(self, entry_id: str) -> bool:
        """Remove a definition from its source and reload."""
        if entry_id not in self._by_id:
            return False
        self._write_back(entry_id, None)
        self.reload()
        return True

    def _write_back(self, entry_id: str, record: Optional[Dict[str, Any]]) -> None:
        source = self._sources[entry_id]
        if source == self.static_path:
            entries = [r for r in self._read_static() if r.get("id") != entry_id]
            if record is not None:
                entries.append(record)
            self._atomic_write(source, entries)
        elif record is None:
            source.unlink(missing_ok=True)
        else:
            self._atomic_write(source, record)

    @staticmethod
    def _atomic_write(path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)


class CharacterRegistry(ContentRegistry):
    kind = ContentKind.CHARACTER


class ItemRegistry(ContentRegistry):
    kind = ContentKind.ITEM

    def _aliases(self, record: Dict[str, Any]) -> List[str]:
        return [record.get("name") or "", record.get("short_name") or ""]


class LocationRegistry(ContentRegistry):
    kind = ContentKind.LOCATION

    def __init__(self, static_dir: str = STATIC_DIR, generated_dir: str = GENERATED_DIR):
        self._by_coords: Dict[Tuple[int, int], str] = {}
        super().__init__(static_dir, generated_dir)

    def reload(self) -> int:
        self._by_coords.clear()
        return super().reload()

    def _register(self, record: Dict[str, Any], source: Path) -> None:
        super()._register(record, source)
        coords = record.get("coordinates")
        if record.get("id") and coords:
            self._by_coords[(int(coords["x"]), int(coords["y"]))] = record["id"]

    def at(self, x: int, y: int) -> Optional[Dict[str, Any]]:
        entry_id = self._by_coords.get((int(x), int(y)))
        return self._by_id.get(entry_id) if entry_id else None

    def coordinates(self) -> List[Tuple[int, int]]:
        return list(self._by_coords)

    def remove_in_bounds(self, min_x: int, min_y: int, max_x: int, max_y: int) -> int:
        """Delete every persisted location whose coordinates fall inside the bounds (inclusive)."""
        doomed = []
        for entry_id, record in self._by_id.items():
            coords = record.get("coordinates")
            if coords and min_x <= int(coords["x"]) <= max_x and min_y <= int(coords["y"]) <= max_y:
                doomed.append(entry_id)
        for entry_id in doomed:
            self._write_back(entry_id, None)
        if doomed:
            self.reload()
        return len(doomed)
