"""
Snapshot manager - full world-state backup and restore of the data directory.
Each snapshot is a zip archive plus a manifest with checksum, optionally AES-256-GCM encrypted.
"""

import hashlib
import io
import json
import os
import re
import secrets
import shutil
import tempfile
import zipfile
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from util.logging import audit_event, logger
from .config import DATA_DIR, ENCRYPTION_KEY, SNAPSHOT_DIR, SNAPSHOT_ENCRYPTION_ENABLED

ARCHIVE_NAME = "data.zip"
MANIFEST_NAME = "manifest.json"
_SNAPSHOT_ID = re.compile(r"^snapshot_[0-9]{8}_[0-9]{6}_[0-9a-f]{8}$")


@dataclass
class SnapshotManifest:
    """Snapshot metadata with integrity checks."""
    snapshot_id: str
    created_at: datetime
    label: str
    encrypted: bool
    file_count: int
    total_size: int
    checksum: str = ""
    salt: Optional[str] = None  # PBKDF2 salt for key derivation
    version: str = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        """Convert manifest to dictionary for JSON serialization."""
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SnapshotManifest':
        """Create manifest from dictionary (for restoration)."""
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        return cls(**data)


class SnapshotError(Exception):
    """Custom exception for snapshot creation and listing."""
    pass


class RestoreError(Exception):
    """Custom exception for restore operations."""
    pass


def _derive_key(password: str, salt: bytes) -> bytes:
    """Derive encryption key from password using PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    return kdf.derive(password.encode())


def _encrypt_data(data: bytes, key: bytes) -> bytes:
    """Encrypt data using AES-256-GCM. Output is nonce + tag + ciphertext."""
    nonce = os.urandom(12)
    encryptor = Cipher(algorithms.AES(key), modes.GCM(nonce)).encryptor()
    ciphertext = encryptor.update(data) + encryptor.finalize()
    return nonce + encryptor.tag + ciphertext


def _decrypt_data(encrypted_data: bytes, key: bytes) -> bytes:
    """Decrypt data using AES-256-GCM."""
    if len(encrypted_data) < 28:  # nonce (12) + tag (16)
        raise RestoreError("Encrypted data too short")

    nonce = encrypted_data[:12]
    tag = encrypted_data[12:28]
    ciphertext = encrypted_data[28:]

    decryptor = Cipher(algorithms.AES(key), modes.GCM(nonce, tag)).decryptor()
    try:
        return decryptor.update(ciphertext) + decryptor.finalize()
    except InvalidTag:
        raise RestoreError("Snapshot could not be decrypted with the configured key")


def _calculate_checksum(data: bytes) -> str:
    """Calculate SHA-256 checksum of data."""
    return hashlib.sha256(data).hexdigest()


def _zip_directory(root: Path) -> tuple:
    """Archive every file under root. Returns (archive bytes, file count)."""
    buffer = io.BytesIO()
    count = 0
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        if root.exists():
            for path in sorted(root.rglob("*")):
                if path.is_file():
                    archive.write(path, path.relative_to(root).as_posix())
                    count += 1
    return buffer.getvalue(), count


class SnapshotManager:
    """Creates, lists, restores and deletes snapshots of the data directory."""

    def __init__(self, data_dir: str = DATA_DIR, snapshot_dir: str = SNAPSHOT_DIR,
                 encrypt: bool = SNAPSHOT_ENCRYPTION_ENABLED, passphrase: str = ENCRYPTION_KEY):
        self.data_dir = Path(data_dir)
        self.snapshot_dir = Path(snapshot_dir)
        self.encrypt = encrypt
        self._passphrase = passphrase

    def _snapshot_path(self, snapshot_id: str) -> Path:
        if not _SNAPSHOT_ID.match(snapshot_id or ""):
            raise SnapshotError(f"Invalid snapshot id: {snapshot_id}")
        return self.snapshot_dir / snapshot_id

    def create_snapshot(self, label: str = "manual") -> SnapshotManifest:
        """Archive the whole data directory into a new timestamped snapshot."""
        snapshot_id = f"snapshot_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{secrets.token_hex(4)}"
        target = self.snapshot_dir / snapshot_id

        try:
            archive, file_count = _zip_directory(self.data_dir)
            manifest = SnapshotManifest(
                snapshot_id=snapshot_id,
                created_at=datetime.now(),
                label=label,
                encrypted=self.encrypt,
                file_count=file_count,
                total_size=len(archive),
                checksum=_calculate_checksum(archive),
            )

            payload = archive
            if self.encrypt:
                salt = secrets.token_bytes(16)
                manifest.salt = salt.hex()
                payload = _encrypt_data(archive, _derive_key(self._passphrase, salt))

            target.mkdir(parents=True, exist_ok=False)
            with open(target / ARCHIVE_NAME, "wb") as f:
                f.write(payload)
            # Manifest is always plaintext for easy inspection
            with open(target / MANIFEST_NAME, "w", encoding="utf-8") as f:
                json.dump(manifest.to_dict(), f, indent=2)
        except Exception as e:
            shutil.rmtree(target, ignore_errors=True)
            logger.log_snapshot(snapshot_id, "create", status="failed", details={"error": str(e)})
            raise SnapshotError(f"Snapshot creation failed: {e}")

        logger.log_snapshot(snapshot_id, "create", details={"label": label, "file_count": file_count})
        audit_event("snapshot.created", {"snapshot_id": snapshot_id},
                    {"label": label, "encrypted": self.encrypt, "total_size": manifest.total_size})
        return manifest

    def list_snapshots(self) -> List[SnapshotManifest]:
        """All readable snapshots, newest first."""
        if not self.snapshot_dir.exists():
            return []

        manifests = []
        for path in self.snapshot_dir.iterdir():
            manifest_file = path / MANIFEST_NAME
            if not manifest_file.exists():
                continue
            try:
                with open(manifest_file, "r", encoding="utf-8") as f:
                    manifests.append(SnapshotManifest.from_dict(json.load(f)))
            except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Ignoring unreadable snapshot manifest {manifest_file}: {e}")

        return sorted(manifests, key=lambda m: m.created_at, reverse=True)

    def delete_snapshot(self, snapshot_id: str) -> bool:
        try:
            path = self._snapshot_path(snapshot_id)
        except SnapshotError:
            return False
        if not path.exists():
            return False
        shutil.rmtree(path)
        logger.log_snapshot(snapshot_id, "delete")
        return True

    def restore_snapshot(self, snapshot_id: str) -> SnapshotManifest:
        """Replace the data directory with the snapshot contents.

        The archive is verified and fully extracted to a staging directory
        before the live data directory is touched.
        """
        try:
            path = self._snapshot_path(snapshot_id)
        except SnapshotError as e:
            raise RestoreError(str(e))

        if not (path / MANIFEST_NAME).exists():
            raise RestoreError(f"Snapshot not found: {snapshot_id}")

        with open(path / MANIFEST_NAME, "r", encoding="utf-8") as f:
            manifest = SnapshotManifest.from_dict(json.load(f))

        with open(path / ARCHIVE_NAME, "rb") as f:
            payload = f.read()

        if manifest.encrypted:
            if not manifest.salt:
                raise RestoreError("Encrypted snapshot missing key salt")
            payload = _decrypt_data(payload, _derive_key(self._passphrase, bytes.fromhex(manifest.salt)))

        if _calculate_checksum(payload) != manifest.checksum:
            raise RestoreError("Snapshot checksum mismatch - archive is corrupted")

        self.data_dir.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix="restore_", dir=self.data_dir.parent))
        try:
            with zipfile.ZipFile(io.BytesIO(payload)) as archive:
                for member in archive.namelist():
                    # Reject entries that would escape the staging directory
                    if member.startswith("/") or ".." in Path(member).parts:
                        raise RestoreError(f"Unsafe path in snapshot archive: {member}")
                archive.extractall(staging)

            if self.data_dir.exists():
                shutil.rmtree(self.data_dir)
            shutil.move(str(staging), str(self.data_dir))
        except (OSError, zipfile.BadZipFile) as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise RestoreError(f"Snapshot restore failed: {e}")
        except RestoreError:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        logger.log_snapshot(snapshot_id, "restore", details={"file_count": manifest.file_count})
        audit_event("snapshot.restored", {"snapshot_id": snapshot_id}, {"label": manifest.label})
        return manifest
