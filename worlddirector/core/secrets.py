"""
Secret handling - AES-256-GCM encryption of backend credentials at rest and masking for display.
"""

import hashlib
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .config import ENCRYPTION_KEY

ENCRYPTED_PREFIX = "enc:"
MASK_FILL = "********"


class SecretError(Exception):
    """Raised when an encrypted secret cannot be decoded."""
    pass


def _derive_key(passphrase: Optional[str] = None) -> bytes:
    """Derive the 32 byte AES key from the configured passphrase."""
    return hashlib.sha256((passphrase or ENCRYPTION_KEY).encode()).digest()


def is_encrypted(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(ENCRYPTED_PREFIX)


def encrypt_secret(value: str, passphrase: Optional[str] = None) -> str:
    """Encrypt a plaintext secret into the ``enc:nonce:tag:data`` form.

    Already encrypted and empty values are returned unchanged, so calling this
    repeatedly on the same document is safe.
    """
    if not value or is_encrypted(value):
        return value

    nonce = os.urandom(12)
    cipher = Cipher(algorithms.AES(_derive_key(passphrase)), modes.GCM(nonce))
    encryptor = cipher.encryptor()
    ciphertext = encryptor.update(value.encode()) + encryptor.finalize()

    return f"{ENCRYPTED_PREFIX}{nonce.hex()}:{encryptor.tag.hex()}:{ciphertext.hex()}"


def decrypt_secret(value: str, passphrase: Optional[str] = None) -> str:
    """Decrypt a value produced by encrypt_secret. Plaintext passes through."""
    if not is_encrypted(value):
        return value

    parts = value[len(ENCRYPTED_PREFIX):].split(":")
    if len(parts) != 3:
        raise SecretError("Malformed encrypted secret")

    try:
        nonce, tag, ciphertext = (bytes.fromhex(p) for p in parts)
    except ValueError as e:
        raise SecretError(f"Malformed encrypted secret: {e}")

    cipher = Cipher(algorithms.AES(_derive_key(passphrase)), modes.GCM(nonce, tag))
    decryptor = cipher.decryptor()
    try:
        return (decryptor.update(ciphertext) + decryptor.finalize()).decode()
    except InvalidTag:
        raise SecretError("Secret could not be decrypted with the configured key")


def mask_secret(value: Optional[str]) -> str:
    """Display form of a secret: first and last four characters around a fill."""
    if not value:
        return ""
    if len(value) <= 8:
        return MASK_FILL
    return f"{value[:4]}{MASK_FILL}{value[-4:]}"


def is_masked_echo(incoming: Optional[str], stored: Optional[str]) -> bool:
    """True when ``incoming`` is exactly the masked display form of ``stored``."""
    if not incoming or not stored:
        return False
    return incoming == mask_secret(stored)
