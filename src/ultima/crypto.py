"""
Ultima - Signaling cipher.

This module protects the connection codes that peers copy-paste to each
other. It sits on top of the transport's own channel security and only
covers the offer/answer text:

- PBKDF2-HMAC-SHA256 stretches a passphrase into a 256-bit key. The salt
  is a fixed application constant so the joining peer derives the same
  key with no key exchange.
- AES-256-GCM encrypts the descriptor text under a fresh 16-byte nonce.
- The envelope is base64(nonce || ciphertext || tag), safe to paste as text.

Three protection levels are offered:
- OPEN: no encryption, the descriptor is only base64-wrapped
- STANDARD: a built-in key known to every installation (obfuscation against
  casual observers, not confidentiality)
- PERSONAL: a passphrase both operators agreed on out of band

All cryptographic operations use the cryptography library (Apache 2.0/BSD License).
"""

import asyncio
import base64
import binascii
import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .constants import (
    DEFAULT_SDP_KEY,
    KEY_SIZE,
    NONCE_SIZE,
    PASSPHRASE_SALT,
    PBKDF2_ITERATIONS,
)
from .errors import ConfigError, DecryptionFailed, ErrorCode

logger = logging.getLogger(__name__)


class EncLevel(Enum):
    """Protection level applied to connection codes."""

    OPEN = "open"
    STANDARD = "standard"
    PERSONAL = "personal"


@dataclass(frozen=True)
class CryptoConfig:
    """Security choices for one connection attempt.

    Attributes:
        enc_level: Protection level for the connection codes
        passphrase: Shared secret, required for PERSONAL
        use_mic: Attach the local microphone to the peer connection
    """

    enc_level: EncLevel = EncLevel.STANDARD
    passphrase: Optional[str] = None
    use_mic: bool = False

    def validate(self) -> None:
        """Raise ConfigError if the combination cannot produce a code."""
        if self.enc_level == EncLevel.PERSONAL and not self.passphrase:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                "Personal protection requires a non-empty passphrase",
            )

    def effective_secret(self) -> Optional[str]:
        """Secret used for the envelope, or None when codes travel in the clear."""
        if self.enc_level == EncLevel.OPEN:
            return None
        if self.enc_level == EncLevel.STANDARD:
            return DEFAULT_SDP_KEY
        return self.passphrase

    def describe(self) -> str:
        """Short cipher description for status displays."""
        if self.enc_level == EncLevel.OPEN:
            return "none (open exchange)"
        if self.enc_level == EncLevel.STANDARD:
            return "AES-256-GCM (internal key)"
        return "AES-256-GCM (personal passphrase)"


@lru_cache(maxsize=16)
def derive_key(passphrase: str) -> bytes:
    """
    Derive a 256-bit AES key from a passphrase.

    Deterministic for a given passphrase; both peers run it independently.
    The result is memoised since PBKDF2 at this iteration count is slow
    and the function has no side effects.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=PASSPHRASE_SALT,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt(plaintext: str, passphrase: str) -> str:
    """
    Encrypt text into a pasteable envelope.

    A fresh random nonce is drawn on every call, so encrypting the same
    text twice yields different envelopes.

    Returns:
        base64(nonce || ciphertext || tag) as ASCII text
    """
    key = derive_key(passphrase)
    nonce = secrets.token_bytes(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt(envelope: str, passphrase: str) -> str:
    """
    Decrypt an envelope produced by encrypt().

    Raises:
        DecryptionFailed: wrong passphrase, malformed envelope, or tag
            mismatch. The caller cannot tell these apart.
    """
    try:
        combined = base64.b64decode(envelope.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise DecryptionFailed()

    # GCM tag alone is 16 bytes, so anything shorter cannot be an envelope
    if len(combined) < NONCE_SIZE + 16:
        raise DecryptionFailed()

    nonce = combined[:NONCE_SIZE]
    ciphertext = combined[NONCE_SIZE:]

    try:
        plaintext = AESGCM(derive_key(passphrase)).decrypt(nonce, ciphertext, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, UnicodeDecodeError):
        raise DecryptionFailed()


async def encrypt_async(plaintext: str, passphrase: str) -> str:
    """Run encrypt() in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, encrypt, plaintext, passphrase)


async def decrypt_async(envelope: str, passphrase: str) -> str:
    """Run decrypt() in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, decrypt, envelope, passphrase)


def seal_descriptor(text: str, config: CryptoConfig) -> str:
    """Wrap serialized descriptor text according to the protection level."""
    secret = config.effective_secret()
    if secret is None:
        return base64.b64encode(text.encode("utf-8")).decode("ascii")
    return encrypt(text, secret)


def open_descriptor(blob: str, config: CryptoConfig) -> str:
    """
    Recover serialized descriptor text from pasted input.

    Under OPEN, raw JSON text is accepted as well as its base64 form.

    Raises:
        DecryptionFailed: If the text cannot be unwrapped at this level
    """
    blob = blob.strip()
    secret = config.effective_secret()
    if secret is not None:
        return decrypt(blob, secret)

    if blob.startswith("{"):
        return blob
    try:
        return base64.b64decode(blob, validate=True).decode("utf-8")
    except (binascii.Error, ValueError, UnicodeDecodeError):
        raise DecryptionFailed()


async def seal_descriptor_async(text: str, config: CryptoConfig) -> str:
    """Run seal_descriptor() in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, seal_descriptor, text, config)


async def open_descriptor_async(blob: str, config: CryptoConfig) -> str:
    """Run open_descriptor() in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, open_descriptor, blob, config)
