"""Symmetric authenticated encryption (AES-256-GCM)."""
import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationFailed, ValidationError
from .models import CipherBundle

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
        raise ValidationError(f"Symmetric key must be exactly {KEY_LENGTH} bytes")


def generate_key() -> bytes:
    """Return a fresh random 256-bit key."""
    return os.urandom(KEY_LENGTH)


def encrypt(plaintext: str, key: bytes) -> CipherBundle:
    """
    Encrypt plaintext under key with a freshly generated nonce.

    Args:
        plaintext: Text to encrypt (UTF-8 encoded before encryption)
        key: 32-byte symmetric key

    Returns:
        CipherBundle with ciphertext, 12-byte nonce and 16-byte tag

    Raises:
        ValidationError: If plaintext is not a string or key length is wrong
    """
    if not isinstance(plaintext, str):
        raise ValidationError("Plaintext must be a string")
    _check_key(key)

    nonce = os.urandom(NONCE_LENGTH)
    # AESGCM appends the tag to the ciphertext
    sealed = AESGCM(bytes(key)).encrypt(nonce, plaintext.encode("UTF-8"), None)
    return CipherBundle(
        ciphertext=sealed[:-TAG_LENGTH],
        nonce=nonce,
        auth_tag=sealed[-TAG_LENGTH:],
    )


def decrypt(ciphertext: bytes, key: bytes, nonce: bytes, auth_tag: bytes) -> str:
    """
    Verify and decrypt a ciphertext produced by encrypt().

    Raises:
        ValidationError: If key, nonce or tag have the wrong length
        AuthenticationFailed: If the tag does not verify (wrong key, wrong
            nonce, tampered ciphertext or tampered tag)
    """
    _check_key(key)
    if len(nonce) != NONCE_LENGTH:
        raise ValidationError(f"Nonce must be exactly {NONCE_LENGTH} bytes")
    if len(auth_tag) != TAG_LENGTH:
        raise ValidationError(f"Authentication tag must be exactly {TAG_LENGTH} bytes")

    try:
        data = AESGCM(bytes(key)).decrypt(bytes(nonce), bytes(ciphertext) + bytes(auth_tag), None)
    except InvalidTag:
        logger.debug("Authentication tag verification failed")
        raise AuthenticationFailed("Decryption failed: authentication tag mismatch") from None
    return data.decode("UTF-8")


def decrypt_bundle(bundle: CipherBundle, key: bytes) -> str:
    """Convenience wrapper around decrypt() for a CipherBundle."""
    return decrypt(bundle.ciphertext, key, bundle.nonce, bundle.auth_tag)


def encode_key(key: bytes) -> str:
    """Base64 text form of a symmetric key."""
    _check_key(key)
    return base64.b64encode(key).decode("ascii")


def decode_key(text: str) -> bytes:
    """Parse a base64 key produced by encode_key()."""
    try:
        key = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Key is not valid base64: {e}")
    _check_key(key)
    return key
