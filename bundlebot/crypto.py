"""
Encryption at rest for wallet private keys.

Each key is sealed with AES-256-GCM and stored as base64(iv || authTag || ciphertext).
The symmetric key is derived once from the operator secret with scrypt.
"""
import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .errors import KeyDecryptionError

logger = logging.getLogger(__name__)

# Changing the salt or scrypt cost makes existing wallet stores unreadable
KDF_SALT = b"salt"
KDF_N = 2 ** 14
KDF_R = 8
KDF_P = 1
KEY_LENGTH = 32

IV_LENGTH = 16
TAG_LENGTH = 16


def derive_key(password: str) -> bytes:
    """
    Derive the 32-byte AES key from the operator secret.
    
    Args:
        password: Encryption secret supplied by the operator
    
    Returns:
        Raw key bytes
    """
    if not password:
        raise ValueError("Encryption password must not be empty")
    kdf = Scrypt(salt=KDF_SALT, length=KEY_LENGTH, n=KDF_N, r=KDF_R, p=KDF_P)
    return kdf.derive(password.encode("utf-8"))


class KeyCipher:
    """AES-256-GCM envelope for private key bytes."""
    
    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Encryption key must be {KEY_LENGTH} bytes, got {len(key)}")
        self._aead = AESGCM(key)
    
    @classmethod
    def from_password(cls, password: str) -> "KeyCipher":
        return cls(derive_key(password))
    
    def encrypt(self, plaintext: bytes) -> str:
        """
        Encrypt key material.
        
        Returns:
            base64 string of iv || authTag || ciphertext
        """
        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, bytes(plaintext), None)
        # AESGCM appends the tag; the stored layout puts it before the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(iv + tag + ciphertext).decode("ascii")
    
    def decrypt(self, encoded: str) -> bytes:
        """
        Decrypt key material.
        
        Fails closed: any authentication failure or malformed envelope raises
        KeyDecryptionError and no plaintext is returned.
        """
        try:
            blob = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise KeyDecryptionError(f"Encrypted key is not valid base64: {e}") from e
        
        if len(blob) <= IV_LENGTH + TAG_LENGTH:
            raise KeyDecryptionError("Encrypted key is truncated")
        
        iv = blob[:IV_LENGTH]
        tag = blob[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
        ciphertext = blob[IV_LENGTH + TAG_LENGTH:]
        try:
            return self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise KeyDecryptionError("Encrypted key failed authentication (wrong secret or tampered data)") from e
