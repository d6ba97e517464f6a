"""
Authenticated encryption for vaulted portal credentials.

Scheme:
    - One master key per environment (``VAULT_MASTER_KEY``)
    - Per-tenant subkey: HKDF-SHA256(master, info="compliance-vault:{tenant_id}")
    - AES-256-GCM with a random 12-byte nonce
    - Associated data binds the ciphertext to tenant, platform, alias and
      field, so a value copied onto another row fails to decrypt
    - Stored form: ``aesgcm:v1:<urlsafe-b64(nonce || ciphertext)>``

Values written by the earlier reversible encoding (plain base64, no prefix)
are still readable; the vault re-encrypts them the next time it touches the
row. Reading a legacy value still requires the master key (fail closed).

Usage:
    from compliance_intake.core.vault.crypto import SecretCipher

    cipher = SecretCipher.from_settings()
    token = cipher.encrypt("s3cret", tenant_id, "nalanda", "nalanda-default", "password")
    cipher.decrypt(token, tenant_id, "nalanda", "nalanda-default", "password")
"""

import base64
import binascii
import hashlib
import os
from typing import Optional, Union
from uuid import UUID

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ...config import settings
from ..errors import VaultKeyError

PREFIX = "aesgcm:v1:"
NONCE_SIZE = 12
KEY_SIZE = 32


def parse_master_key(raw: Optional[str]) -> bytes:
    """
    Decode the configured master key.

    Accepts ``base64:<urlsafe-b64>``, a 64-character hex string, or any other
    passphrase (hashed with SHA-256).

    Raises:
        VaultKeyError: If no key is configured
    """
    raw = (raw or "").strip()
    if not raw:
        raise VaultKeyError("VAULT_MASTER_KEY is not configured")
    if raw.startswith("base64:"):
        try:
            decoded = base64.urlsafe_b64decode(raw.split(":", 1)[1].encode("ascii"))
        except (binascii.Error, ValueError) as e:
            raise VaultKeyError(f"VAULT_MASTER_KEY is not valid base64: {e}") from e
        if len(decoded) != KEY_SIZE:
            raise VaultKeyError(f"VAULT_MASTER_KEY must decode to {KEY_SIZE} bytes")
        return decoded
    if len(raw) == KEY_SIZE * 2:
        try:
            return bytes.fromhex(raw)
        except ValueError:
            pass
    return hashlib.sha256(raw.encode("utf-8")).digest()


def is_encrypted(value: str) -> bool:
    return str(value or "").startswith(PREFIX)


class SecretCipher:
    """AES-GCM cipher with per-tenant derived keys."""

    def __init__(self, master_key: bytes):
        if len(master_key) != KEY_SIZE:
            raise VaultKeyError(f"Master key must be {KEY_SIZE} bytes")
        self._master_key = master_key

    @classmethod
    def from_settings(cls) -> "SecretCipher":
        return cls(parse_master_key(settings.vault_master_key))

    def _tenant_key(self, tenant_id: Union[str, UUID]) -> bytes:
        return HKDF(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=None,
            info=f"compliance-vault:{tenant_id}".encode("utf-8"),
        ).derive(self._master_key)

    @staticmethod
    def _associated_data(tenant_id, platform: str, alias: str, field: str) -> bytes:
        return f"{tenant_id}|{platform}|{alias}|{field}".encode("utf-8")

    def encrypt(
        self, plaintext: str, tenant_id: Union[str, UUID], platform: str, alias: str, field: str
    ) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = AESGCM(self._tenant_key(tenant_id)).encrypt(
            nonce,
            plaintext.encode("utf-8"),
            self._associated_data(tenant_id, platform, alias, field),
        )
        return PREFIX + base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(
        self, token: str, tenant_id: Union[str, UUID], platform: str, alias: str, field: str
    ) -> str:
        """
        Decrypt a stored value, including legacy base64 payloads.

        Raises:
            VaultKeyError: If the value was not encrypted for this tenant,
                platform, alias and field, or is malformed
        """
        raw = str(token or "")
        if not is_encrypted(raw):
            # Legacy fallback (pre-encryption reversible encoding)
            try:
                return base64.b64decode(raw.encode("ascii"), validate=True).decode("utf-8")
            except (binascii.Error, ValueError) as e:
                raise VaultKeyError("Stored credential is neither encrypted nor legacy-encoded") from e

        try:
            packed = base64.urlsafe_b64decode(raw[len(PREFIX):].encode("ascii"))
            nonce, ciphertext = packed[:NONCE_SIZE], packed[NONCE_SIZE:]
            plain = AESGCM(self._tenant_key(tenant_id)).decrypt(
                nonce, ciphertext, self._associated_data(tenant_id, platform, alias, field)
            )
        except (InvalidTag, binascii.Error, ValueError) as e:
            raise VaultKeyError("Stored credential could not be decrypted") from e
        return plain.decode("utf-8")
