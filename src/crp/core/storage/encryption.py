"""Fernet encryption of metric payloads at rest.

Daily metric sets, CRPS breakdowns, the patient profile and heart-rate
session summaries are stored as Fernet tokens. The CRPS total and risk
level stay in clear columns so listings and trends can be ordered without
decrypting every row.

Several keys may be configured, comma separated, newest first: the first
key encrypts, all of them decrypt. This allows rotating the key without
rewriting the database up front.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when a payload cannot be encrypted or decrypted."""


class PayloadCipher:
    """JSON-in, token-out symmetric cipher.

    Usage::

        cipher = PayloadCipher(PayloadCipher.generate_key())
        token = cipher.encrypt({"restingHR": 62})
        cipher.decrypt(token)  # {"restingHR": 62}
    """

    def __init__(self, keys: str) -> None:
        """
        Args:
            keys: One Fernet key, or several separated by commas with the
                active (encrypting) key first.

        Raises:
            EncryptionError: If no key is given or any key is malformed.
        """
        key_list = [k.strip() for k in (keys or "").split(",") if k.strip()]
        if not key_list:
            raise EncryptionError("Encryption key must not be empty")
        try:
            fernets = [Fernet(k.encode("utf-8")) for k in key_list]
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc
        self._fernet = MultiFernet(fernets)
        self._key_count = len(fernets)

    @property
    def key_count(self) -> int:
        return self._key_count

    def encrypt(self, payload: Any) -> str:
        """Serialize ``payload`` to compact JSON and encrypt it.

        ``None`` encrypts to the empty string so optional columns stay empty.
        """
        if payload is None:
            return ""
        try:
            plaintext = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Payload is not JSON-serializable: {exc}") from exc
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str | None) -> Any:
        """Decrypt a token produced by :meth:`encrypt`; empty gives None."""
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError(f"Decrypted payload is not JSON: {exc}") from exc

    def rotate(self, token: str | None) -> str | None:
        """Re-encrypt ``token`` under the active key; empty passes through."""
        if not token:
            return token
        try:
            return self._fernet.rotate(token.encode("ascii")).decode("ascii")
        except InvalidToken as exc:
            raise EncryptionError("Rotation failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")
