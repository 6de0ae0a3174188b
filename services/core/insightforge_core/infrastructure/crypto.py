"""Encryption of captured login sessions.

Browser cookies are serialized to JSON and only ever stored as Fernet
tokens (AES-128-CBC plus HMAC). The key comes from
``SESSION_ENCRYPTION_KEY``; generate one with ``CryptoService.generate_key()``.

Usage:
    crypto = CryptoService(settings.session_encryption_key)

    token = crypto.encrypt_json([{"name": "li_at", "value": "..."}])
    cookies = crypto.decrypt_json(token)
"""

import json
from typing import Any, Union

from cryptography.fernet import Fernet, InvalidToken

# Tag stored next to every encrypted payload
ALGORITHM = "fernet"


class InvalidKeyError(Exception):
    """The configured key is empty or not a Fernet key."""

    pass


class DecryptionError(Exception):
    """A stored token cannot be turned back into its payload."""

    pass


class CryptoService:
    """Fernet encryption of strings and JSON-serializable values."""

    algorithm = ALGORITHM

    def __init__(self, key: Union[str, bytes]):
        """
        Raises:
            InvalidKeyError: If the key is empty or malformed.
        """
        if not key:
            raise InvalidKeyError("SESSION_ENCRYPTION_KEY is empty")
        raw = key.encode("ascii") if isinstance(key, str) else key
        try:
            self._fernet = Fernet(raw)
        except (ValueError, TypeError) as e:
            raise InvalidKeyError(f"Not a Fernet key: {e}") from e

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("ascii")

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        """
        Raises:
            DecryptionError: If the token is corrupt or was made with another key.
        """
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            raise DecryptionError(f"Cannot decrypt payload: {e!r}") from e

    def encrypt_json(self, value: Any) -> str:
        return self.encrypt(json.dumps(value, separators=(",", ":")))

    def decrypt_json(self, token: str) -> Any:
        """
        Raises:
            DecryptionError: If decryption fails or the plaintext is not JSON.
        """
        try:
            return json.loads(self.decrypt(token))
        except json.JSONDecodeError as e:
            raise DecryptionError(f"Decrypted payload is not JSON: {e}") from e
