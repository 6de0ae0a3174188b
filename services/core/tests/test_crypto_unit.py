"""Unit tests for the crypto service."""

import pytest

from insightforge_core.infrastructure.crypto import (
    CryptoService,
    DecryptionError,
    InvalidKeyError,
)


class TestCryptoServiceInit:
    """Tests for CryptoService initialization."""

    def test_empty_key_rejected(self):
        with pytest.raises(InvalidKeyError):
            CryptoService("")

    def test_malformed_key_rejected(self):
        with pytest.raises(InvalidKeyError):
            CryptoService("not-a-fernet-key")

    def test_generated_key_is_usable(self):
        assert CryptoService(CryptoService.generate_key()).algorithm == "fernet"


class TestEncryption:
    """Tests for string and JSON payloads."""

    def test_json_payload(self):
        crypto = CryptoService(CryptoService.generate_key())
        cookies = [{"name": "li_at", "value": "abc", "secure": True}]

        token = crypto.encrypt_json(cookies)

        assert "abc" not in token
        assert crypto.decrypt_json(token) == cookies

    def test_other_key_cannot_decrypt(self):
        token = CryptoService(CryptoService.generate_key()).encrypt("secret")

        with pytest.raises(DecryptionError):
            CryptoService(CryptoService.generate_key()).decrypt(token)

    def test_non_json_plaintext(self):
        crypto = CryptoService(CryptoService.generate_key())

        with pytest.raises(DecryptionError):
            crypto.decrypt_json(crypto.encrypt("plain text"))
