"""Tests for PayloadCipher: Fernet encryption of stored payloads."""

from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from crp.core.storage.encryption import EncryptionError, PayloadCipher


@pytest.fixture
def cipher() -> PayloadCipher:
    return PayloadCipher(Fernet.generate_key().decode())


class TestRoundTrip:
    def test_metric_set_round_trip(self, cipher: PayloadCipher):
        metrics = {"restingHR": 62, "bpSystolic": 118, "notes": "short walk"}
        assert cipher.decrypt(cipher.encrypt(metrics)) == metrics

    def test_nested_round_trip(self, cipher: PayloadCipher):
        crps = {"total": 91, "details": {"mets": {"score": 15, "value": 12.0}}}
        assert cipher.decrypt(cipher.encrypt(crps)) == crps

    def test_null_round_trip(self, cipher: PayloadCipher):
        assert cipher.encrypt(None) == ""
        assert cipher.decrypt("") is None
        assert cipher.decrypt(None) is None

    def test_token_is_not_plaintext(self, cipher: PayloadCipher):
        token = cipher.encrypt({"chestPain": 4})
        assert "chestPain" not in token

    def test_unserializable_payload(self, cipher: PayloadCipher):
        with pytest.raises(EncryptionError, match="not JSON-serializable"):
            cipher.encrypt({"when": object()})


class TestKeyValidation:
    def test_empty_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            PayloadCipher("")

    def test_only_separators_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            PayloadCipher(" , ")

    def test_invalid_key_raises(self):
        with pytest.raises(EncryptionError, match="Invalid encryption key"):
            PayloadCipher("not-a-valid-fernet-key")


class TestCorruptData:
    def test_wrong_key_cannot_decrypt(self, cipher: PayloadCipher):
        token = cipher.encrypt({"secret": "data"})
        other = PayloadCipher(Fernet.generate_key().decode())
        with pytest.raises(EncryptionError, match="invalid token"):
            other.decrypt(token)

    def test_tampered_token_raises(self, cipher: PayloadCipher):
        token = cipher.encrypt({"data": 1})
        with pytest.raises(EncryptionError):
            cipher.decrypt(token[:-5] + "XXXXX")


class TestKeyRotation:
    def test_old_tokens_readable_after_rotation(self):
        old_key = PayloadCipher.generate_key()
        new_key = PayloadCipher.generate_key()
        token = PayloadCipher(old_key).encrypt({"vo2Max": 21})

        rotated = PayloadCipher(f"{new_key},{old_key}")
        assert rotated.key_count == 2
        assert rotated.decrypt(token) == {"vo2Max": 21}

    def test_rotate_reencrypts_under_active_key(self):
        old_key = PayloadCipher.generate_key()
        new_key = PayloadCipher.generate_key()
        token = PayloadCipher(old_key).encrypt({"vo2Max": 21})

        fresh = PayloadCipher(f"{new_key},{old_key}").rotate(token)
        assert PayloadCipher(new_key).decrypt(fresh) == {"vo2Max": 21}

    def test_generated_keys_are_unique(self):
        keys = {PayloadCipher.generate_key() for _ in range(10)}
        assert len(keys) == 10
