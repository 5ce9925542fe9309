"""Token Vault: AES-GCM round-trip, degraded mode, legacy plaintext."""

import base64

import pytest

from roasync.models.db_models import Integration
from roasync.security.token_vault import NONCE_SIZE, TokenVault, store_integration_token

KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


class TestEncryption:
    @pytest.mark.parametrize(
        "token",
        ["EAABsbCS1iHgBA", "shpat_0123456789abcdef", "", "ünïcødé 🔑", "x" * 4096],
    )
    def test_round_trip(self, token):
        vault = TokenVault(KEY)
        assert vault.decrypt(vault.encrypt(token)) == token

    def test_ciphertext_is_opaque_and_nonce_is_random(self):
        vault = TokenVault(KEY)
        first = vault.encrypt("secret-token")
        second = vault.encrypt("secret-token")

        assert first != second
        assert "secret-token" not in first
        raw = base64.b64decode(first)
        assert len(raw) == NONCE_SIZE + len("secret-token") + 16

    def test_accepts_128_bit_key(self):
        vault = TokenVault(KEY[:32])
        assert vault.enabled
        assert vault.decrypt(vault.encrypt("abc")) == "abc"


class TestDegradedMode:
    def test_no_key_stores_plaintext(self):
        vault = TokenVault("")
        assert not vault.enabled
        assert vault.encrypt("plain") == "plain"
        assert vault.decrypt("plain") == "plain"

    @pytest.mark.parametrize("bad_key", ["not-hex", "abcd"])
    def test_unusable_key_disables_encryption(self, bad_key):
        vault = TokenVault(bad_key)
        assert not vault.enabled
        assert vault.encrypt("plain") == "plain"


class TestLegacyTokens:
    @pytest.mark.parametrize(
        "legacy",
        [
            "EAABsbCS1iHgBAlegacy",  # not base64
            "shpat_abc",
            "c2hvcnQ=",  # valid base64, too short
            base64.b64encode(b"\x00" * 40).decode(),  # fails authentication
        ],
    )
    def test_plaintext_token_returned_unchanged(self, legacy):
        assert TokenVault(KEY).decrypt(legacy) == legacy

    def test_wrong_key_returns_input_instead_of_raising(self):
        sealed = TokenVault(KEY).encrypt("secret")
        other = TokenVault("ff" * 32)
        assert other.decrypt(sealed) == sealed


def test_store_integration_token_encrypts(session):
    vault = TokenVault(KEY)
    integration = Integration(user_id="u", provider="shopify")

    store_integration_token(session, integration, "shpat_secret", vault=vault)

    assert integration.access_token != "shpat_secret"
    assert vault.decrypt(integration.access_token) == "shpat_secret"
