"""
Tests for the encrypted credential store.
Run with: python -m pytest tests/ -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import base64
import json
import stat

import pytest

from autopv.core.exceptions import CredentialStoreError
from autopv.credentials import CredentialStore, mask_secret


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def store_path(tmp_path):
    return str(tmp_path / "creds" / "credentials.json")


@pytest.fixture
def store(store_path):
    return CredentialStore(path=store_path, secret="test-secret", environ={})


# ── Persistence ───────────────────────────────────────────────────────────────

class TestCredentialStore:

    def test_missing_store_is_empty(self, store):
        assert store.load() == {}

    def test_round_trip(self, store):
        store.save({"GITHUB_TOKEN": "ghp_abc", "ARCHIVE_PW": "correct horse"})
        assert store.load() == {"GITHUB_TOKEN": "ghp_abc", "ARCHIVE_PW": "correct horse"}

    def test_file_is_encrypted_and_private(self, store, store_path):
        store.save({"GITHUB_TOKEN": "ghp_plaintext_marker"})
        with open(store_path, encoding="utf-8") as f:
            raw = f.read()
        assert "ghp_plaintext_marker" not in raw
        envelope = json.loads(raw)
        assert envelope["version"] == 1
        assert set(envelope) == {"version", "salt", "data"}
        if os.name == "posix":
            assert stat.S_IMODE(os.stat(store_path).st_mode) == 0o600

    def test_update_merges_non_empty_values(self, store):
        store.update(GITHUB_TOKEN="ghp_1", STRIPE_SECRET_KEY="sk_test_1")
        merged = store.update(GITHUB_TOKEN="ghp_2", STRIPE_SECRET_KEY=None, ARCHIVE_PW="")
        assert merged == {"GITHUB_TOKEN": "ghp_2", "STRIPE_SECRET_KEY": "sk_test_1"}
        assert store.load() == merged

    def test_unknown_key_refused(self, store):
        with pytest.raises(CredentialStoreError):
            store.save({"OPENAI_API_KEY": "sk-x"})

    def test_wrong_secret(self, store, store_path):
        store.save({"GITHUB_TOKEN": "ghp_abc"})
        with pytest.raises(CredentialStoreError):
            CredentialStore(path=store_path, secret="other", environ={}).load()

    def test_tampered_ciphertext(self, store, store_path):
        store.save({"GITHUB_TOKEN": "ghp_abc"})
        with open(store_path, encoding="utf-8") as f:
            envelope = json.load(f)
        data = bytearray(base64.b64decode(envelope["data"]))
        data[-1] ^= 0x01
        envelope["data"] = base64.b64encode(bytes(data)).decode("ascii")
        with open(store_path, "w", encoding="utf-8") as f:
            json.dump(envelope, f)

        with pytest.raises(CredentialStoreError):
            store.load()

    def test_corrupt_file(self, store, store_path):
        os.makedirs(os.path.dirname(store_path))
        with open(store_path, "w", encoding="utf-8") as f:
            f.write("{not json")
        with pytest.raises(CredentialStoreError):
            store.load()

    def test_reset(self, store):
        assert store.reset() is False
        store.save({"ARCHIVE_PW": "pw"})
        assert store.reset() is True
        assert store.load() == {}

    def test_secret_from_environment(self, store_path):
        env = {"AUTOPV_STORE_SECRET": "from-env"}
        CredentialStore(path=store_path, environ=env).save({"ARCHIVE_PW": "pw"})
        assert CredentialStore(path=store_path, secret="from-env", environ={}).load() == {"ARCHIVE_PW": "pw"}


# ── Lookup ────────────────────────────────────────────────────────────────────

class TestCredentialLookup:

    def test_environment_takes_precedence(self, store_path):
        CredentialStore(path=store_path, secret="s", environ={}).save({"GITHUB_TOKEN": "stored"})
        store = CredentialStore(path=store_path, secret="s", environ={"GITHUB_TOKEN": "from-env"})
        assert store.get("GITHUB_TOKEN") == "from-env"

    def test_falls_back_to_stored(self, store):
        store.save({"GEMINI_API_KEY": "AIza-stored"})
        assert store.get("GEMINI_API_KEY") == "AIza-stored"
        assert store.get("STRIPE_SECRET_KEY") is None

    def test_resolve_lists_every_key(self, store_path):
        CredentialStore(path=store_path, secret="s", environ={}).save({"ARCHIVE_PW": "pw"})
        store = CredentialStore(path=store_path, secret="s", environ={"GITHUB_TOKEN": "ghp_env"})
        assert store.resolve() == {
            "GITHUB_TOKEN": "ghp_env",
            "STRIPE_SECRET_KEY": None,
            "GEMINI_API_KEY": None,
            "ARCHIVE_PW": "pw",
        }

    def test_masked(self, store):
        store.save({"GITHUB_TOKEN": "ghp_1234567890abcd", "ARCHIVE_PW": "short"})
        masked = store.masked()
        assert masked["GITHUB_TOKEN"] == "ghp_****abcd"
        assert masked["ARCHIVE_PW"] == "*****"
        assert masked["STRIPE_SECRET_KEY"] == "(not set)"

    @pytest.mark.parametrize("value, expected", [
        ("", ""),
        ("12345678", "********"),
        ("sk_live_abcdefgh1234", "sk_l****1234"),
    ])
    def test_mask_secret(self, value, expected):
        assert mask_secret(value) == expected
