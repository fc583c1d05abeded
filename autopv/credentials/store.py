"""
autopv.credentials.store
========================
Encrypted-at-rest credential store for provider tokens and the archive
passphrase.

Stored as JSON at ~/.autopv/credentials.json:
    {"version": 1, "salt": <b64>, "data": <b64(nonce + AES-GCM ciphertext)>}

The AES-256 key is derived with PBKDF2-HMAC-SHA256 from the store secret
(AUTOPV_STORE_SECRET, or the built-in default) and a per-save random salt.
Environment variables always take precedence over stored values.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import os
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from autopv.core.exceptions import CredentialStoreError


GITHUB_TOKEN      = "GITHUB_TOKEN"
STRIPE_SECRET_KEY = "STRIPE_SECRET_KEY"
GEMINI_API_KEY    = "GEMINI_API_KEY"
ARCHIVE_PW        = "ARCHIVE_PW"

KEYS = (GITHUB_TOKEN, STRIPE_SECRET_KEY, GEMINI_API_KEY, ARCHIVE_PW)

DEFAULT_PATH = os.path.join(os.path.expanduser("~"), ".autopv", "credentials.json")

# Store secret (in production, set AUTOPV_STORE_SECRET)
_DEFAULT_SECRET = "autopv-credential-store-v1-changeme"

_PBKDF2_ITERATIONS = 200_000
_SALT_LEN          = 16
_NONCE_LEN         = 12


def _derive_key(secret: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac(
        hash_name   = "sha256",
        password    = secret.encode(),
        salt        = salt,
        iterations  = _PBKDF2_ITERATIONS,
        dklen       = 32,
    )


class CredentialStore:
    """
    Flat KEY → secret mapping, encrypted on disk.

    Parameters
    ----------
    path : str or None
        Store file. Defaults to ~/.autopv/credentials.json.
    secret : str or None
        Key-derivation secret. Defaults to $AUTOPV_STORE_SECRET.
    environ : mapping or None
        Environment consulted for overrides. Defaults to os.environ.

    Usage
    -----
    store = CredentialStore()
    store.update(GITHUB_TOKEN="ghp_...", ARCHIVE_PW="correct horse")
    store.get("GITHUB_TOKEN")       # env value if set, else stored value
    store.masked()                  # {"GITHUB_TOKEN": "ghp_****1234", ...}
    """

    def __init__(
        self,
        path: Optional[str] = None,
        secret: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.path     = path or DEFAULT_PATH
        self._environ = os.environ if environ is None else environ
        self._secret  = secret or self._environ.get("AUTOPV_STORE_SECRET") or _DEFAULT_SECRET

    # ── Persistence ───────────────────────────────────────────────────────────

    def load(self) -> Dict[str, str]:
        """Decrypt and return the stored values ({} when no store exists)."""
        if not os.path.isfile(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                envelope = json.load(f)
            salt = base64.b64decode(envelope["salt"])
            raw  = base64.b64decode(envelope["data"])
        except (OSError, ValueError, KeyError, TypeError, binascii.Error) as exc:
            raise CredentialStoreError(
                f"Credential store is unreadable: {self.path}",
                details={"error": str(exc)},
            ) from exc

        nonce, ct = raw[:_NONCE_LEN], raw[_NONCE_LEN:]
        try:
            plaintext = AESGCM(_derive_key(self._secret, salt)).decrypt(nonce, ct, None)
        except InvalidTag as exc:
            raise CredentialStoreError(
                "Credential store could not be decrypted (wrong secret or tampered file)",
                details={"path": self.path},
            ) from exc

        data = json.loads(plaintext.decode("utf-8"))
        return {k: v for k, v in data.items() if k in KEYS and isinstance(v, str)}

    def save(self, values: Mapping[str, str]) -> None:
        """Encrypt and write `values` (unknown keys are refused)."""
        unknown = set(values) - set(KEYS)
        if unknown:
            raise CredentialStoreError(
                f"Unknown credential keys: {sorted(unknown)}",
                details={"valid": list(KEYS)},
            )

        payload = dict(values)
        payload["_updated_at"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        salt   = os.urandom(_SALT_LEN)
        nonce  = os.urandom(_NONCE_LEN)
        ct     = AESGCM(_derive_key(self._secret, salt)).encrypt(
            nonce, json.dumps(payload).encode("utf-8"), None
        )
        envelope = {
            "version": 1,
            "salt":    base64.b64encode(salt).decode("ascii"),
            "data":    base64.b64encode(nonce + ct).decode("ascii"),
        }

        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(envelope, f)
            os.chmod(self.path, 0o600)
        except OSError as exc:
            raise CredentialStoreError(
                f"Could not write credential store: {self.path}",
                details={"error": str(exc)},
            ) from exc

    def update(self, **values: Optional[str]) -> Dict[str, str]:
        """Merge non-empty `values` into the store and save. Returns the result."""
        current = self.load()
        current.update({k: v for k, v in values.items() if v})
        self.save(current)
        return current

    def reset(self) -> bool:
        """Delete the store file. Returns True if one existed."""
        if os.path.isfile(self.path):
            os.remove(self.path)
            return True
        return False

    # ── Lookup ────────────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[str]:
        """Environment value if set, otherwise the stored value."""
        env_value = self._environ.get(key)
        if env_value:
            return env_value
        return self.load().get(key) or None

    def resolve(self) -> Dict[str, Optional[str]]:
        """Every known key, environment first."""
        stored = self.load()
        return {k: (self._environ.get(k) or stored.get(k) or None) for k in KEYS}

    def masked(self) -> Dict[str, str]:
        return {k: mask_secret(v) if v else "(not set)" for k, v in self.resolve().items()}

    def __repr__(self) -> str:
        return f"CredentialStore(path={self.path!r})"


def mask_secret(value: str) -> str:
    """Keep a recognisable prefix and the last four characters."""
    if len(value) <= 8:
        return "*" * len(value)
    prefix = value[:4]
    return f"{prefix}{'*' * 4}{value[-4:]}"
