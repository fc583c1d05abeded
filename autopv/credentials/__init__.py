"""autopv.credentials — encrypted credential store with environment overrides."""

from autopv.credentials.store import (
    ARCHIVE_PW,
    GEMINI_API_KEY,
    GITHUB_TOKEN,
    KEYS,
    STRIPE_SECRET_KEY,
    CredentialStore,
    mask_secret,
)

__all__ = [
    "CredentialStore",
    "mask_secret",
    "KEYS",
    "GITHUB_TOKEN",
    "STRIPE_SECRET_KEY",
    "GEMINI_API_KEY",
    "ARCHIVE_PW",
]
