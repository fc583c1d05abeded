"""
autopv.packaging.archive
========================
Encrypted deliverable archive.

The evidence files are zipped in memory, then the zip bytes are sealed
with AES-256-GCM under a key derived from the archive passphrase with
scrypt. On-disk layout of `<name>.zip.enc`:

    MAGIC (8) | salt (16) | nonce (12) | ciphertext + tag

decrypt_archive() reverses it and returns the zip bytes.
"""

from __future__ import annotations

import io
import os
import zipfile
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from autopv.core.data_types import ArchiveResult
from autopv.core.logger import StructuredLogger


ARCHIVE_SUFFIX = ".zip.enc"
MAGIC          = b"AUTOPV1\x00"

_SALT_LEN  = 16
_NONCE_LEN = 12

# scrypt cost parameters (n=2**15 keeps derivation well under a second)
_SCRYPT_N = 2 ** 15
_SCRYPT_R = 8
_SCRYPT_P = 1


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    """32-byte AES-256 key from passphrase + salt via scrypt."""
    kdf = Scrypt(salt=salt, length=32, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P)
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt_bytes(data: bytes, passphrase: str) -> bytes:
    salt   = os.urandom(_SALT_LEN)
    nonce  = os.urandom(_NONCE_LEN)
    aesgcm = AESGCM(_derive_key(passphrase, salt))
    return MAGIC + salt + nonce + aesgcm.encrypt(nonce, data, MAGIC)


def decrypt_archive(path: str, passphrase: str) -> bytes:
    """
    Decrypt an archive written by ArchiveCreator and return the zip bytes.

    Raises
    ------
    ValueError
        Not an autopv archive, wrong passphrase, or tampered data.
    """
    with open(path, "rb") as f:
        raw = f.read()

    header = len(MAGIC) + _SALT_LEN + _NONCE_LEN
    if len(raw) <= header or not raw.startswith(MAGIC):
        raise ValueError(f"Not an autopv archive: {path!r}")

    salt  = raw[len(MAGIC): len(MAGIC) + _SALT_LEN]
    nonce = raw[len(MAGIC) + _SALT_LEN: header]
    try:
        return AESGCM(_derive_key(passphrase, salt)).decrypt(nonce, raw[header:], MAGIC)
    except InvalidTag as exc:
        raise ValueError("Archive decryption failed (wrong passphrase or tampered data)") from exc


class ArchiveCreator:
    """
    Zips and encrypts evidence files.

    Parameters
    ----------
    output_dir : str
        Where the archive is written.
    passphrase : str
        Archive passphrase. Must be non-empty.

    Usage
    -----
    creator = ArchiveCreator("./out", passphrase)
    result = creator.create(pack.files_created, "evidence_pack_user_example_com")
    result.archive_path     # ./out/evidence_pack_user_example_com.zip.enc
    """

    def __init__(
        self,
        output_dir: str = ".",
        passphrase: str = "",
        logger: Optional[StructuredLogger] = None,
    ):
        self.output_dir  = output_dir
        self._passphrase = passphrase
        self._logger     = logger or StructuredLogger(name="archive")

    def create(self, files: Sequence[str], name: Optional[str] = None) -> ArchiveResult:
        """
        Archive `files` (missing ones are skipped with a warning).

        Never raises: failures come back with success=False and `error`.
        """
        if not name:
            name = f"evidence_pack_{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}"
        if name.endswith(ARCHIVE_SUFFIX):
            name = name[: -len(ARCHIVE_SUFFIX)]
        elif name.endswith(".zip"):
            name = name[:-4]

        result = ArchiveResult(archive_path=os.path.join(self.output_dir, name + ARCHIVE_SUFFIX))

        if not self._passphrase:
            result.error = "Archive passphrase is required"
            return result

        valid: List[str] = []
        original_size = 0
        for path in files:
            if os.path.isfile(path):
                valid.append(path)
                original_size += os.path.getsize(path)
            else:
                self._logger.warn("archive_file_missing", file=os.path.basename(path))

        if not valid:
            result.error = "No valid files found to archive"
            self._logger.error("archive_failed", error=result.error)
            return result

        try:
            os.makedirs(self.output_dir, exist_ok=True)
            sealed = encrypt_bytes(_zip_files(valid), self._passphrase)
            with open(result.archive_path, "wb") as f:
                f.write(sealed)
        except OSError as exc:
            result.error = f"Failed to create archive: {exc}"
            self._logger.error("archive_failed", error=result.error)
            return result

        result.files_archived    = [os.path.basename(p) for p in valid]
        result.archive_size      = os.path.getsize(result.archive_path)
        result.compression_ratio = (
            round((1 - result.archive_size / original_size) * 100) if original_size else 0
        )
        result.success = True
        self._logger.log(
            "archive",
            archive=os.path.basename(result.archive_path),
            files=len(valid),
            archive_size=result.archive_size,
            compression_ratio=result.compression_ratio,
        )
        return result

    def __repr__(self) -> str:
        return f"ArchiveCreator(output_dir={self.output_dir!r})"


def remove_files(files: Sequence[str], logger: Optional[StructuredLogger] = None) -> List[str]:
    """Delete `files`, returning those removed. Failures are logged only."""
    removed: List[str] = []
    for path in files:
        try:
            if os.path.exists(path):
                os.remove(path)
                removed.append(path)
        except OSError as exc:
            if logger is not None:
                logger.warn("remove_failed", file=os.path.basename(path), error=str(exc))
    return removed


def generate_archive_report(result: ArchiveResult) -> str:
    lines = [
        "ENCRYPTED ARCHIVE REPORT",
        "========================",
        "",
        f"Archive: {os.path.basename(result.archive_path)}",
        f"Status: {'SUCCESS' if result.success else 'FAILED'}",
    ]
    if result.success:
        lines += [
            f"Size: {round(result.archive_size / 1024)} KB",
            f"Compression: {result.compression_ratio}% reduction",
            f"Files archived: {len(result.files_archived)}",
        ]
        lines += [f"  - {name}" for name in result.files_archived]
    else:
        lines.append(f"Error: {result.error}")
    lines += ["", "Encryption: AES-256-GCM, scrypt key derivation"]
    return "\n".join(lines) + "\n"


def _zip_files(paths: Sequence[str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path in paths:
            zf.write(path, arcname=os.path.basename(path))
    return buf.getvalue()
