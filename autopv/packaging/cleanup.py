"""
autopv.packaging.cleanup
========================
Best-effort removal of old evidence artifacts from an output directory.
Only files matching the evidence naming scheme are ever touched.
"""

from __future__ import annotations

import os
import time
from typing import Callable, Dict, List, Optional

import regex

from autopv.core.data_types import CleanupResult
from autopv.core.logger import StructuredLogger


DEFAULT_MAX_AGE_HOURS = 24.0

EVIDENCE_FILE_PATTERNS = (
    regex.compile(r"^evidence_pack_.*\.zip\.enc$"),
    regex.compile(r"^evidence_.*\.(?:md|json)$"),
    regex.compile(r"^mapping_.*\.csv$"),
)


def is_evidence_file(name: str) -> bool:
    return any(p.match(name) for p in EVIDENCE_FILE_PATTERNS)


class FileCleanup:
    """
    Deletes evidence files older than `max_age_hours`.

    Usage
    -----
    result = FileCleanup("./out", max_age_hours=24).cleanup_old_files()
    print(FileCleanup.generate_report(result))
    """

    def __init__(
        self,
        target_dir: str = ".",
        max_age_hours: float = DEFAULT_MAX_AGE_HOURS,
        clock: Callable[[], float] = time.time,
        logger: Optional[StructuredLogger] = None,
    ):
        self.target_dir    = target_dir
        self.max_age_hours = max_age_hours
        self._clock        = clock
        self._logger       = logger or StructuredLogger(name="cleanup")

    def cleanup_old_files(self) -> CleanupResult:
        result = CleanupResult()
        if not os.path.isdir(self.target_dir):
            return result

        cutoff = self._clock() - self.max_age_hours * 3600

        try:
            names = sorted(os.listdir(self.target_dir))
        except OSError as exc:
            result.errors.append(f"Directory scan failed: {exc}")
            return result

        for name in names:
            if not is_evidence_file(name):
                continue
            result.files_scanned += 1
            path = os.path.join(self.target_dir, name)
            try:
                st = os.stat(path)
                if st.st_mtime < cutoff:
                    os.remove(path)
                    result.files_deleted += 1
                    result.deleted_files.append(name)
                    result.total_size_freed += st.st_size
            except OSError as exc:
                result.errors.append(f"Failed to process {name}: {exc}")

        self._logger.log(
            "cleanup",
            scanned=result.files_scanned,
            deleted=result.files_deleted,
            freed=result.total_size_freed,
            errors=len(result.errors),
        )
        return result

    def list_evidence_files(self) -> List[Dict[str, str]]:
        """Evidence files with human-readable age and size, sorted by name."""
        files: List[Dict[str, str]] = []
        if not os.path.isdir(self.target_dir):
            return files

        now = self._clock()
        for name in sorted(os.listdir(self.target_dir)):
            if not is_evidence_file(name):
                continue
            try:
                st = os.stat(os.path.join(self.target_dir, name))
            except OSError:
                continue
            files.append({
                "file": name,
                "age":  f"{(now - st.st_mtime) / 3600:.1f}h",
                "size": format_bytes(st.st_size),
            })
        return files

    def generate_report(self, result: CleanupResult) -> str:
        lines = [
            "FILE CLEANUP REPORT",
            "===================",
            "",
            f"Files scanned: {result.files_scanned}",
            f"Files deleted: {result.files_deleted}",
            f"Space freed: {format_bytes(result.total_size_freed)}",
            f"Max age threshold: {self.max_age_hours:g} hours",
        ]
        if result.deleted_files:
            lines += ["", "Deleted files:"] + [f"  - {f}" for f in result.deleted_files]
        if result.errors:
            lines += ["", "Errors encountered:"] + [f"  ! {e}" for e in result.errors]
        if not result.files_deleted and not result.errors:
            lines += ["", "No old files found to clean up."]
        return "\n".join(lines) + "\n"


def format_bytes(size: int) -> str:
    """1536 → "1.5 KB"."""
    if size <= 0:
        return "0 B"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.2f}".rstrip("0").rstrip(".") + f" {unit}"
        value /= 1024
    raise AssertionError("unreachable")
