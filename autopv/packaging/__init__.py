"""autopv.packaging — evidence artifacts, encrypted archive, old-file cleanup."""

from autopv.packaging.evidence_pack import EvidencePackBuilder, flatten, mapping_rows, slugify
from autopv.packaging.archive import (
    ArchiveCreator,
    decrypt_archive,
    generate_archive_report,
    remove_files,
)
from autopv.packaging.cleanup import FileCleanup, format_bytes, is_evidence_file

__all__ = [
    "EvidencePackBuilder",
    "flatten",
    "mapping_rows",
    "slugify",
    "ArchiveCreator",
    "decrypt_archive",
    "generate_archive_report",
    "remove_files",
    "FileCleanup",
    "format_bytes",
    "is_evidence_file",
]
