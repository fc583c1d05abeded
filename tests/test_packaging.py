"""
Tests for evidence pack files, the encrypted archive and old-file cleanup.
Run with: python -m pytest tests/ -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import csv
import io
import json
import time
import zipfile
from datetime import datetime, timezone

import pytest

from autopv.core.data_types import (
    ArchiveResult,
    ClassificationRecord,
    ClassificationResult,
    ClassificationSummary,
    RawDataset,
)
from autopv.core.logger import StructuredLogger
from autopv.packaging import (
    ArchiveCreator,
    EvidencePackBuilder,
    FileCleanup,
    decrypt_archive,
    flatten,
    format_bytes,
    generate_archive_report,
    is_evidence_file,
    mapping_rows,
    remove_files,
    slugify,
)
from autopv.privacy import Scrubber


FIXED_NOW = datetime(2024, 3, 1, 12, 30, 0, tzinfo=timezone.utc)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def dataset(github_data, stripe_data):
    return RawDataset(
        subject="user@example.com",
        scope="acme",
        providers={"github": github_data, "stripe": stripe_data},
    )


@pytest.fixture
def scrub_result(dataset):
    return Scrubber().scrub(dataset.merged())


@pytest.fixture
def classification():
    return ClassificationResult(
        classifications=[
            ClassificationRecord("github.events[0].actor.email", "Art. 15", "Contact address",
                                 "contact", "medium"),
            ClassificationRecord("stripe.charges", "Art. 6", "Payment | billing history",
                                 "financial", "high"),
        ],
        summary=ClassificationSummary(
            total_fields=12,
            distinct_rule_references=["Art. 15", "Art. 6"],
            high_sensitivity_count=1,
            processing_time_ms=5,
        ),
    )


@pytest.fixture
def builder(tmp_path):
    return EvidencePackBuilder(str(tmp_path), clock=lambda: FIXED_NOW)


# ── Evidence pack ─────────────────────────────────────────────────────────────

class TestEvidencePack:

    def test_three_files_written(self, builder, dataset, scrub_result, classification, tmp_path):
        pack = builder.build(dataset, scrub_result, classification)

        assert pack.success is True
        assert pack.error is None
        names = [os.path.basename(p) for p in pack.files_created]
        assert names == [
            "evidence_user_example_com_20240301T123000Z.md",
            "mapping_user_example_com_20240301T123000Z.csv",
            "evidence_user_example_com_20240301T123000Z_data.json",
        ]
        assert all(os.path.isabs(p) and os.path.isfile(p) for p in pack.files_created)
        assert pack.summary["gdpr_articles"] == ["Art. 15", "Art. 6"]
        assert pack.summary["total_records"] > 0

    def test_only_scrubbed_data_is_written(self, builder, dataset, scrub_result):
        pack = builder.build(dataset, scrub_result)
        for path in pack.files_created:
            with open(path, encoding="utf-8") as f:
                text = f.read()
            assert "user@example.com" not in text
            assert "octo@example.com" not in text
            assert "555-123-4567" not in text
            assert "ghp_" not in text

    def test_data_json_is_scrubbed_dataset(self, builder, dataset, scrub_result):
        pack = builder.build(dataset, scrub_result)
        with open(pack.files_created[2], encoding="utf-8") as f:
            assert json.load(f) == scrub_result.scrubbed_data

    def test_report_contents(self, builder, dataset, scrub_result, classification):
        pack = builder.build(dataset, scrub_result, classification)
        with open(pack.files_created[0], encoding="utf-8") as f:
            report = f.read()

        assert report.startswith("# DSAR Evidence Pack")
        assert "**Subject:** [REDACTED]" in report
        assert "| github | events | 2 |" in report
        assert "| stripe | charges | 1 |" in report
        assert "Total succeeded charges: 19.99 USD" in report
        assert "| `stripe.charges` | Art. 6 | financial | high | Payment \\| billing history |" in report

    def test_report_without_classification(self, builder, dataset, scrub_result):
        pack = builder.build(dataset, scrub_result, None)
        with open(pack.files_created[0], encoding="utf-8") as f:
            assert "Classification was not performed for this run." in f.read()
        assert pack.summary["gdpr_articles"] == []

    def test_csv_rows(self, builder, dataset, scrub_result, classification):
        pack = builder.build(dataset, scrub_result, classification)
        with open(pack.files_created[1], encoding="utf-8", newline="") as f:
            rows = list(csv.DictReader(f))

        by_path = {r["field_path"]: r for r in rows}
        email = by_path["github.events[1].actor.email"]
        assert email["value"] == "[REDACTED]"
        assert email["provider"] == "github"
        # [1] normalised to [0] for the lookup
        assert email["rule_reference"] == "Art. 15"
        # Inherits from the classified ancestor
        assert by_path["stripe.charges[0].amount"]["rule_reference"] == "Art. 6"
        assert by_path["stripe.charges[0].amount"]["value"] == "1999"
        assert by_path["scope"]["rule_reference"] == ""

    def test_unwritable_directory_reported(self, tmp_path, dataset, scrub_result):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        logger = StructuredLogger(name="t")
        pack = EvidencePackBuilder(str(blocker), logger=logger).build(dataset, scrub_result)

        assert pack.success is False
        assert pack.files_created == []
        assert "Failed to write evidence pack" in pack.error
        assert logger.get_entries(operation="pack_failed")


class TestPackHelpers:

    @pytest.mark.parametrize("subject, slug", [
        ("user@example.com", "user_example_com"),
        ("user+test@example.co.uk", "user_test_example_co_uk"),
        ("@@@", "subject"),
    ])
    def test_slugify(self, subject, slug):
        assert slugify(subject) == slug

    def test_flatten(self):
        assert flatten({"a": {"b": [1, {"c": None}]}, "d": "x"}) == [
            ("a.b[0]", 1), ("a.b[1].c", None), ("d", "x"),
        ]

    def test_mapping_rows_without_classification(self):
        rows = mapping_rows({"github": {"login": "octocat"}, "n": None})
        assert rows == [
            {"field_path": "github.login", "value": "octocat", "provider": "github",
             "rule_reference": "", "category": "", "sensitivity": ""},
            {"field_path": "n", "value": "", "provider": "n",
             "rule_reference": "", "category": "", "sensitivity": ""},
        ]


# ── Archive ───────────────────────────────────────────────────────────────────

@pytest.fixture
def loose_files(tmp_path):
    paths = []
    for name, body in (("evidence_a.md", "# report\n" * 50), ("mapping_a.csv", "a,b\n1,2\n" * 50)):
        p = tmp_path / name
        p.write_text(body)
        paths.append(str(p))
    return paths


class TestArchive:

    def test_round_trip(self, tmp_path, loose_files):
        out = tmp_path / "archives"
        result = ArchiveCreator(str(out), "correct horse").create(loose_files, "evidence_pack_x")

        assert result.success is True
        assert result.archive_path == os.path.join(str(out), "evidence_pack_x.zip.enc")
        assert result.files_archived == ["evidence_a.md", "mapping_a.csv"]
        assert result.archive_size == os.path.getsize(result.archive_path)
        assert result.compression_ratio > 0

        zip_bytes = decrypt_archive(result.archive_path, "correct horse")
        with zipfile.ZipFile(io.BytesIO(zip_bytes)) as zf:
            assert sorted(zf.namelist()) == ["evidence_a.md", "mapping_a.csv"]
            assert zf.read("evidence_a.md").decode() == "# report\n" * 50

    def test_archive_is_not_plaintext(self, tmp_path, loose_files):
        result = ArchiveCreator(str(tmp_path), "pw").create(loose_files, "evidence_pack_x")
        with open(result.archive_path, "rb") as f:
            raw = f.read()
        assert b"# report" not in raw
        assert b"evidence_a.md" not in raw

    def test_wrong_passphrase(self, tmp_path, loose_files):
        result = ArchiveCreator(str(tmp_path), "right").create(loose_files, "evidence_pack_x")
        with pytest.raises(ValueError):
            decrypt_archive(result.archive_path, "wrong")

    def test_not_an_archive(self, tmp_path):
        bogus = tmp_path / "evidence_pack_bogus.zip.enc"
        bogus.write_bytes(b"PK\x03\x04 definitely a plain zip")
        with pytest.raises(ValueError):
            decrypt_archive(str(bogus), "pw")

    @pytest.mark.parametrize("name", ["evidence_pack_y.zip", "evidence_pack_y.zip.enc", "evidence_pack_y"])
    def test_name_suffix_normalised(self, tmp_path, loose_files, name):
        result = ArchiveCreator(str(tmp_path), "pw").create(loose_files, name)
        assert os.path.basename(result.archive_path) == "evidence_pack_y.zip.enc"

    def test_missing_files_skipped(self, tmp_path, loose_files):
        logger = StructuredLogger(name="t")
        files = loose_files + [str(tmp_path / "gone.json")]
        result = ArchiveCreator(str(tmp_path), "pw", logger=logger).create(files, "evidence_pack_z")
        assert result.success is True
        assert len(result.files_archived) == 2
        assert logger.get_entries(operation="archive_file_missing")

    def test_no_valid_files(self, tmp_path):
        result = ArchiveCreator(str(tmp_path), "pw").create([str(tmp_path / "nope.md")])
        assert result.success is False
        assert result.error == "No valid files found to archive"

    def test_passphrase_required(self, tmp_path, loose_files):
        result = ArchiveCreator(str(tmp_path), "").create(loose_files)
        assert result.success is False
        assert "passphrase" in result.error
        assert not os.path.exists(result.archive_path)

    def test_report(self):
        ok = ArchiveResult(
            archive_path="/out/evidence_pack_x.zip.enc", files_archived=["a.md"],
            archive_size=4096, compression_ratio=60, success=True,
        )
        text = generate_archive_report(ok)
        assert "Status: SUCCESS" in text
        assert "Size: 4 KB" in text
        assert "Compression: 60% reduction" in text

        failed = generate_archive_report(ArchiveResult(archive_path="x.zip.enc", error="boom"))
        assert "Status: FAILED" in failed
        assert "Error: boom" in failed

    def test_remove_files(self, loose_files, tmp_path):
        removed = remove_files(loose_files + [str(tmp_path / "absent")])
        assert removed == loose_files
        assert not any(os.path.exists(p) for p in loose_files)


# ── Cleanup ───────────────────────────────────────────────────────────────────

class TestCleanup:

    @pytest.fixture
    def populated(self, tmp_path):
        now = time.time()
        ages = {
            "evidence_pack_old.zip.enc": 48,
            "evidence_old.md": 30,
            "mapping_old.csv": 25,
            "evidence_new_data.json": 1,
            "notes_old.txt": 100,
        }
        for name, hours in ages.items():
            p = tmp_path / name
            p.write_text("x" * 100)
            os.utime(p, (now - hours * 3600, now - hours * 3600))
        return tmp_path

    def test_deletes_only_old_evidence_files(self, populated):
        result = FileCleanup(str(populated), max_age_hours=24).cleanup_old_files()

        assert result.files_scanned == 4
        assert result.files_deleted == 3
        assert result.deleted_files == ["evidence_old.md", "evidence_pack_old.zip.enc", "mapping_old.csv"]
        assert result.total_size_freed == 300
        assert result.errors == []
        assert (populated / "evidence_new_data.json").exists()
        assert (populated / "notes_old.txt").exists()

    def test_missing_directory(self, tmp_path):
        result = FileCleanup(str(tmp_path / "missing")).cleanup_old_files()
        assert result.files_scanned == 0

    def test_list_evidence_files(self, populated):
        files = FileCleanup(str(populated)).list_evidence_files()
        assert [f["file"] for f in files] == [
            "evidence_new_data.json", "evidence_old.md",
            "evidence_pack_old.zip.enc", "mapping_old.csv",
        ]
        assert files[0]["size"] == "100 B"
        assert files[0]["age"].endswith("h")

    def test_report(self, populated):
        cleanup = FileCleanup(str(populated), max_age_hours=24)
        report = cleanup.generate_report(cleanup.cleanup_old_files())
        assert "Files deleted: 3" in report
        assert "Space freed: 300 B" in report
        assert "Max age threshold: 24 hours" in report

    def test_report_when_nothing_to_do(self, tmp_path):
        cleanup = FileCleanup(str(tmp_path))
        assert "No old files found to clean up." in cleanup.generate_report(cleanup.cleanup_old_files())

    @pytest.mark.parametrize("name, expected", [
        ("evidence_pack_user_20240101T000000Z.zip.enc", True),
        ("evidence_user_20240101T000000Z.md", True),
        ("evidence_user_20240101T000000Z_data.json", True),
        ("mapping_user_20240101T000000Z.csv", True),
        ("evidence_user.txt", False),
        ("README.md", False),
    ])
    def test_is_evidence_file(self, name, expected):
        assert is_evidence_file(name) is expected

    @pytest.mark.parametrize("size, text", [
        (0, "0 B"), (512, "512 B"), (1024, "1 KB"), (1536, "1.5 KB"), (5 * 1024 ** 2, "5 MB"),
    ])
    def test_format_bytes(self, size, text):
        assert format_bytes(size) == text
