"""
autopv.packaging.evidence_pack
==============================
Writes the loose evidence artifacts for one run:

  evidence_<subject>_<ts>.md         human-readable report
  mapping_<subject>_<ts>.csv         one row per scrubbed leaf value
  evidence_<subject>_<ts>_data.json  the scrubbed dataset

Only scrubbed data is ever written. Failures are reported through
PackResult, never raised.
"""

from __future__ import annotations

import csv
import json
import os
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import regex

from autopv.core.data_types import (
    ClassificationRecord,
    ClassificationResult,
    PackResult,
    RawDataset,
    ScrubResult,
)
from autopv.core.logger import StructuredLogger
from autopv.providers.stripe import calculate_total_charges, format_amount


CSV_COLUMNS = ("field_path", "value", "provider", "rule_reference", "category", "sensitivity")

_SLUG_RE  = regex.compile(r"[^A-Za-z0-9]+")
_INDEX_RE = regex.compile(r"\[\d+\]")


class EvidencePackBuilder:
    """
    Builds the evidence report, CSV mapping and scrubbed JSON.

    Parameters
    ----------
    output_dir : str
        Directory the artifacts are written to (created if missing).
    clock : callable or None
        Returns the current UTC datetime; injected for tests.
    logger : StructuredLogger or None

    Usage
    -----
    builder = EvidencePackBuilder("./out")
    pack = builder.build(dataset, scrub_result, classification)
    pack.files_created      # [report.md, mapping.csv, data.json]
    """

    def __init__(
        self,
        output_dir: str = ".",
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.output_dir = output_dir
        self._clock     = clock or (lambda: datetime.now(timezone.utc))
        self._logger    = logger or StructuredLogger(name="evidence_pack")

    def build(
        self,
        dataset: RawDataset,
        scrub_result: ScrubResult,
        classification: Optional[ClassificationResult] = None,
    ) -> PackResult:
        result = PackResult()
        stem = f"{slugify(dataset.subject)}_{self._clock().strftime('%Y%m%dT%H%M%SZ')}"

        report_path  = os.path.join(self.output_dir, f"evidence_{stem}.md")
        mapping_path = os.path.join(self.output_dir, f"mapping_{stem}.csv")
        data_path    = os.path.join(self.output_dir, f"evidence_{stem}_data.json")

        rows = mapping_rows(scrub_result.scrubbed_data, classification)

        try:
            os.makedirs(self.output_dir, exist_ok=True)

            _write_text(report_path, render_report(dataset, scrub_result, classification, len(rows)))
            result.files_created.append(os.path.abspath(report_path))

            _write_csv(mapping_path, rows)
            result.files_created.append(os.path.abspath(mapping_path))

            _write_text(
                data_path,
                json.dumps(scrub_result.scrubbed_data, indent=2, ensure_ascii=False, default=_json_default),
            )
            result.files_created.append(os.path.abspath(data_path))
        except OSError as exc:
            result.error = f"Failed to write evidence pack: {exc}"
            self._logger.error("pack_failed", error=result.error, written=len(result.files_created))
            return result

        result.success = True
        result.summary = {
            "total_records":   len(rows),
            "report_size":     os.path.getsize(report_path),
            "csv_size":        os.path.getsize(mapping_path),
            "data_size":       os.path.getsize(data_path),
            "gdpr_articles":   list(classification.summary.distinct_rule_references)
                               if classification else [],
        }
        self._logger.log("pack", files=len(result.files_created), **result.summary)
        return result


# ── Report ────────────────────────────────────────────────────────────────────

def render_report(
    dataset: RawDataset,
    scrub_result: ScrubResult,
    classification: Optional[ClassificationResult],
    total_records: int,
) -> str:
    """Markdown evidence report. Contains counts and classifications only."""
    lines: List[str] = [
        "# DSAR Evidence Pack",
        "",
        f"- **Subject:** {_display_subject(dataset.subject, scrub_result)}",
        f"- **Scope:** {dataset.scope or 'n/a'}",
        f"- **Exported at:** {dataset.exported_at}",
        f"- **Mapped values:** {total_records}",
        "",
        "## Data sources",
        "",
        "| Provider | Section | Records |",
        "|---|---|---|",
    ]
    counts = dataset.record_counts()
    for provider in sorted(counts):
        sections = counts[provider] or {"(none)": 0}
        for section, n in sections.items():
            lines.append(f"| {provider} | {section} | {n} |")

    charges = _stripe_charges(dataset)
    if charges:
        lines += ["", f"Total succeeded charges: {format_amount(calculate_total_charges(charges))}"]

    lines += [
        "",
        "## PII redaction",
        "",
        "| Category | Matches |",
        "|---|---|",
    ]
    for category, n in scrub_result.stats.items():
        lines.append(f"| {category} | {n} |")
    lines += [
        "",
        f"Items redacted: {scrub_result.items_found}; bytes reduced: {scrub_result.bytes_reduced}",
        "",
        "## GDPR classification",
        "",
    ]

    if classification is None:
        lines.append("Classification was not performed for this run.")
    else:
        s = classification.summary
        lines += [
            f"- Total fields analysed: {s.total_fields}",
            f"- Articles identified: {', '.join(s.distinct_rule_references) or 'none'}",
            f"- High sensitivity fields: {s.high_sensitivity_count}",
            "",
            "| Field | Article | Data type | Sensitivity | Reasoning |",
            "|---|---|---|---|---|",
        ]
        for r in classification.classifications:
            lines.append(
                f"| `{r.field}` | {r.rule_reference} | {r.category} | "
                f"{r.sensitivity} | {_md_cell(r.rationale)} |"
            )

    return "\n".join(lines) + "\n"


def _display_subject(subject: str, scrub_result: ScrubResult) -> str:
    """The subject identifier as it appears in the scrubbed data."""
    data = scrub_result.scrubbed_data
    if isinstance(data, Mapping) and isinstance(data.get("subject"), str):
        return data["subject"]
    return subject


# ── CSV mapping ───────────────────────────────────────────────────────────────

def mapping_rows(
    scrubbed_data: Any,
    classification: Optional[ClassificationResult] = None,
) -> List[Dict[str, Any]]:
    """
    One row per leaf of the scrubbed data. Array indices in the path are
    normalised to [0] to look up the field's classification.
    """
    by_field: Dict[str, ClassificationRecord] = {}
    if classification is not None:
        for record in classification.classifications:
            by_field.setdefault(record.field, record)

    rows: List[Dict[str, Any]] = []
    for path, value in flatten(scrubbed_data):
        record = _lookup(path, by_field)
        rows.append({
            "field_path":     path,
            "value":          "" if value is None else value,
            "provider":       path.split(".", 1)[0].split("[", 1)[0],
            "rule_reference": record.rule_reference if record else "",
            "category":       record.category if record else "",
            "sensitivity":    record.sensitivity if record else "",
        })
    return rows


def flatten(data: Any, prefix: str = "") -> List[Tuple[str, Any]]:
    """Recursively flatten a mapping/list into (path, leaf) pairs."""
    pairs: List[Tuple[str, Any]] = []
    if isinstance(data, Mapping):
        for k, v in data.items():
            full_key = f"{prefix}.{k}" if prefix else str(k)
            pairs.extend(flatten(v, full_key))
    elif isinstance(data, (list, tuple)):
        for i, v in enumerate(data):
            pairs.extend(flatten(v, f"{prefix}[{i}]"))
    else:
        pairs.append((prefix, data))
    return pairs


def _lookup(path: str, by_field: Dict[str, ClassificationRecord]) -> Optional[ClassificationRecord]:
    if not by_field:
        return None
    normalised = _INDEX_RE.sub("[0]", path)
    # Walk up the path until a classified ancestor is found
    while normalised:
        if normalised in by_field:
            return by_field[normalised]
        cut = max(normalised.rfind("."), normalised.rfind("["))
        if cut <= 0:
            break
        normalised = normalised[:cut]
    return None


# ── Helpers ───────────────────────────────────────────────────────────────────

def slugify(subject: str) -> str:
    """"user+test@example.co.uk" → "user_test_example_co_uk"."""
    return _SLUG_RE.sub("_", subject).strip("_") or "subject"


def _stripe_charges(dataset: RawDataset) -> List[Dict[str, Any]]:
    stripe = dataset.providers.get("stripe")
    if isinstance(stripe, Mapping):
        return [c for c in stripe.get("charges", []) if isinstance(c, Mapping)]
    return []


def _md_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def _write_text(path: str, text: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


def _write_csv(path: str, rows: List[Dict[str, Any]]) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Mapping):
        return dict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
