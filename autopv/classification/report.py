"""
autopv.classification.report
============================
Plain-text rendering of a ClassificationResult.
"""

from __future__ import annotations

from typing import List

from autopv.core.data_types import ClassificationResult


def generate_compliance_report(result: ClassificationResult) -> str:
    """Render `result` as the plain-text classification report."""
    summary = result.summary
    lines: List[str] = [
        "GDPR COMPLIANCE CLASSIFICATION REPORT",
        "=====================================",
        "",
        "Summary:",
        f"- Total fields analyzed: {summary.total_fields}",
        f"- GDPR articles identified: {', '.join(summary.distinct_rule_references) or 'none'}",
        f"- High sensitivity fields: {summary.high_sensitivity_count}",
        f"- Processing time: {summary.processing_time_ms}ms",
        "",
        "Field Classifications:",
        "---------------------",
    ]

    if not result.classifications:
        lines.append("(no fields classified)")

    for record in result.classifications:
        lines.extend([
            f"Field: {record.field}",
            f"Article: {record.rule_reference}",
            f"Data Type: {record.category}",
            f"Sensitivity: {record.sensitivity}",
            f"Reasoning: {record.rationale}",
            "",
        ])

    return "\n".join(lines).rstrip("\n") + "\n"
