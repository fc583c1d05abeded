"""
autopv.classification.classifier
================================
GDPR field classification through an external reasoning service.

Flow:
  1. Extract field paths from the (already scrubbed) data
  2. Build a type-tag-only structural sample
  3. Ask the reasoning service (fixed instruction, low temperature)
  4. Parse the answer strictly as a JSON array
  5. Keep only complete records naming an extracted field path
"""

from __future__ import annotations

import json
import time
from typing import Any, Dict, List, Optional

import regex

from autopv.core.data_types import (
    ClassificationRecord,
    ClassificationResult,
    ClassificationSummary,
    Sensitivity,
)
from autopv.core.exceptions import ClassificationError, MalformedResponseError
from autopv.core.logger import StructuredLogger
from autopv.core.retry import RetryPolicy
from autopv.classification.field_paths import (
    DEFAULT_SAMPLE_DEPTH,
    DEFAULT_SAMPLE_KEYS,
    FieldPathExtractor,
    create_data_sample,
)
from autopv.classification.reasoning import BaseReasoningService, ReasoningRequest


SYSTEM_PROMPT = """You are a GDPR compliance expert. Your task is to analyze data fields and classify them according to GDPR articles.

For each data field provided, return a JSON array with objects containing:
- field: the field name/path, copied exactly from the "fields" list
- article: the relevant GDPR article (e.g., "Art. 15", "Art. 6", "Art. 9", etc.)
- reasoning: brief explanation of why this article applies
- dataType: type of personal data (e.g., "contact", "financial", "behavioral", "technical")
- sensitivity: "low", "medium", or "high" based on GDPR sensitivity levels

Key GDPR Articles to consider:
- Art. 6: Lawfulness of processing (general personal data)
- Art. 9: Processing of special categories (sensitive data)
- Art. 15: Right of access by the data subject
- Art. 17: Right to erasure (right to be forgotten)
- Art. 20: Right to data portability
- Art. 21: Right to object
- Art. 25: Data protection by design and by default

Focus on data subject rights (Art. 15-22) for DSAR evidence packs.
The sample data contains type names only, never real values.
Return ONLY valid JSON, no additional text."""

# response key → ClassificationRecord attribute
_REQUIRED_KEYS = {
    "field":       "field",
    "article":     "rule_reference",
    "reasoning":   "rationale",
    "dataType":    "category",
    "sensitivity": "sensitivity",
}

# ```json ... ``` around the whole answer
_FENCE_RE = regex.compile(r"\A\s*```(?:json)?\s*\n(?P<body>.*?)\n?```\s*\Z", regex.DOTALL)


class Classifier:
    """
    Classifies scrubbed data fields against GDPR articles.

    Parameters
    ----------
    service : BaseReasoningService
        Backend that turns a ReasoningRequest into response text.
    extractor : FieldPathExtractor or None
        Defaults to FieldPathExtractor() (depth 3).
    retry : RetryPolicy or None
        Applied around the service call only. Defaults to 3 attempts.
    temperature, max_output_tokens : request parameters.
    sample_depth, sample_keys : bounds of the structural sample.

    Usage
    -----
    classifier = Classifier(GeminiReasoningService(api_key))
    result = classifier.classify(scrub_result.scrubbed_data)
    """

    def __init__(
        self,
        service: BaseReasoningService,
        extractor: Optional[FieldPathExtractor] = None,
        retry: Optional[RetryPolicy] = None,
        temperature: float = 0.1,
        max_output_tokens: int = 2000,
        sample_depth: int = DEFAULT_SAMPLE_DEPTH,
        sample_keys: int = DEFAULT_SAMPLE_KEYS,
        logger: Optional[StructuredLogger] = None,
    ):
        self._service           = service
        self._extractor         = extractor or FieldPathExtractor()
        self._retry             = retry or RetryPolicy()
        self.temperature        = temperature
        self.max_output_tokens  = max_output_tokens
        self.sample_depth       = sample_depth
        self.sample_keys        = sample_keys
        self._logger            = logger or StructuredLogger(name="classifier")

    # ── Public API ────────────────────────────────────────────────────────────

    def build_request(self, field_paths: List[str], scrubbed_data: Any) -> ReasoningRequest:
        """Build the request sent to the reasoning service."""
        return ReasoningRequest(
            system_instruction = SYSTEM_PROMPT,
            user_payload       = {
                "fields":     field_paths,
                "sampleData": create_data_sample(
                    scrubbed_data, self.sample_depth, self.sample_keys
                ),
            },
            temperature        = self.temperature,
            max_output_tokens  = self.max_output_tokens,
        )

    def classify(self, scrubbed_data: Any) -> ClassificationResult:
        """
        Classify every field path of `scrubbed_data`.

        Returns
        -------
        ClassificationResult
            Validated records plus a summary. summary.total_fields is the
            number of extracted paths, not the number classified.

        Raises
        ------
        ClassificationError
            The service call failed or returned nothing.
        MalformedResponseError
            The service answered with something that is not a JSON array.
        """
        start = time.monotonic()
        field_paths = self._extractor.extract(scrubbed_data)

        if not field_paths:
            self._logger.log("classify_skipped", reason="no field paths")
            return ClassificationResult(
                classifications=[],
                summary=ClassificationSummary(processing_time_ms=_elapsed_ms(start)),
            )

        request = self.build_request(field_paths, scrubbed_data)

        try:
            text = self._retry.call(self._service.complete, request)
        except ClassificationError:
            raise
        except Exception as exc:
            raise ClassificationError(
                f"Reasoning service call failed: {exc}",
                details={"service": self._service.name, "error": type(exc).__name__},
            ) from exc

        if not text or not text.strip():
            raise ClassificationError(
                "Empty response from reasoning service",
                details={"service": self._service.name},
            )

        raw_records = parse_classification_response(text)
        records = self._validate(raw_records, field_paths)

        dropped = len(raw_records) - len(records)
        if dropped:
            self._logger.log("classify_dropped", dropped=dropped, kept=len(records))

        rule_refs: List[str] = []
        for r in records:
            if r.rule_reference not in rule_refs:
                rule_refs.append(r.rule_reference)

        summary = ClassificationSummary(
            total_fields             = len(field_paths),
            distinct_rule_references = rule_refs,
            high_sensitivity_count   = sum(1 for r in records if r.sensitivity == Sensitivity.HIGH),
            processing_time_ms       = _elapsed_ms(start),
        )
        self._logger.log(
            "classify",
            total_fields=summary.total_fields,
            classified=len(records),
            high_sensitivity=summary.high_sensitivity_count,
        )
        return ClassificationResult(classifications=records, summary=summary)

    # ── Internals ─────────────────────────────────────────────────────────────

    @staticmethod
    def _validate(raw_records: List[Any], field_paths: List[str]) -> List[ClassificationRecord]:
        known = set(field_paths)
        records: List[ClassificationRecord] = []

        for raw in raw_records:
            if not isinstance(raw, dict):
                continue
            values: Dict[str, str] = {}
            for key, attr in _REQUIRED_KEYS.items():
                v = raw.get(key)
                if not isinstance(v, str) or not v.strip():
                    break
                values[attr] = v.strip()
            else:
                values["sensitivity"] = values["sensitivity"].lower()
                if values["sensitivity"] not in Sensitivity.ALL:
                    continue
                if values["field"] not in known:
                    continue
                records.append(ClassificationRecord(**values))

        return records

    def __repr__(self) -> str:
        return f"Classifier(service={self._service!r}, extractor_depth={self._extractor.max_depth})"


# ── Helpers ───────────────────────────────────────────────────────────────────

def parse_classification_response(text: str) -> List[Any]:
    """
    Parse response text as a JSON array.

    A single Markdown code fence wrapping the entire answer is removed;
    nothing else is repaired. Raises MalformedResponseError otherwise.
    """
    fenced = _FENCE_RE.match(text)
    body = fenced.group("body") if fenced else text

    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, ValueError) as exc:
        raise MalformedResponseError(
            f"Failed to parse reasoning service response as JSON: {exc}",
            details={"preview": text[:80]},
        ) from exc

    if not isinstance(parsed, list):
        raise MalformedResponseError(
            "Reasoning service response is not a JSON array",
            details={"got": type(parsed).__name__},
        )
    return parsed


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
