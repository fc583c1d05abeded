"""
autopv.classification
=====================
Field-level GDPR classification of scrubbed data.

PUBLIC API:
  Classifier                 — classify(scrubbed) → ClassificationResult
  FieldPathExtractor         — extract(value) → list of field paths
  create_data_sample         — type-tag-only structural sample
  BaseReasoningService       — base class for reasoning backends
  GeminiReasoningService     — default backend (google-generativeai)
  ReasoningRequest           — one request to a backend
  generate_compliance_report — plain-text report for a result
"""

from autopv.classification.classifier import Classifier, parse_classification_response
from autopv.classification.field_paths import FieldPathExtractor, create_data_sample
from autopv.classification.reasoning import (
    BaseReasoningService,
    GeminiReasoningService,
    ReasoningRequest,
)
from autopv.classification.report import generate_compliance_report

__all__ = [
    "Classifier",
    "parse_classification_response",
    "FieldPathExtractor",
    "create_data_sample",
    "BaseReasoningService",
    "GeminiReasoningService",
    "ReasoningRequest",
    "generate_compliance_report",
]
