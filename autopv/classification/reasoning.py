"""
autopv.classification.reasoning
===============================
The external reasoning service the classifier talks to.

The classifier depends only on BaseReasoningService.complete(); the Gemini
implementation below is the default backend. Tests substitute a fake.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

import google.generativeai as genai


DEFAULT_MODEL = "gemini-2.5-flash"


@dataclass(frozen=True)
class ReasoningRequest:
    """
    One request to the reasoning service.

    Attributes:
        system_instruction : Fixed instruction describing the task.
        user_payload       : Structured request body (JSON-serialisable).
        temperature        : Sampling temperature (kept low).
        max_output_tokens  : Upper bound on the response length.
    """
    system_instruction: str
    user_payload:       Dict[str, Any]  = field(default_factory=dict)
    temperature:        float           = 0.1
    max_output_tokens:  int             = 2000

    def render_user_message(self, preamble: str = "") -> str:
        body = json.dumps(self.user_payload, indent=2, ensure_ascii=False)
        return f"{preamble}\n\n{body}" if preamble else body


class BaseReasoningService(ABC):
    """
    Base class for reasoning backends.

    Implementations send the request and return the raw response text.
    They raise on transport / API errors; they never parse the text.
    """

    name: str = "reasoning"

    @abstractmethod
    def complete(self, request: ReasoningRequest) -> str:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class GeminiReasoningService(BaseReasoningService):
    """
    Google Gemini backend (google-generativeai).

    Usage
    -----
    service = GeminiReasoningService(api_key=os.environ["GEMINI_API_KEY"])
    text = service.complete(request)
    """

    name = "gemini"

    def __init__(self, api_key: str, model_name: str = DEFAULT_MODEL):
        genai.configure(api_key=api_key)
        self._model_name = model_name

    def complete(self, request: ReasoningRequest) -> str:
        model = genai.GenerativeModel(
            model_name=self._model_name,
            system_instruction=request.system_instruction,
        )
        response = model.generate_content(
            request.render_user_message(
                "Classify these data fields according to GDPR articles "
                "for a DSAR evidence pack:"
            ),
            generation_config={
                "temperature":        request.temperature,
                "max_output_tokens":  request.max_output_tokens,
                "response_mime_type": "application/json",
            },
        )
        return response.text

    def __repr__(self) -> str:
        return f"GeminiReasoningService(model={self._model_name!r})"
