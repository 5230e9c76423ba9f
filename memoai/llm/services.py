"""
LLM-backed Knowledge Extraction and Tutoring services.

Both validate the shape of what the model returns and raise
ExternalServiceError for anything the engine cannot use.
"""

from __future__ import annotations

import math
from typing import Any

from loguru import logger

from memoai.chunks.merge import ChunkDecision, IncrementalResult
from memoai.errors import ExternalServiceError, ValidationError
from memoai.scheduling.sm2 import round_half_up
from memoai.services import (
    ExistingChunkView,
    Language,
    TurnRequest,
    TutorEvaluation,
    TutorTurn,
)

from .client import LLMClient
from .prompts import (
    build_extract_prompt,
    build_incremental_prompt,
    build_question_prompt,
    build_turn_prompt,
)

EXTRACTION_TEMPERATURE = 0.3
TUTOR_TEMPERATURE = 0.4
DEFAULT_GRADE = 3


def _chunk_contents(entries: Any, key: str) -> list[str]:
    if not isinstance(entries, list):
        raise ExternalServiceError(f"LLM response {key} is not an array")
    contents = []
    for entry in entries:
        if isinstance(entry, dict):
            contents.append(str(entry.get("content") or ""))
        elif isinstance(entry, str):
            contents.append(entry)
    return contents


class LLMExtractionService:
    """KnowledgeExtractionService backed by a chat completions model."""

    def __init__(self, client: LLMClient):
        self.client = client

    def extract(self, note_title: str, note_content: str) -> list[str]:
        data = self.client.complete_json(
            build_extract_prompt(note_title, note_content),
            temperature=EXTRACTION_TEMPERATURE,
        )
        return _chunk_contents(data.get("chunks", []), "chunks")

    def extract_incremental(
        self,
        note_title: str,
        note_content: str,
        existing: list[ExistingChunkView],
    ) -> IncrementalResult:
        data = self.client.complete_json(
            build_incremental_prompt(note_title, note_content, existing),
            temperature=EXTRACTION_TEMPERATURE,
        )

        raw_decisions = data.get("existing_chunks") or []
        raw_new = data.get("new_chunks") or []
        if not isinstance(raw_decisions, list) or not isinstance(raw_new, list):
            raise ExternalServiceError(
                "LLM response format invalid: existing_chunks and new_chunks must be arrays"
            )

        result = IncrementalResult(new_chunks=_chunk_contents(raw_new, "new_chunks"))
        for raw in raw_decisions:
            if not isinstance(raw, dict):
                result.rejected.append(repr(raw))
                continue
            try:
                result.existing_decisions.append(ChunkDecision.from_dict(raw))
            except ValidationError as e:
                logger.warning(f"Ignoring malformed decision {raw!r}: {e}")
                result.rejected.append(repr(raw))
        return result


def parse_grade(value: Any) -> int:
    """Clamp a model-supplied grade into 0..5; unusable values become 3."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_GRADE
    if math.isnan(number) or math.isinf(number):
        return DEFAULT_GRADE
    return max(0, min(5, round_half_up(number)))


def parse_evaluation(raw: Any) -> TutorEvaluation | None:
    if not isinstance(raw, dict):
        return None
    confidence = raw.get("confidence")
    try:
        confidence = float(confidence) if confidence is not None else None
    except (TypeError, ValueError):
        confidence = None
    grade = raw.get("grade")
    return TutorEvaluation(
        grade=parse_grade(grade) if grade is not None else DEFAULT_GRADE,
        recommendation=str(raw.get("recommendation") or ""),
        confidence=confidence,
    )


class LLMTutoringService:
    """TutoringService backed by a chat completions model."""

    def __init__(self, client: LLMClient):
        self.client = client

    def ask_opening_question(
        self, chunk_content: str, familiar_score: float, language: Language = "en"
    ) -> str:
        data = self.client.complete_json(
            build_question_prompt(chunk_content, familiar_score, language),
            temperature=TUTOR_TEMPERATURE,
        )
        question = data.get("question")
        if not isinstance(question, str) or not question.strip():
            raise ExternalServiceError("LLM did not return a valid question")
        return question.strip()

    def respond_to_turn(self, request: TurnRequest) -> TutorTurn:
        data = self.client.complete_json(
            build_turn_prompt(request),
            temperature=TUTOR_TEMPERATURE,
        )
        response = data.get("response")
        if response is None or not str(response).strip():
            raise ExternalServiceError("LLM response missing answer text")

        return TutorTurn(
            response=str(response).strip(),
            should_end=bool(data.get("should_end")),
            evaluation=parse_evaluation(data.get("evaluation")),
        )
