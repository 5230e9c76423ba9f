"""
Unit tests for the LLM-backed extraction and tutoring services.

The chat client is replaced by a stub returning canned JSON objects.
"""

import pytest

from memoai.chunks.merge import DecisionAction, UpdateLevel
from memoai.errors import ExternalServiceError
from memoai.llm.prompts import (
    FORCE_INSTRUCTION,
    build_incremental_prompt,
    build_question_prompt,
    build_turn_prompt,
)
from memoai.llm.services import (
    LLMExtractionService,
    LLMTutoringService,
    parse_evaluation,
    parse_grade,
)
from memoai.services import ExistingChunkView, HistoryEntry, TurnRequest


class StubClient:
    """Returns queued replies and records prompts."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def complete_json(self, prompt, temperature=0.3):
        self.prompts.append(prompt)
        return self.replies.pop(0)


def view(chunk_id="c1", content="Existing content"):
    return ExistingChunkView(id=chunk_id, content=content, importance_level="high", needs_review=True)


# =============================================================================
# Extraction
# =============================================================================


class TestExtraction:
    """Tests for LLMExtractionService."""

    def test_extract(self):
        client = StubClient({"chunks": [{"content": "First"}, "Second", {"other": 1}]})
        service = LLMExtractionService(client)

        assert service.extract("Biology", "note text") == ["First", "Second", ""]
        assert "Biology" in client.prompts[0]
        assert "note text" in client.prompts[0]

    def test_extract_empty(self):
        assert LLMExtractionService(StubClient({})).extract("t", "c") == []

    def test_extract_rejects_non_array(self):
        with pytest.raises(ExternalServiceError):
            LLMExtractionService(StubClient({"chunks": "nope"})).extract("t", "c")

    def test_incremental(self):
        client = StubClient({
            "existing_chunks": [
                {"id": "c1", "action": "modify", "modified_content": "New", "update_level": "minor"},
                {"id": "c2", "action": "delete"},
                {"id": "c3", "action": "explode"},
                "garbage",
            ],
            "new_chunks": [{"content": "Brand new"}],
        })

        result = LLMExtractionService(client).extract_incremental("t", "c", [view()])

        assert [d.action for d in result.existing_decisions] == [
            DecisionAction.MODIFY,
            DecisionAction.DELETE,
        ]
        assert result.existing_decisions[0].update_level == UpdateLevel.MINOR
        assert result.new_chunks == ["Brand new"]
        assert len(result.rejected) == 2

    def test_incremental_rejects_non_arrays(self):
        client = StubClient({"existing_chunks": {"id": "c1"}, "new_chunks": []})
        with pytest.raises(ExternalServiceError):
            LLMExtractionService(client).extract_incremental("t", "c", [view()])

    def test_incremental_prompt_lists_chunks(self):
        long_content = "x" * 800
        prompt = build_incremental_prompt("Title", "Body", [view("abc", long_content)])

        assert "Chunk ID abc" in prompt
        assert "Importance: high" in prompt
        assert "x" * 500 + "..." in prompt
        assert "x" * 501 not in prompt


# =============================================================================
# Tutoring
# =============================================================================


class TestParseGrade:
    """Tests for grade clamping."""

    @pytest.mark.parametrize("raw,expected", [
        (4, 4),
        ("3", 3),
        (4.6, 5),
        (2.5, 3),
        ("1.5", 2),
        (-2, 0),
        (9, 5),
        ("abc", 3),
        (None, 3),
        (float("nan"), 3),
    ])
    def test_parse_grade(self, raw, expected):
        assert parse_grade(raw) == expected

    def test_parse_evaluation(self):
        evaluation = parse_evaluation({"grade": 7, "recommendation": "Revise", "confidence": "0.8"})
        assert evaluation.grade == 5
        assert evaluation.recommendation == "Revise"
        assert evaluation.confidence == pytest.approx(0.8)

    def test_half_grade_is_a_pass(self):
        """A 2.5 from the tutor rounds to 3, the lowest passing grade."""
        assert parse_evaluation({"grade": 2.5}).grade == 3

    def test_parse_evaluation_missing(self):
        assert parse_evaluation(None) is None
        assert parse_evaluation({}).grade == 3


class TestTutoring:
    """Tests for LLMTutoringService."""

    def test_opening_question(self):
        client = StubClient({"question": "  What is ATP?  "})
        question = LLMTutoringService(client).ask_opening_question("ATP stores energy", 0.25, "zh")

        assert question == "What is ATP?"
        assert "请使用中文回答" in client.prompts[0]
        assert "0.25" in client.prompts[0]

    @pytest.mark.parametrize("reply", [{}, {"question": ""}, {"question": 42}])
    def test_opening_question_invalid(self, reply):
        with pytest.raises(ExternalServiceError):
            LLMTutoringService(StubClient(reply)).ask_opening_question("c", 0.0)

    def test_turn(self):
        client = StubClient({
            "response": "Well done",
            "should_end": True,
            "evaluation": {"grade": 4, "recommendation": "Good"},
        })
        request = TurnRequest(
            chunk_content="ATP",
            familiar_score=0.5,
            history=[
                HistoryEntry(sender="system", content="What is ATP?"),
                HistoryEntry(sender="user", content="Energy currency"),
            ],
        )

        turn = LLMTutoringService(client).respond_to_turn(request)

        assert turn.response == "Well done"
        assert turn.should_end is True
        assert turn.evaluation.grade == 4
        assert "Tutor: What is ATP?" in client.prompts[0]
        assert "User: Energy currency" in client.prompts[0]

    def test_turn_without_response(self):
        with pytest.raises(ExternalServiceError):
            LLMTutoringService(StubClient({"should_end": False})).respond_to_turn(
                TurnRequest(chunk_content="c", familiar_score=0.0)
            )

    def test_force_prompt(self):
        prompt = build_turn_prompt(TurnRequest(chunk_content="c", familiar_score=0.0, force_evaluate=True))
        assert FORCE_INSTRUCTION in prompt

    def test_question_prompt_defaults_to_english(self):
        assert "Please respond in English." in build_question_prompt("c", 0.0, "en")
