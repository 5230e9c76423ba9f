"""
Prompt templates for extraction and tutoring.

Every prompt asks for a single JSON object so replies can be parsed
without scraping free text.
"""

from __future__ import annotations

from memoai.services import ExistingChunkView, HistoryEntry, Language, TurnRequest

EXISTING_PREVIEW_CHARS = 500

# =============================================================================
# Extraction
# =============================================================================

EXTRACT_TEMPLATE = """Split the note below into knowledge chunks for spaced repetition review.

Note title: {title}

Note content:
{content}

Each chunk must:
1. Cover one coherent idea, concept or topic.
2. Keep the explanation, context and supporting details it needs to stand alone.
3. Be a substantial section (roughly 200-1500 characters), not a single sentence.

Reply with JSON in exactly this shape:
{{
  "chunks": [
    {{"content": "text of the chunk"}}
  ]
}}

Rules:
- If the note is empty or has nothing worth reviewing, reply {{"chunks": []}}
- Keep the wording of the note; do not summarise away details
- Prefer a few large chunks over many small ones
- Group sentences, examples and explanations that belong to the same topic
"""

INCREMENTAL_TEMPLATE = """The note below was edited. Update its existing knowledge chunks to match.

Note title: {title}

Note content:
{content}
{existing}

For every existing chunk decide one action:
1. "keep": it still matches a section of the note with at most trivial differences
2. "modify": the topic is still there but the details, explanation or emphasis changed
3. "delete": the topic no longer appears in the note

Then list any topics that are new and not covered by an existing chunk.

Reply with JSON in exactly this shape:
{{
  "existing_chunks": [
    {{
      "id": "chunk id exactly as given",
      "action": "keep" | "modify" | "delete",
      "modified_content": "full new content when modifying, empty otherwise",
      "update_level": "minor" | "moderate" | "major"
    }}
  ],
  "new_chunks": [
    {{"content": "text of the new chunk"}}
  ]
}}

Rules:
- Use the chunk ids exactly as listed; never invent or renumber ids
- Judge by meaning, not only by identical wording
- When modifying, always give the complete updated content and an update_level:
  * "minor": rewording, formatting, typo fixes, small clarifications
  * "moderate": added examples, expanded or partly rewritten explanations, same core concept
  * "major": the core concept changed or the section was restructured substantially
- Delete only when the topic is gone; prefer modify when topics partially overlap
- Create new chunks only for genuinely new topics
- Do not try to change importance or review settings
- Prefer a few comprehensive chunks over many fragments
"""

EXISTING_HEADER = "\n\nExisting chunks (id shown for each entry):\n"


def build_extract_prompt(title: str, content: str) -> str:
    return EXTRACT_TEMPLATE.format(title=title, content=content)


def _preview(text: str) -> str:
    if len(text) <= EXISTING_PREVIEW_CHARS:
        return text
    return text[:EXISTING_PREVIEW_CHARS] + "..."


def build_incremental_prompt(
    title: str,
    content: str,
    existing: list[ExistingChunkView],
) -> str:
    existing_text = ""
    if existing:
        existing_text = EXISTING_HEADER + "\n".join(
            f"- Chunk ID {chunk.id} | Importance: {chunk.importance_level} | "
            f"Needs review: {str(chunk.needs_review).lower()}\n"
            f"  Content preview: {_preview(chunk.content)}"
            for chunk in existing
        )
    return INCREMENTAL_TEMPLATE.format(title=title, content=content, existing=existing_text)


# =============================================================================
# Tutoring
# =============================================================================

LANGUAGE_INSTRUCTIONS: dict[str, tuple[str, str]] = {
    # (question instruction, conversation instruction)
    "en": ("Please respond in English.", "Please continue the conversation in English."),
    "zh": ("请使用中文回答。", "请用中文继续和学员对话。"),
}

QUESTION_TEMPLATE = """{language}

You are a tutor preparing one quick knowledge check for a spaced repetition review.

Knowledge chunk:
{content}

Learner familiarity (0-1): {familiar:.2f}

Write ONE open-ended question that:
1. Targets the most important concept in the chunk
2. Matches the familiarity: supportive when it is low, more demanding when it is high
3. Makes the learner recall or explain the concept in their own words

Reply with JSON:
{{
  "question": "..."
}}
"""

TURN_TEMPLATE = """{language}

You are a tutor reviewing this knowledge chunk with a learner.
Familiarity: {familiar:.2f}
Content:
{content}

Conversation so far:
{history}

{instruction}

Reply with JSON in exactly this shape:
{{
  "response": "your next message to the learner",
  "should_end": true or false,
  "evaluation": {{
    "grade": 0-5,
    "recommendation": "short, actionable advice",
    "confidence": 0-1 (optional)
  }}
}}

When the session is over, set "should_end" to true and fill in "evaluation".
Otherwise set "should_end" to false and "evaluation" to null.
"""

CONTINUE_INSTRUCTION = (
    "If the learner has shown enough understanding you may end the session "
    "and evaluate it; otherwise keep the dialogue going."
)
FORCE_INSTRUCTION = (
    "The learner wants to finish now. Give a brief closing message and "
    "return the evaluation immediately."
)


def _language(language: Language, index: int) -> str:
    return LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS["en"])[index]


def format_history(history: list[HistoryEntry]) -> str:
    return "\n".join(
        f"{'User' if entry.sender == 'user' else 'Tutor'}: {entry.content}"
        for entry in history
    )


def build_question_prompt(content: str, familiar_score: float, language: Language) -> str:
    return QUESTION_TEMPLATE.format(
        language=_language(language, 0),
        content=content,
        familiar=familiar_score,
    )


def build_turn_prompt(request: TurnRequest) -> str:
    return TURN_TEMPLATE.format(
        language=_language(request.language, 1),
        content=request.chunk_content,
        familiar=request.familiar_score,
        history=format_history(request.history),
        instruction=FORCE_INSTRUCTION if request.force_evaluate else CONTINUE_INSTRUCTION,
    )
