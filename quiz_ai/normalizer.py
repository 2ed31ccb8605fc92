from __future__ import annotations

import json
import logging
import re
import typing as t

from quiz_ai.errors import MalformedJsonError, SchemaViolationError
from quiz_ai.models import Option, Question, QuestionType, new_id

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?([\s\S]*?)```")


def extract_json(raw_response_text: str) -> str:
    """Return the interior of the first fenced block, else the trimmed text.

    Best effort only: prose around unfenced JSON is left in place and fails
    later when the text is parsed.
    """
    m = _FENCE.search(raw_response_text)
    if m and m.group(1).strip():
        return m.group(1).strip()
    return raw_response_text.strip()


def _parse_object(json_text: str) -> dict[str, t.Any]:
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise MalformedJsonError(f"Could not parse the AI response into a valid question: {e.msg}") from e
    if not isinstance(data, dict):
        raise MalformedJsonError("Could not parse the AI response into a valid question: expected a JSON object")
    return data


def _parse_type(data: dict[str, t.Any]) -> QuestionType:
    raw_type = data.get("type")
    if not isinstance(raw_type, str):
        raise SchemaViolationError('Field "type" is required')
    try:
        return QuestionType(raw_type)
    except ValueError:
        raise SchemaViolationError(
            'Field "type" must be one of "multiple-choice", "true-false" or "subjective"'
        ) from None


def _parse_options(data: dict[str, t.Any]) -> list[Option]:
    raw_options = data.get("options")
    if not isinstance(raw_options, list) or len(raw_options) < 2:
        raise SchemaViolationError('Field "options" must list at least two options')
    options: list[Option] = []
    for i, raw in enumerate(raw_options):
        if not isinstance(raw, dict) or not isinstance(raw.get("text"), str):
            raise SchemaViolationError(f'Option {i + 1} is missing its "text"')
        options.append(Option(id=new_id(), text=raw["text"]))
    return options


def _as_index(value: t.Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def resolve_correct_answer(raw: t.Any, options: list[Option]) -> tuple[str, str | None]:
    """Map an index or id onto a minted option id.

    Returns the id and, when the reference could not be resolved and the
    first option was used instead, a warning for the author.
    """
    index = _as_index(raw)
    if index is not None:
        index = min(max(0, index), len(options) - 1)
        return options[index].id, None
    if isinstance(raw, str):
        for opt in options:
            if opt.id == raw:
                return opt.id, None
    return options[0].id, (
        f"Could not tell which option is correct (got {raw!r}); defaulted to the first option. "
        "Please confirm the correct answer."
    )


def normalize(json_text: str, warnings: list[str] | None = None) -> Question:
    data = _parse_object(json_text)

    text = data.get("text")
    if not isinstance(text, str):
        raise SchemaViolationError('Field "text" is required')
    qtype = _parse_type(data)

    sample_answer = data.get("sampleAnswer")
    if not isinstance(sample_answer, str):
        sample_answer = None

    if not qtype.has_options:
        return Question(
            id=new_id(),
            text=text,
            type=qtype,
            options=[],
            correct_answer_id="",
            sample_answer=sample_answer,
        )

    options = _parse_options(data)
    correct_answer_id, warning = resolve_correct_answer(data.get("correctAnswerId"), options)
    if warning:
        logger.warning(warning)
        if warnings is not None:
            warnings.append(warning)

    return Question(
        id=new_id(),
        text=text,
        type=qtype,
        options=options,
        correct_answer_id=correct_answer_id,
        sample_answer=sample_answer,
    )
