from __future__ import annotations

import base64
import dataclasses
import datetime as dt
import enum
import typing as t
import uuid

JsonDict = dict[str, t.Any]


def new_id() -> str:
    return str(uuid.uuid4())


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SUBJECTIVE = "subjective"

    @property
    def has_options(self) -> bool:
        return self is not QuestionType.SUBJECTIVE

    @staticmethod
    def from_tag(tag: t.Any) -> "QuestionType":
        """Accepts the canonical tags and the legacy storage tags."""
        legacy = {
            "multiple_choice": QuestionType.MULTIPLE_CHOICE,
            "true_false": QuestionType.TRUE_FALSE,
            "text": QuestionType.SUBJECTIVE,
        }
        if isinstance(tag, QuestionType):
            return tag
        if isinstance(tag, str):
            if tag in legacy:
                return legacy[tag]
            return QuestionType(tag)
        raise ValueError(f"Unknown question type: {tag!r}")


@dataclasses.dataclass(frozen=True)
class Option:
    id: str
    text: str

    def to_dict(self) -> JsonDict:
        return {"id": self.id, "text": self.text}

    @staticmethod
    def from_dict(data: JsonDict) -> "Option":
        return Option(id=str(data.get("id") or new_id()), text=str(data.get("text") or ""))


@dataclasses.dataclass(frozen=True)
class Question:
    id: str
    text: str
    type: QuestionType
    options: list[Option] = dataclasses.field(default_factory=list)
    correct_answer_id: str = ""
    sample_answer: str | None = None
    image: str | None = None

    def option_by_id(self, option_id: str) -> Option | None:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None

    @property
    def correct_option(self) -> Option | None:
        return self.option_by_id(self.correct_answer_id) if self.correct_answer_id else None

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type.value,
            "options": [o.to_dict() for o in self.options],
            "correctAnswerId": self.correct_answer_id,
            "sampleAnswer": self.sample_answer or "",
            "image": self.image,
        }

    @staticmethod
    def from_dict(data: JsonDict) -> "Question":
        return Question(
            id=str(data.get("id") or new_id()),
            text=str(data.get("text") or ""),
            type=QuestionType.from_tag(data.get("type") or QuestionType.MULTIPLE_CHOICE.value),
            options=[Option.from_dict(o) for o in (data.get("options") or [])],
            correct_answer_id=str(data.get("correctAnswerId") or ""),
            sample_answer=data.get("sampleAnswer") or None,
            image=data.get("image") or None,
        )


@dataclasses.dataclass(frozen=True)
class Quiz:
    id: str
    title: str
    description: str = ""
    questions: list[Question] = dataclasses.field(default_factory=list)

    def question_by_id(self, question_id: str) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "questions": [q.to_dict() for q in self.questions],
        }

    @staticmethod
    def from_dict(data: JsonDict) -> "Quiz":
        return Quiz(
            id=str(data.get("id") or data.get("_id") or new_id()),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            questions=[Question.from_dict(q) for q in (data.get("questions") or [])],
        )


@dataclasses.dataclass(frozen=True)
class Student:
    id: str
    name: str
    email: str | None = None
    google_id: str | None = None
    profile_picture: str | None = None
    created_at: str = dataclasses.field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat()
    )

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "googleId": self.google_id,
            "profilePicture": self.profile_picture,
            "createdAt": self.created_at,
        }


@dataclasses.dataclass(frozen=True)
class QuestionResult:
    question_id: str
    is_correct: bool
    user_answer_id: str
    correct_answer_id: str

    def to_dict(self) -> JsonDict:
        return {
            "questionId": self.question_id,
            "isCorrect": self.is_correct,
            "userAnswerId": self.user_answer_id,
            "correctAnswerId": self.correct_answer_id,
        }


@dataclasses.dataclass(frozen=True)
class QuizResult:
    total_questions: int
    correct_answers: int
    score: float
    question_results: list[QuestionResult]

    def to_dict(self) -> JsonDict:
        return {
            "totalQuestions": self.total_questions,
            "correctAnswers": self.correct_answers,
            "score": self.score,
            "questionResults": [r.to_dict() for r in self.question_results],
        }


class SourceKind(str, enum.Enum):
    IMAGE = "image"
    TRANSCRIPT = "transcript"


@dataclasses.dataclass(frozen=True)
class ExtractionRequest:
    source_kind: SourceKind
    payload: bytes | str
    mime_type: str = "image/png"

    @staticmethod
    def for_image(data: bytes, mime_type: str = "image/png") -> "ExtractionRequest":
        return ExtractionRequest(SourceKind.IMAGE, data, mime_type or "image/png")

    @staticmethod
    def for_data_url(data_url: str) -> "ExtractionRequest":
        mime_type, data = parse_data_url(data_url)
        return ExtractionRequest(SourceKind.IMAGE, data, mime_type)

    @staticmethod
    def for_transcript(transcript: str) -> "ExtractionRequest":
        return ExtractionRequest(SourceKind.TRANSCRIPT, transcript)

    @property
    def image_base64(self) -> str:
        if isinstance(self.payload, str):
            raise TypeError("Transcript requests carry no image")
        return base64.b64encode(self.payload).decode("ascii")

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.image_base64}"


def parse_data_url(data_url: str) -> tuple[str, bytes]:
    """Split ``data:<mime>;base64,<data>`` into its MIME type and bytes."""
    header, sep, data = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Expected a base64 data URL")
    mime_type = header[len("data:") : -len(";base64")] or "application/octet-stream"
    return mime_type, base64.b64decode(data)


def create_empty_question() -> Question:
    return Question(
        id=new_id(),
        text="",
        type=QuestionType.MULTIPLE_CHOICE,
        options=[Option(id=new_id(), text=""), Option(id=new_id(), text="")],
        correct_answer_id="",
    )


def validate_question(question: Question) -> str | None:
    """Return the first problem an author has to fix, or None."""
    if not question.text.strip():
        return "Question text is required"

    if question.type.has_options:
        if not question.correct_answer_id:
            return "Please select a correct answer"
        if any(not o.text.strip() for o in question.options):
            return "All options must have text"
        if question.type is QuestionType.MULTIPLE_CHOICE and len(question.options) < 2:
            return "A multiple-choice question needs at least two options"
        if question.correct_option is None:
            return "The correct answer must be one of the options"

    return None
