from __future__ import annotations

import dataclasses
import enum
import logging
import os
import typing as t

from quiz_ai import providers
from quiz_ai.errors import ExtractionError
from quiz_ai.models import ExtractionRequest, Question
from quiz_ai.normalizer import extract_json, normalize
from quiz_ai.providers import ProviderName

logger = logging.getLogger(__name__)

_API_KEY_ENV: dict[ProviderName, list[str]] = {
    ProviderName.OPENAI: ["OPENAI_API_KEY"],
    ProviderName.ANTHROPIC: ["ANTHROPIC_API_KEY"],
    ProviderName.GEMINI: ["GEMINI_API_KEY", "GOOGLE_API_KEY"],
}


class InputMode(str, enum.Enum):
    MANUAL = "manual"
    SPEECH = "speech"
    IMAGE = "image"


class ExtractionState(str, enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    PARSING = "parsing"
    NORMALIZED = "normalized"
    FAILED = "failed"


@dataclasses.dataclass(frozen=True)
class ExtractionResult:
    question: Question | None
    error: str | None
    state: ExtractionState
    warnings: list[str] = dataclasses.field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.question is not None

    def to_dict(self) -> dict[str, t.Any]:
        return {
            "question": self.question.to_dict() if self.question else None,
            "error": self.error,
            "state": self.state.value,
            "warnings": list(self.warnings),
        }


@dataclasses.dataclass(frozen=True)
class ImageUpload:
    filename: str
    data: bytes
    mime_type: str = "image/png"


@dataclasses.dataclass(frozen=True)
class BatchResult:
    questions: list[Question]
    error: str | None
    warnings: list[str] = dataclasses.field(default_factory=list)
    skipped: list[str] = dataclasses.field(default_factory=list)

    def to_dict(self) -> dict[str, t.Any]:
        return {
            "questions": [q.to_dict() for q in self.questions],
            "error": self.error,
            "warnings": list(self.warnings),
            "skipped": list(self.skipped),
        }


def validate_api_key(provider: str | ProviderName, api_key: str | None) -> str | None:
    if not (api_key or "").strip():
        return f"Please enter your {providers.provider_from_name(provider).display_name} API key."
    return None


def resolve_api_key(provider: str | ProviderName, explicit: str | None = None) -> str:
    if explicit and explicit.strip():
        return explicit.strip()
    for name in _API_KEY_ENV[providers.provider_from_name(provider)]:
        v = os.environ.get(name)
        if v:
            return v
    return ""


def _number_from_env(name: str, default: t.Any, cast: t.Callable[[str], t.Any]) -> t.Any:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", name, raw)
        return default


class QuizExtractor:
    """Turns an image or transcript into one Question through one provider.

    Each extraction is a single request: idle -> requesting -> parsing ->
    normalized, or failed at any stage. Rate limits and transport failures
    are retried a bounded number of times while requesting; every other
    failure is final and the author re-triggers the action instead.
    """

    def __init__(
        self,
        provider: str | ProviderName,
        api_key: str | None = None,
        *,
        model: str | None = None,
        timeout_s: float | None = None,
        retries: int | None = None,
    ) -> None:
        self.provider = providers.provider_from_name(provider)
        self.api_key = resolve_api_key(self.provider, api_key)
        self.model = model
        if timeout_s is None:
            timeout_s = _number_from_env("EXTRACTION_TIMEOUT_S", providers.DEFAULT_TIMEOUT_S, float)
        if retries is None:
            retries = _number_from_env("EXTRACTION_RETRIES", providers.DEFAULT_RETRIES, int)
        self.timeout_s = timeout_s
        self.retries = retries
        self.state = ExtractionState.IDLE

    def _transition(self, state: ExtractionState) -> None:
        logger.debug("Extraction %s -> %s", self.state.value, state.value)
        self.state = state

    def extract(self, request: ExtractionRequest, warnings: list[str] | None = None) -> Question:
        self._transition(ExtractionState.REQUESTING)
        try:
            provider_request = providers.build_request(self.provider, request, self.api_key, self.model)
            data = providers.send_request(provider_request, timeout_s=self.timeout_s, retries=self.retries)
            content = providers.parse_response(self.provider, data)

            self._transition(ExtractionState.PARSING)
            question = normalize(extract_json(content), warnings=warnings)
        except ExtractionError:
            self._transition(ExtractionState.FAILED)
            raise
        self._transition(ExtractionState.NORMALIZED)
        return question

    def run(self, request: ExtractionRequest) -> ExtractionResult:
        warnings: list[str] = []
        try:
            question = self.extract(request, warnings=warnings)
        except ExtractionError as e:
            logger.info("%s extraction failed: %s", self.provider.display_name, e)
            return ExtractionResult(question=None, error=str(e), state=ExtractionState.FAILED)
        return ExtractionResult(question=question, error=None, state=self.state, warnings=warnings)

    def process_images(self, images: t.Sequence[ImageUpload]) -> BatchResult:
        """Extract one question per image, strictly in order.

        A failing image is logged and skipped; the batch only fails when no
        image produced a question.
        """
        key_error = validate_api_key(self.provider, self.api_key)
        if key_error:
            return BatchResult(questions=[], error=key_error)
        if not images:
            return BatchResult(questions=[], error="Please upload at least one image")

        questions: list[Question] = []
        warnings: list[str] = []
        skipped: list[str] = []
        for image in images:
            try:
                request = ExtractionRequest.for_image(image.data, image.mime_type)
                questions.append(self.extract(request, warnings=warnings))
            except Exception as e:
                logger.warning("Error processing image %s: %s", image.filename, e)
                skipped.append(f"{image.filename}: {e}")

        if not questions:
            return BatchResult(
                questions=[],
                error="No questions could be extracted from the uploaded images",
                skipped=skipped,
            )
        return BatchResult(questions=questions, error=None, warnings=warnings, skipped=skipped)

    def process_speech(self, transcript: str) -> ExtractionResult:
        key_error = validate_api_key(self.provider, self.api_key)
        if key_error:
            return ExtractionResult(question=None, error=key_error, state=ExtractionState.FAILED)
        if not transcript.strip():
            return ExtractionResult(
                question=None,
                error="No speech transcript available to process",
                state=ExtractionState.FAILED,
            )
        return self.run(ExtractionRequest.for_transcript(transcript))

    def process_image(self, data_url: str) -> ExtractionResult:
        """Extract one question from a pasted or captured `data:` URL image."""
        key_error = validate_api_key(self.provider, self.api_key)
        if key_error:
            return ExtractionResult(question=None, error=key_error, state=ExtractionState.FAILED)
        try:
            request = ExtractionRequest.for_data_url(data_url)
        except ValueError as e:
            return ExtractionResult(
                question=None,
                error=f"Error processing image: {e}",
                state=ExtractionState.FAILED,
            )
        result = self.run(request)
        if result.error:
            return dataclasses.replace(result, error=f"Error processing image: {result.error}")
        return result

