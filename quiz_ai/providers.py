from __future__ import annotations

import dataclasses
import enum
import http.client
import json
import logging
import os
import re
import time
import typing as t
import urllib.error
import urllib.parse
import urllib.request

from quiz_ai import prompts
from quiz_ai.errors import EmptyContentError, NetworkOrProviderError
from quiz_ai.models import ExtractionRequest, SourceKind

JsonDict = dict[str, t.Any]

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 60.0
DEFAULT_RETRIES = 1
MAX_RETRY_DELAY_S = 30.0

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class ProviderName(str, enum.Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ProviderName.OPENAI: "OpenAI",
    ProviderName.ANTHROPIC: "Anthropic",
    ProviderName.GEMINI: "Gemini",
}


@dataclasses.dataclass(frozen=True)
class ProviderRequest:
    provider: ProviderName
    url: str
    headers: dict[str, str]
    body: JsonDict

    def encode(self) -> bytes:
        return json.dumps(self.body, ensure_ascii=False).encode("utf-8")


def _prompt_for(request: ExtractionRequest) -> str:
    if request.source_kind is SourceKind.TRANSCRIPT:
        return prompts.transcript_prompt(t.cast(str, request.payload))
    return prompts.image_prompt()


class OpenAIAdapter:
    provider = ProviderName.OPENAI
    endpoint = "https://api.openai.com/v1/chat/completions"
    models = {SourceKind.IMAGE: "gpt-4o", SourceKind.TRANSCRIPT: "gpt-4o"}

    def build(self, request: ExtractionRequest, api_key: str, model: str) -> ProviderRequest:
        prompt = _prompt_for(request)
        if request.source_kind is SourceKind.IMAGE:
            content: t.Any = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": request.data_url}},
            ]
            body: JsonDict = {
                "model": model,
                "messages": [{"role": "user", "content": content}],
                "max_tokens": 1000,
            }
        else:
            body = {
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0.7,
            }
        return ProviderRequest(
            provider=self.provider,
            url=self.endpoint,
            headers={"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"},
            body=body,
        )

    def content(self, data: JsonDict) -> str | None:
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None
        message = choices[0].get("message") or {}
        return message.get("content")


class AnthropicAdapter:
    provider = ProviderName.ANTHROPIC
    endpoint = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"
    models = {SourceKind.IMAGE: "claude-3-opus-20240229", SourceKind.TRANSCRIPT: "claude-3-opus-20240229"}

    def build(self, request: ExtractionRequest, api_key: str, model: str) -> ProviderRequest:
        prompt = _prompt_for(request)
        if request.source_kind is SourceKind.IMAGE:
            content: t.Any = [
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": request.mime_type,
                        "data": request.image_base64,
                    },
                },
                {"type": "text", "text": prompt},
            ]
        else:
            content = prompt
        return ProviderRequest(
            provider=self.provider,
            url=self.endpoint,
            headers={
                "Content-Type": "application/json",
                "x-api-key": api_key,
                "anthropic-version": self.api_version,
            },
            body={
                "model": model,
                "max_tokens": 4000,
                "messages": [{"role": "user", "content": content}],
            },
        )

    def content(self, data: JsonDict) -> str | None:
        blocks = data.get("content") or []
        texts = [b.get("text") for b in blocks if isinstance(b, dict) and b.get("text")]
        return "\n".join(texts) if texts else None


class GeminiAdapter:
    provider = ProviderName.GEMINI
    base_url = "https://generativelanguage.googleapis.com/v1beta"
    models = {SourceKind.IMAGE: "gemini-2.0-flash", SourceKind.TRANSCRIPT: "gemini-2.0-flash"}

    def build(self, request: ExtractionRequest, api_key: str, model: str) -> ProviderRequest:
        parts: list[JsonDict] = [{"text": _prompt_for(request)}]
        if request.source_kind is SourceKind.IMAGE:
            parts.append({"inlineData": {"mimeType": request.mime_type, "data": request.image_base64}})
            generation_config: JsonDict = {"temperature": 0.4, "maxOutputTokens": 1024}
        else:
            generation_config = {"responseMimeType": "application/json"}
        url = (
            f"{self.base_url}/models/{urllib.parse.quote(model)}:generateContent"
            f"?key={urllib.parse.quote(api_key)}"
        )
        return ProviderRequest(
            provider=self.provider,
            url=url,
            headers={"Content-Type": "application/json"},
            body={"contents": [{"parts": parts}], "generationConfig": generation_config},
        )

    def content(self, data: JsonDict) -> str | None:
        candidates = data.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        if not parts or not isinstance(parts[0], dict):
            return None
        return parts[0].get("text")


Adapter = t.Union[OpenAIAdapter, AnthropicAdapter, GeminiAdapter]

ADAPTERS: dict[ProviderName, Adapter] = {
    ProviderName.OPENAI: OpenAIAdapter(),
    ProviderName.ANTHROPIC: AnthropicAdapter(),
    ProviderName.GEMINI: GeminiAdapter(),
}

_MODEL_ENV = {
    ProviderName.OPENAI: "OPENAI_MODEL",
    ProviderName.ANTHROPIC: "ANTHROPIC_MODEL",
    ProviderName.GEMINI: "GEMINI_MODEL",
}


def provider_from_name(name: str | ProviderName) -> ProviderName:
    try:
        return ProviderName(name)
    except ValueError:
        raise ValueError(f"Unknown AI provider: {name!r}") from None


def default_model(provider: ProviderName, source_kind: SourceKind) -> str:
    return os.environ.get(_MODEL_ENV[provider]) or ADAPTERS[provider].models[source_kind]


def build_request(
    provider: str | ProviderName,
    request: ExtractionRequest,
    api_key: str,
    model: str | None = None,
) -> ProviderRequest:
    p = provider_from_name(provider)
    return ADAPTERS[p].build(request, api_key, model or default_model(p, request.source_kind))


def parse_response(provider: str | ProviderName, data: JsonDict) -> str:
    p = provider_from_name(provider)
    content = ADAPTERS[p].content(data)
    if not isinstance(content, str) or not content.strip():
        raise EmptyContentError(f"{p.display_name} response did not contain expected content.")
    return content


def _provider_error_message(provider: ProviderName, body: str | None) -> str:
    fallback = f"Failed to process with {provider.display_name}"
    if not body:
        return fallback
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return fallback
    if isinstance(parsed, dict):
        err = parsed.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
    return fallback


def _retry_delay_seconds(body: str | None, attempt: int) -> float:
    if body:
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError:
            parsed = None
        err = parsed.get("error") if isinstance(parsed, dict) else None
        details = err.get("details") if isinstance(err, dict) else None
        for d in details if isinstance(details, list) else []:
            if isinstance(d, dict) and str(d.get("@type") or "").endswith("RetryInfo"):
                m = re.search(r"(\d+(?:\.\d+)?)\s*s", str(d.get("retryDelay") or ""))
                if m:
                    return min(MAX_RETRY_DELAY_S, float(m.group(1)))
    return min(MAX_RETRY_DELAY_S, float(2 ** attempt))


def send_request(
    request: ProviderRequest,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    retries: int = DEFAULT_RETRIES,
) -> JsonDict:
    """POST one provider request.

    Rate limits, 5xx responses and transport failures are retried up to
    `retries` more times with backoff; anything else fails immediately.
    """
    name = request.provider.display_name
    req = urllib.request.Request(
        request.url,
        data=request.encode(),
        headers=request.headers,
        method="POST",
    )
    attempts = max(0, retries) + 1
    for attempt in range(attempts):
        last = attempt == attempts - 1
        try:
            with urllib.request.urlopen(req, timeout=timeout_s) as resp:
                payload = resp.read()
            break
        except urllib.error.HTTPError as e:
            try:
                body = e.read().decode("utf-8")
            except Exception:
                body = None
            logger.warning("%s returned HTTP %s (attempt %d/%d)", name, e.code, attempt + 1, attempts)
            if e.code in _RETRYABLE_STATUS and not last:
                time.sleep(_retry_delay_seconds(body, attempt))
                continue
            raise NetworkOrProviderError(_provider_error_message(request.provider, body)) from e
        except urllib.error.URLError as e:
            logger.warning("Could not reach %s (attempt %d/%d): %s", name, attempt + 1, attempts, e.reason)
            if not last:
                time.sleep(_retry_delay_seconds(None, attempt))
                continue
            raise NetworkOrProviderError(f"Could not reach {name}: {e.reason}") from e
        except TimeoutError as e:
            logger.warning("%s timed out (attempt %d/%d)", name, attempt + 1, attempts)
            if not last:
                time.sleep(_retry_delay_seconds(None, attempt))
                continue
            raise NetworkOrProviderError(f"{name} timed out after {timeout_s:g}s") from e
        except (OSError, http.client.HTTPException) as e:
            logger.warning("Connection to %s failed (attempt %d/%d): %r", name, attempt + 1, attempts, e)
            if not last:
                time.sleep(_retry_delay_seconds(None, attempt))
                continue
            raise NetworkOrProviderError(f"Connection to {name} failed: {e!r}") from e

    try:
        raw = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise NetworkOrProviderError(f"{name} returned a response that is not UTF-8 text") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise NetworkOrProviderError(f"{name} returned a non-JSON response: {raw[:200]}") from e
    if not isinstance(data, dict):
        raise NetworkOrProviderError(f"{name} returned an unexpected response")
    return t.cast(JsonDict, data)
