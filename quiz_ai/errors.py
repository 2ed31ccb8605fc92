from __future__ import annotations


class ExtractionError(RuntimeError):
    """Terminal failure of one extraction attempt."""


class NetworkOrProviderError(ExtractionError):
    pass


class EmptyContentError(ExtractionError):
    pass


class MalformedJsonError(ExtractionError):
    pass


class SchemaViolationError(ExtractionError):
    pass


class MathRenderError(ValueError):
    pass
