"""Mixed plain-text / LaTeX strings.

Question and option text is stored as one string in which ``$...$`` marks
inline math and ``$$...$$`` marks display math. Nothing else is persisted;
segments are recomputed from the source string whenever it is rendered.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
import re
import typing as t

from markupsafe import escape

from quiz_ai.errors import MathRenderError

logger = logging.getLogger(__name__)

# Display math first so "$$x$$" is never read as two inline segments.
_MATH_PATTERN = re.compile(r"\$\$([\s\S]*?)\$\$|\$([^$]*?)\$")

MathMode = t.Literal["inline", "display"]
MathRenderer = t.Callable[[str, MathMode], str]

COMMON_SYMBOLS: list[tuple[str, str]] = [
    ("$\\frac{a}{b}$", "Fraction"),
    ("$\\sqrt{x}$", "Square Root"),
    ("$x^2$", "Superscript"),
    ("$x_1$", "Subscript"),
    ("$\\alpha$", "Alpha"),
    ("$\\beta$", "Beta"),
    ("$\\pi$", "Pi"),
    ("$\\theta$", "Theta"),
    ("$\\sum$", "Sum"),
    ("$\\int$", "Integral"),
    ("$\\infty$", "Infinity"),
    ("$\\pm$", "Plus/Minus"),
]


class SegmentKind(str, enum.Enum):
    PLAIN = "plain"
    INLINE_MATH = "inline-math"
    DISPLAY_MATH = "display-math"


@dataclasses.dataclass(frozen=True)
class TextSegment:
    kind: SegmentKind
    text: str

    @property
    def source(self) -> str:
        if self.kind is SegmentKind.DISPLAY_MATH:
            return f"$${self.text}$$"
        if self.kind is SegmentKind.INLINE_MATH:
            return f"${self.text}$"
        return self.text

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "text": self.text}

    @classmethod
    def plain(cls, text: str) -> "TextSegment":
        return cls(SegmentKind.PLAIN, text)

    @classmethod
    def inline_math(cls, text: str) -> "TextSegment":
        return cls(SegmentKind.INLINE_MATH, text)

    @classmethod
    def display_math(cls, text: str) -> "TextSegment":
        return cls(SegmentKind.DISPLAY_MATH, text)


def iter_segments(text: str) -> t.Iterator[TextSegment]:
    pos = 0
    for m in _MATH_PATTERN.finditer(text):
        if m.start() > pos:
            yield TextSegment.plain(text[pos : m.start()])
        display, inline = m.group(1), m.group(2)
        if display is not None:
            yield TextSegment.display_math(display)
        else:
            yield TextSegment.inline_math(inline)
        pos = m.end()
    if pos < len(text):
        yield TextSegment.plain(text[pos:])


def segment(text: str) -> list[TextSegment]:
    """Split ``text`` into plain, inline-math and display-math segments.

    No LaTeX validation happens here. Unbalanced or absent delimiters leave
    the whole string as one plain segment and an empty string gives no
    segments at all.
    """
    if not text:
        return []
    return list(iter_segments(text))


def to_source(segments: t.Iterable[TextSegment]) -> str:
    return "".join(s.source for s in segments)


def has_latex(text: str) -> bool:
    return "$" in text


def mathjax_markup(source: str, mode: MathMode) -> str:
    """Default typesetter: MathJax-ready markup for the browser to typeset."""
    depth = 0
    prev = ""
    for ch in source:
        if prev != "\\":
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth < 0:
                    raise MathRenderError("Unexpected '}'")
        prev = "" if prev == "\\" else ch
    if depth:
        raise MathRenderError("Missing '}'")

    body = escape(source)
    if mode == "display":
        return f'<div class="math display">\\[{body}\\]</div>'
    return f'<span class="math inline">\\({body}\\)</span>'


def _render_math(source: str, mode: MathMode, math_renderer: MathRenderer) -> str:
    if not source.strip():
        return ""
    try:
        return math_renderer(source, mode)
    except Exception as e:
        logger.debug("Math render failed for %r: %s", source, e)
        return f'<span class="latex-error">LaTeX Error: {escape(str(e))}</span>'


def _render_plain(text: str, inline: bool) -> str:
    if inline:
        return f"<span>{escape(text)}</span>"
    lines = [str(escape(line)) for line in text.split("\n")]
    return f"<span>{'<br>'.join(lines)}</span>"


def render(
    text: str,
    *,
    inline: bool = False,
    math_renderer: MathRenderer | None = None,
    class_name: str = "",
) -> str:
    math_renderer = math_renderer or mathjax_markup
    parts: list[str] = []
    for seg in segment(text):
        if seg.kind is SegmentKind.PLAIN:
            parts.append(_render_plain(seg.text, inline))
        elif seg.kind is SegmentKind.INLINE_MATH:
            parts.append(_render_math(seg.text, "inline", math_renderer))
        else:
            # display math collapses to inline inside inline renders
            parts.append(_render_math(seg.text, "inline" if inline else "display", math_renderer))

    tag = "span" if inline else "div"
    classes = f"latex-content {escape(class_name)}".strip()
    return f'<{tag} class="{classes}">{"".join(parts)}</{tag}>'


def insert_at_cursor(
    current_text: str,
    cursor_start: int,
    cursor_end: int,
    symbol_template: str,
) -> tuple[str, int]:
    """Replace the selection with ``symbol_template``.

    The new cursor sits right after the inserted template, not inside any
    placeholder it contains.
    """
    n = len(current_text)
    start = min(max(0, cursor_start), n)
    end = min(max(0, cursor_end), n)
    if end < start:
        start, end = end, start
    new_text = current_text[:start] + symbol_template + current_text[end:]
    return new_text, start + len(symbol_template)
