from __future__ import annotations

LATEX_GUIDELINES = """
LaTeX guidelines:
- Use $...$ for inline math: $x^2$, $E = mc^2$, $\\pi r^2$
- Use $$...$$ for display math: $$\\frac{a}{b}$$, $$\\int_0^1 x dx$$
- Common symbols: $\\alpha$, $\\beta$, $\\pi$, $\\theta$, $\\sum$, $\\int$, $\\sqrt{x}$
- Fractions: $\\frac{numerator}{denominator}$, only when division is intended
- Simple products stay products: $F = ma$, $P = VI$
- Superscripts/subscripts: $x^2$, $H_2O$
- Math functions: $\\sin$, $\\cos$, $\\log$
"""

EXTRACTION_PROMPT = f"""
Extract a quiz question from this content. If the content contains mathematical, scientific, or technical content, use LaTeX notation for formulas and expressions.
{LATEX_GUIDELINES}
Return ONLY valid JSON in this exact format, without any explanation or markdown formatting:
{{
  "text": "Question text with LaTeX notation if applicable",
  "type": "multiple-choice" | "true-false" | "subjective",
  "options": [{{"text": "Option A with LaTeX if needed"}}, {{"text": "Option B with LaTeX if needed"}}],
  "correctAnswerId": 0,
  "sampleAnswer": "For subjective questions, sample answer with LaTeX if appropriate"
}}

"correctAnswerId" is the zero-based index of the correct option.
For true-false questions, provide exactly two options: "True" and "False".
For subjective questions, include a "sampleAnswer" field but no options or correctAnswerId.
""".strip()

SPEECH_NOTES = """
The content below is a transcript of a spoken quiz question. Transcription may be imperfect:
fix obvious mistakes, including in scientific formulas, and check capitalization.
If you see "F=m/a" this is likely "F=ma" (Newton's Second Law); "V=I/R" is likely "V=IR" (Ohm's Law).
Do not create fractions unless the formula genuinely requires division.
""".strip()


def image_prompt() -> str:
    return EXTRACTION_PROMPT


def transcript_prompt(transcript: str) -> str:
    return f"{EXTRACTION_PROMPT}\n\n{SPEECH_NOTES}\n\nSpoken question: {transcript.strip()}"
