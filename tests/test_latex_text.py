import unittest

from quiz_ai import latex_text
from quiz_ai.errors import MathRenderError
from quiz_ai.latex_text import SegmentKind, TextSegment


class TestSegment(unittest.TestCase):
    def test_plain_text_is_one_segment(self):
        for s in ["hello", "two\nlines", "  spaced  ", "no math, 100% plain"]:
            self.assertEqual(latex_text.segment(s), [TextSegment.plain(s)])

    def test_mixed_inline_and_display(self):
        self.assertEqual(
            latex_text.segment("a$b$c$$d$$e"),
            [
                TextSegment.plain("a"),
                TextSegment.inline_math("b"),
                TextSegment.plain("c"),
                TextSegment.display_math("d"),
                TextSegment.plain("e"),
            ],
        )

    def test_display_math_spans_newlines(self):
        segs = latex_text.segment("Solve:\n$$x^2\n+ 1 = 0$$")
        self.assertEqual(segs[-1], TextSegment.display_math("x^2\n+ 1 = 0"))

    def test_empty_string(self):
        self.assertEqual(latex_text.segment(""), [])

    def test_unbalanced_dollar_stays_plain(self):
        self.assertEqual(latex_text.segment("costs $5"), [TextSegment.plain("costs $5")])

    def test_adjacent_math_has_no_empty_plain(self):
        segs = latex_text.segment("$a$$$b$$")
        self.assertEqual([s.kind for s in segs], [SegmentKind.INLINE_MATH, SegmentKind.DISPLAY_MATH])

    def test_round_trip(self):
        samples = [
            "a$b$c$$d$$e",
            "$$\\int_0^1 x\\,dx$$ and $\\pi$",
            "price $5 and $$",
            "plain",
            "$x$",
            "line one\n$y = mx + b$\nline three",
        ]
        for s in samples:
            self.assertEqual(latex_text.to_source(latex_text.segment(s)), s)

    def test_idempotent(self):
        s = "Find $x$ in $$x^2 = 4$$"
        self.assertEqual(latex_text.segment(s), latex_text.segment(s))


class TestRender(unittest.TestCase):
    def test_block_mode_converts_newlines(self):
        html = latex_text.render("one\ntwo")
        self.assertIn("one<br>two", html)
        self.assertTrue(html.startswith('<div class="latex-content">'))

    def test_inline_mode_keeps_single_line(self):
        html = latex_text.render("one\ntwo", inline=True)
        self.assertNotIn("<br>", html)
        self.assertTrue(html.startswith('<span class="latex-content">'))

    def test_plain_text_is_escaped(self):
        html = latex_text.render("<b>bold</b>")
        self.assertIn("&lt;b&gt;bold&lt;/b&gt;", html)

    def test_math_modes(self):
        html = latex_text.render("$a$ and $$b$$")
        self.assertIn("\\(a\\)", html)
        self.assertIn("\\[b\\]", html)

    def test_display_math_is_inline_in_inline_render(self):
        html = latex_text.render("$$b$$", inline=True)
        self.assertIn("\\(b\\)", html)
        self.assertNotIn("\\[", html)

    def test_renderer_error_is_flagged_per_segment(self):
        html = latex_text.render("ok $\\frac{1}{2$ still ok")
        self.assertIn("LaTeX Error", html)
        self.assertIn("still ok", html)

    def test_custom_renderer(self):
        calls = []

        def renderer(source, mode):
            calls.append((source, mode))
            if source == "bad":
                raise ValueError("nope")
            return f"[{mode}:{source}]"

        html = latex_text.render("$x$ $$bad$$", math_renderer=renderer)
        self.assertEqual(calls, [("x", "inline"), ("bad", "display")])
        self.assertIn("[inline:x]", html)
        self.assertIn("LaTeX Error: nope", html)

    def test_default_renderer_brace_checks(self):
        self.assertIn("\\{", latex_text.mathjax_markup("\\{a\\}", "inline"))
        with self.assertRaises(MathRenderError):
            latex_text.mathjax_markup("\\frac{a}{b", "inline")
        with self.assertRaises(MathRenderError):
            latex_text.mathjax_markup("a}", "display")


class TestInsertAtCursor(unittest.TestCase):
    def test_insert_at_caret(self):
        text, cursor = latex_text.insert_at_cursor("ab", 1, 1, "$\\pi$")
        self.assertEqual(text, "a$\\pi$b")
        self.assertEqual(cursor, 1 + len("$\\pi$"))

    def test_replaces_selection(self):
        text, cursor = latex_text.insert_at_cursor("hello world", 6, 11, "$x^2$")
        self.assertEqual(text, "hello $x^2$")
        self.assertEqual(cursor, 11)

    def test_cursor_lands_after_placeholder_template(self):
        template = "$\\frac{a}{b}$"
        text, cursor = latex_text.insert_at_cursor("", 0, 0, template)
        self.assertEqual(text, template)
        self.assertEqual(cursor, len(template))

    def test_out_of_range_and_reversed_selection(self):
        self.assertEqual(latex_text.insert_at_cursor("abc", 10, 20, "X"), ("abcX", 4))
        self.assertEqual(latex_text.insert_at_cursor("abcd", 3, 1, "X"), ("aXd", 2))


class TestHelpers(unittest.TestCase):
    def test_has_latex(self):
        self.assertTrue(latex_text.has_latex("$"))
        self.assertFalse(latex_text.has_latex("plain"))

    def test_common_symbols_are_single_inline_segments(self):
        for symbol, label in latex_text.COMMON_SYMBOLS:
            segs = latex_text.segment(symbol)
            self.assertEqual(len(segs), 1, label)
            self.assertIs(segs[0].kind, SegmentKind.INLINE_MATH)


if __name__ == "__main__":
    unittest.main()
