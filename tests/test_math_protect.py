"""Tests for math protection and restoration."""

import asyncio
import re

from hypothesis import given, settings
from hypothesis import strategies as st

from aimarkup.converter import convert
from aimarkup.math_protect import has_placeholders, protect, restore
from aimarkup.models import DelimiterClass

MIXED = (
    r"Euler: $e^{i\pi}+1=0$ and $$\int_0^1 x\,dx$$ "
    r"plus \[a_1\] and \(b_2\)"
)


class TestProtect:
    """Extraction order and placeholder shape."""

    def test_all_classes_extracted(self) -> None:
        protected, registry = protect(MIXED)
        assert len(registry) == 4
        assert "$" not in protected
        assert "\\[" not in protected
        assert "\\(" not in protected

    def test_priority_order(self) -> None:
        _, registry = protect(MIXED)
        assert [s.delimiter for s in registry.segments] == [
            DelimiterClass.BLOCK_DOLLAR,
            DelimiterClass.INLINE_DOLLAR,
            DelimiterClass.BLOCK_BRACKET,
            DelimiterClass.INLINE_BRACKET,
        ]
        assert [s.index for s in registry.segments] == [0, 1, 2, 3]

    def test_block_dollar_not_split_by_inline(self) -> None:
        _, registry = protect("$$a + b$$")
        assert len(registry) == 1
        assert registry.segments[0].source == "$$a + b$$"

    def test_placeholders_are_inert(self) -> None:
        _, registry = protect(MIXED)
        for segment in registry.segments:
            assert re.fullmatch(r"[A-Za-z0-9]+", registry.placeholder_for(segment))

    def test_escaped_dollar_is_text(self) -> None:
        _, registry = protect(r"costs \$5 and \$6")
        assert len(registry) == 0

    def test_nonce_avoids_existing_marker(self, monkeypatch) -> None:
        nonces = iter(["deadbeef", "cafebabe"])
        monkeypatch.setattr("aimarkup.math_protect.secrets.token_hex", lambda n: next(nonces))
        _, registry = protect("literal MATHPHdeadbeef in text and $x$")
        assert registry.nonce == "cafebabe"

    def test_fenced_code_is_not_scanned(self) -> None:
        fence = "```python\npattern = re.compile(r'\\(')\n```"
        text = fence + "\n\nSo \\(x+1\\) holds."
        protected, registry = protect(text)
        assert [s.source for s in registry.segments] == ["\\(x+1\\)"]
        assert fence in protected
        assert restore(protected, registry) == text

    def test_inline_code_is_not_scanned(self) -> None:
        protected, registry = protect("Use `$HOME` and $x$")
        assert [s.source for s in registry.segments] == ["$x$"]
        assert "`$HOME`" in protected

    def test_code_inside_math_restored(self) -> None:
        text = "See $a `b` c$ here"
        protected, registry = protect(text)
        assert registry.segments[0].source == "$a `b` c$"
        assert "CODE" not in protected
        assert restore(protected, registry) == text

    def test_empty(self) -> None:
        protected, registry = protect("")
        assert protected == ""
        assert len(registry) == 0


class TestRestore:
    """Verbatim reinsertion."""

    def test_round_trip(self) -> None:
        protected, registry = protect(MIXED)
        assert restore(protected, registry) == MIXED

    def test_changed_tag_case_is_restored(self) -> None:
        protected, registry = protect("value $x$")
        placeholder = registry.placeholder_for(registry.segments[0])
        mangled = protected.replace(placeholder, placeholder.lower())
        assert restore(mangled, registry) == "value $x$"

    def test_no_placeholder_survives(self) -> None:
        protected, registry = protect(MIXED)
        assert has_placeholders(protected, registry)
        assert not has_placeholders(restore(protected, registry), registry)

    def test_escape_for_html(self) -> None:
        protected, registry = protect("$a<b$")
        assert restore(protected, registry, escape=True) == "$a&lt;b$"

    def test_restore_after_conversion(self) -> None:
        text = (
            "# Title\n\nInline $a_1 * b_2$ and block:\n\n"
            "$$\\sum_{i=1}^n i$$\n\nAlso \\(x_1\\) and \\[y^2\\]"
        )
        protected, registry = protect(text)
        html = restore(asyncio.run(convert(protected)), registry)
        for segment in registry.segments:
            assert segment.source in html
        assert "<h1>Title</h1>" in html

    @settings(max_examples=300)
    @given(st.text(alphabet="$\\[]()ab _*\n", max_size=50))
    def test_round_trip_any_text(self, text: str) -> None:
        assert restore(*protect(text)) == text
