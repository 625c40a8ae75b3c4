# -*- coding: utf-8 -*-
"""
Math span protection around Markdown conversion.

Markdown treats ``\\[``, ``_`` and ``*`` as syntax, which mangles LaTeX.
Math spans are therefore swapped for inert alphanumeric placeholders before
conversion and put back, verbatim, afterwards.
"""

import html
import logging
import re
import secrets
from typing import List, Tuple

from aimarkup.models import DelimiterClass, MathRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Delimiter patterns
# ---------------------------------------------------------------------------

# Scan order matters: $$...$$ must go before $...$, otherwise the inline
# pattern would pair the two dollars of a block delimiter.
_SCAN_ORDER: List[Tuple[DelimiterClass, "re.Pattern[str]"]] = [
    (DelimiterClass.BLOCK_DOLLAR, re.compile(r'\$\$(.+?)\$\$', re.DOTALL)),
    (DelimiterClass.INLINE_DOLLAR, re.compile(r'(?<![\\$])\$(?!\$)([^\n]+?)(?<![\\$])\$(?!\$)')),
    (DelimiterClass.BLOCK_BRACKET, re.compile(r'\\\[(.+?)\\\]', re.DOTALL)),
    (DelimiterClass.INLINE_BRACKET, re.compile(r'\\\((.+?)\\\)', re.DOTALL)),
]

# Code is set aside before the scan: a delimiter inside code is literal text.
# Fenced blocks go first so their backticks are not taken for inline spans.
_FENCED_CODE_RE = re.compile(r'^[ \t]*(`{3,}|~{3,})[^\n]*\n.*?^[ \t]*\1[ \t]*$', re.MULTILINE | re.DOTALL)
_INLINE_CODE_RE = re.compile(r'`[^`\n]+?`')

_NONCE_BYTES = 4


def _pick_nonce(text: str) -> str:
    """Pick a nonce whose placeholder marker does not occur in ``text``."""
    while True:
        nonce = secrets.token_hex(_NONCE_BYTES)
        if f"MATHPH{nonce}".lower() not in text.lower():
            return nonce


def _placeholder_pattern(registry: MathRegistry) -> "re.Pattern[str]":
    # Any two-letter class tag, any letter case: the converter may have
    # touched the tag but never the index.
    return re.compile(
        re.escape(registry.marker) + r'([A-Za-z]{2})(\d+)Z',
        re.IGNORECASE,
    )


# ---------------------------------------------------------------------------
# Protect / restore
# ---------------------------------------------------------------------------

def _protect_code(text: str, marker: str) -> Tuple[str, List[str]]:
    """Set fenced blocks and inline code spans aside."""
    codes: List[str] = []

    def _replacer(m):
        codes.append(m.group(0))
        return f"{marker}CODE{len(codes) - 1}Z"

    text = _FENCED_CODE_RE.sub(_replacer, text)
    text = _INLINE_CODE_RE.sub(_replacer, text)
    return text, codes


def _restore_code(text: str, marker: str, codes: List[str]) -> str:
    if not codes:
        return text
    return re.sub(
        re.escape(marker) + r'CODE(\d+)Z',
        lambda m: codes[int(m.group(1))],
        text,
    )


def protect(text: str) -> Tuple[str, MathRegistry]:
    """
    Extract math spans into a registry.

    Returns:
        (text with placeholders, registry in encounter order)
    """
    registry = MathRegistry(nonce=_pick_nonce(text or ""))
    if not text:
        return text, registry

    text, codes = _protect_code(text, registry.marker)

    for delimiter, pattern in _SCAN_ORDER:
        def _replacer(m, delimiter=delimiter):
            segment = registry.add(delimiter, m.group(0))
            return registry.placeholder_for(segment)

        text = pattern.sub(_replacer, text)

    # A math match may have swallowed a code placeholder
    text = _restore_code(text, registry.marker, codes)
    for segment in registry.segments:
        segment.source = _restore_code(segment.source, registry.marker, codes)

    if len(registry):
        logger.debug(f"Protected {len(registry)} math segments")
    return text, registry


def restore(text: str, registry: MathRegistry, escape: bool = False) -> str:
    """
    Put protected math sources back in place of their placeholders.

    Args:
        text: Converted text (usually HTML) still holding placeholders
        registry: Registry returned by :func:`protect`
        escape: HTML-escape the sources, so that the displayed text of the
                resulting HTML equals the source byte for byte

    Returns:
        Text without placeholders
    """
    if not len(registry):
        return text

    restored = [0] * len(registry)

    def _replacer(m):
        index = int(m.group(2))
        if index >= len(registry):
            logger.warning(f"Placeholder index {index} is outside the registry")
            return ''
        segment = registry.segments[index]
        if m.group(1).upper() != segment.delimiter.tag:
            logger.debug(f"Placeholder {index} tag changed to {m.group(1)}")
        restored[index] += 1
        source = segment.source
        return html.escape(source, quote=False) if escape else source

    # A segment found by a later pattern may enclose placeholders of earlier
    # ones, so substitute until nothing is left.
    pattern = _placeholder_pattern(registry)
    for _ in range(len(registry) + 1):
        text, count = pattern.subn(_replacer, text)
        if not count:
            break

    missing = [i for i, count in enumerate(restored) if count == 0]
    if missing:
        logger.warning(f"Math segments lost during conversion: {missing}")

    return text


def has_placeholders(text: str, registry: MathRegistry) -> bool:
    """Check whether any placeholder of ``registry`` is still present."""
    return bool(_placeholder_pattern(registry).search(text))
