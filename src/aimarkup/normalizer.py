# -*- coding: utf-8 -*-
"""
Text normalization for model output.

Cleans stray bold markers the model leaves behind and rewrites ad hoc
math notation (sqrt(27), 2^10, 13/2, 3√3) into dollar-delimited LaTeX.
"""

import json
import logging
import re
from typing import Any, Dict, List

from aimarkup.exceptions import ResponseParseError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stray emphasis markers
# ---------------------------------------------------------------------------

# Ordered: each pass clears degenerate cases that would otherwise keep the
# look-arounds of the later passes from matching.
_MARKUP_PASSES = [
    # A marker alone on its own line
    (re.compile(r'\n[ \t]*\*\*+[ \t]*\n'), '\n'),
    # Marker pairs enclosing only whitespace: "** **"
    (re.compile(r'(?<!\S)\*\*+[ \t]+\*\*+(?!\S)'), ''),
    # Isolated marker at line start
    (re.compile(r'^[ \t]*\*\*+(?:[ \t]+|$)', re.MULTILINE), ''),
    # Isolated marker at line end
    (re.compile(r'(?:^|[ \t]+)\*\*+[ \t]*$', re.MULTILINE), ''),
    # "** content" -> "content"
    (re.compile(r'(?<!\S)\*\*+[ \t]+(?=[^*\s])'), ''),
    # "content **" -> "content"
    (re.compile(r'(?<=[^*\s])[ \t]+\*\*+(?!\S)'), ''),
]


def _apply_markup_passes(text: str) -> str:
    for pattern, replacement in _MARKUP_PASSES:
        text = pattern.sub(replacement, text)
    return text.strip()


def normalize_markup(text: str) -> str:
    """
    Remove orphaned ``**`` markers left by the model.

    The passes only ever shorten the text, so repeating them until nothing
    changes terminates and makes the result a fixed point:
    ``normalize_markup(normalize_markup(s)) == normalize_markup(s)``.
    Markers that actually wrap content (``**bold**``) are kept.
    """
    if not text:
        return text

    while True:
        cleaned = _apply_markup_passes(text)
        if cleaned == text:
            return cleaned
        text = cleaned


# ---------------------------------------------------------------------------
# Ad hoc math -> LaTeX
# ---------------------------------------------------------------------------

_LATEX_SPAN_RE = re.compile(r'\$([^$]+)\$')
# Only a doubled backslash in front of a command name is an escaping
# artifact; a bare "\\" is a LaTeX line break and stays.
_ESCAPED_COMMAND_RE = re.compile(r'\\\\(?=[A-Za-z])')

_LATEX_PH = '\x00LATEX_%d\x00'
_LATEX_PH_RE = re.compile(r'\x00LATEX_(\d+)\x00')

_SQRT_CALL_RE = re.compile(r'(?<!\$)sqrt\s*\(\s*(\d+)\s*\)(?!\$)')
_POWER_RE = re.compile(r'(?<!\$)(\d+)\^(\d+)(?!\$)')
_FRACTION_RE = re.compile(r'(?<!\$)(\d+)/(\d+)(?!\$)')
_COEFF_ROOT_RE = re.compile(r'(?<!\$)(\d+)√(\d+)(?!\$)')
_ROOT_RE = re.compile(r'(?<!\$)√(\d+)(?!\$)')

# a/b becomes \frac{a}{b} only past these bounds, so 7/3 or 12/25 (dates)
# stay literal while 13/2 or 5/40 convert.
FRACTION_MAX_PLAIN_NUMERATOR = 12
FRACTION_MAX_PLAIN_DENOMINATOR = 31


def _replace_fraction(m):
    num, den = m.group(1), m.group(2)
    if int(num) > FRACTION_MAX_PLAIN_NUMERATOR or int(den) > FRACTION_MAX_PLAIN_DENOMINATOR:
        return f'$\\frac{{{num}}}{{{den}}}$'
    return m.group(0)


def canonicalize_math(text: str) -> str:
    """
    Rewrite plain-text math the model produced instead of LaTeX.

    ``sqrt(27) * 3`` becomes ``$\\sqrt{27}$ * 3``. Spans already wrapped in
    ``$...$`` are set aside first and put back untouched afterwards.
    """
    if not text:
        return text

    # 1. Collapse JSON-style escaping inside existing spans: $\\sqrt{2}$ -> $\sqrt{2}$
    text = _LATEX_SPAN_RE.sub(
        lambda m: '$' + _ESCAPED_COMMAND_RE.sub(r'\\', m.group(1)) + '$',
        text,
    )

    # 2. Protect what is already LaTeX
    protected: List[str] = []

    def _protect(m):
        protected.append(m.group(0))
        return _LATEX_PH % (len(protected) - 1)

    text = _LATEX_SPAN_RE.sub(_protect, text)

    # 3. sqrt(n) -> $\sqrt{n}$
    text = _SQRT_CALL_RE.sub(lambda m: f'$\\sqrt{{{m.group(1)}}}$', text)

    # 4. a^b -> $a^{b}$
    text = _POWER_RE.sub(lambda m: f'${m.group(1)}^{{{m.group(2)}}}$', text)

    # 5. a/b -> $\frac{a}{b}$ past the date bounds
    text = _FRACTION_RE.sub(_replace_fraction, text)

    # 6. n√m -> $n\sqrt{m}$, √n -> $\sqrt{n}$
    text = _COEFF_ROOT_RE.sub(lambda m: f'${m.group(1)}\\sqrt{{{m.group(2)}}}$', text)
    text = _ROOT_RE.sub(lambda m: f'$\\sqrt{{{m.group(1)}}}$', text)

    # 7. Restore protected LaTeX
    return _LATEX_PH_RE.sub(lambda m: protected[int(m.group(1))], text)


# ---------------------------------------------------------------------------
# Structured model responses
# ---------------------------------------------------------------------------

_JSON_FENCE_RE = re.compile(r'```json\n?|```')


def normalize_fields(data: Any) -> Any:
    """Normalize string values and string list items of a decoded JSON object."""
    if not isinstance(data, dict):
        return data

    result: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = normalize_markup(value)
        elif isinstance(value, list):
            result[key] = [
                normalize_markup(item) if isinstance(item, str) else item
                for item in value
            ]
        else:
            result[key] = value
    return result


def parse_json_response(text: str) -> Any:
    """
    Decode a JSON answer of the model.

    Strips a ```json fence, removes stray markers and normalizes the
    string fields of the decoded object.

    Raises:
        ResponseParseError: the payload is not valid JSON
    """
    text = text.strip()
    if text.startswith('```json'):
        text = _JSON_FENCE_RE.sub('', text)

    text = normalize_markup(text)

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"JSON response parse failed: {e}")
        raise ResponseParseError(
            "Model response is not valid JSON",
            details={"position": e.pos},
        ) from e

    return normalize_fields(parsed)


def coerce_response_text(value: Any) -> str:
    """Turn a model payload into text, dumping non-string payloads as JSON."""
    if isinstance(value, str):
        return normalize_markup(value)
    if value is None:
        raise ResponseParseError("Model response has no text")

    logger.warning(f"Model response text is not a string: {type(value).__name__}")
    return normalize_markup(json.dumps(value, ensure_ascii=False))
