# -*- coding: utf-8 -*-
"""
HTML sanitization.

Default-deny policy built on bleach. Besides the Markdown output vocabulary
it admits the math markup the typesetting engine inserts later, after this
step has already run, so the allowlist follows the engine's documented
output rather than anything present at sanitize time.
"""

import bleach
from bleach.css_sanitizer import CSSSanitizer

from aimarkup.exceptions import SanitizationError


# Markdown converter output
BASE_TAGS = frozenset({
    "p", "br", "hr", "div",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "strong", "b", "em", "i", "del", "s", "code", "pre", "kbd",
    "ul", "ol", "li", "dl", "dt", "dd",
    "blockquote", "a", "img", "sup", "sub",
    "table", "thead", "tbody", "tfoot", "tr", "th", "td",
})

# Typesetting engine output
MATH_TAGS = frozenset({
    "span", "annotation", "semantics", "mtext", "mn", "mo", "mi",
    "mspace", "mrow", "msqrt", "mtable", "mtr", "mtd", "math",
})

MATH_ATTRIBUTES = ("class", "style", "aria-hidden", "xmlns")

ALLOWED_TAGS = BASE_TAGS | MATH_TAGS

ALLOWED_ATTRIBUTES = {
    "*": list(MATH_ATTRIBUTES),
    "a": ["href", "title"],
    "img": ["src", "alt", "title"],
    "th": ["scope"],
    "annotation": ["encoding"],
    "math": ["display"],
}

ALLOWED_PROTOCOLS = ["http", "https", "mailto"]

ALLOWED_CSS_PROPERTIES = [
    "color", "background-color", "border", "border-collapse", "border-bottom",
    "border-bottom-width", "border-bottom-style", "border-top", "border-radius",
    "border-left", "border-right-width", "border-right-style",
    "margin", "margin-left", "margin-right", "margin-top", "margin-bottom",
    "padding", "padding-left", "padding-right",
    "font-size", "font-weight", "font-style", "font-family",
    "text-align", "vertical-align", "white-space",
    "width", "min-width", "max-width", "height", "max-height",
    "top", "left", "position", "display", "overflow-x",
]

_cleaner = bleach.Cleaner(
    tags=ALLOWED_TAGS,
    attributes=ALLOWED_ATTRIBUTES,
    protocols=ALLOWED_PROTOCOLS,
    css_sanitizer=CSSSanitizer(allowed_css_properties=ALLOWED_CSS_PROPERTIES),
    strip=True,
    strip_comments=True,
)


def sanitize(html: str) -> str:
    """
    Clean HTML for insertion into the document.

    Script tags, inline event handlers and ``javascript:`` URLs never
    survive. The result is the only value ever inserted for display.
    """
    if not html:
        return ""
    try:
        return _cleaner.clean(html)
    except Exception as e:
        raise SanitizationError(f"HTML sanitization failed: {e}") from e


# ---------------------------------------------------------------------------
# Typesetting engine output
# ---------------------------------------------------------------------------

# latex2mathml vocabulary. \text{...} is emitted unescaped and \href{...}
# becomes an href attribute, so engine output is cleaned before it goes into
# the already sanitized container.
MATHML_TAGS = frozenset({
    "math", "semantics", "annotation",
    "mrow", "mi", "mn", "mo", "ms", "mtext", "mspace",
    "msup", "msub", "msubsup", "mfrac", "msqrt", "mroot",
    "mover", "munder", "munderover", "mmultiscripts", "mprescripts", "none",
    "mtable", "mtr", "mtd", "mlabeledtr",
    "mstyle", "mpadded", "mphantom", "menclose", "merror", "mfenced",
})

MATHML_ATTRIBUTES = [
    "xmlns", "display", "encoding",
    "mathvariant", "mathcolor", "mathbackground", "mathsize",
    "displaystyle", "scriptlevel",
    "stretchy", "fence", "separator", "separators", "open", "close",
    "form", "largeop", "movablelimits", "symmetric", "accent", "accentunder",
    "lspace", "rspace", "minsize", "maxsize",
    "width", "height", "depth", "voffset", "linethickness", "notation",
    "align", "frame", "framespacing", "equalrows", "equalcolumns",
    "columnalign", "columnlines", "columnspacing",
    "rowalign", "rowlines", "rowspacing",
]

_mathml_cleaner = bleach.Cleaner(
    tags=MATHML_TAGS,
    attributes={"*": MATHML_ATTRIBUTES},
    protocols=[],
    strip=True,
    strip_comments=True,
)


def sanitize_mathml(mathml: str) -> str:
    """
    Clean typesetting engine output: MathML elements and presentation
    attributes only. No links, no handlers, no HTML.
    """
    if not mathml:
        return ""
    try:
        return _mathml_cleaner.clean(mathml)
    except Exception as e:
        raise SanitizationError(f"MathML sanitization failed: {e}") from e
