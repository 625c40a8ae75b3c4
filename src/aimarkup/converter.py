# -*- coding: utf-8 -*-
"""
Markdown → HTML conversion and table styling.
"""

import inspect
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import markdown

from aimarkup.exceptions import ParseFailure

logger = logging.getLogger(__name__)

# Standard grammar only: the bundled extensions for pipe tables and
# fenced code, nothing custom.
MARKDOWN_EXTENSIONS = ["tables", "fenced_code"]

Transform = Callable[[str], Union[str, Awaitable[Any], Any]]


def markdown_transform(text: str) -> str:
    """Default transform: Python-Markdown with the standard extensions."""
    return markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS)


async def convert(
    protected_text: str,
    transform: Optional[Transform] = None,
    on_failure: Optional[Callable[[ParseFailure], None]] = None,
) -> str:
    """
    Convert protected Markdown to HTML.

    The transform may return the HTML directly or an awaitable resolving to
    it; either way the result is settled before this coroutine returns.
    A non-string result is logged as a :class:`ParseFailure`, reported to
    ``on_failure`` and coerced.
    """
    transform = transform or markdown_transform

    result = transform(protected_text)
    if inspect.isawaitable(result):
        result = await result

    if isinstance(result, str):
        return result

    failure = ParseFailure(details={"type": type(result).__name__})
    logger.warning(f"{failure.message}: {failure.details['type']}, coercing")
    if on_failure:
        on_failure(failure)
    return "" if result is None else str(result)


# ---------------------------------------------------------------------------
# Table styling
# ---------------------------------------------------------------------------

_TABLE_WRAPPER_STYLE = 'overflow-x:auto;'

TABLE_STYLES: Dict[str, Dict[str, str]] = {
    "table": {
        "class": "md-table",
        "style": "border-collapse:collapse; border:1px solid #ccc; margin:8px 0; width:100%;",
    },
    "thead": {
        "class": "md-table-head",
        "style": "background-color:#f0f0f0;",
    },
    "tr": {
        "class": "md-table-row",
        "style": "border-bottom:1px solid #ddd;",
    },
    "th": {
        "class": "md-table-header",
        "style": "border:1px solid #ccc; padding:6px 10px; font-weight:bold;",
    },
    "td": {
        "class": "md-table-cell",
        "style": "border:1px solid #ccc; padding:6px 10px;",
    },
}

# Opening tags exactly as the converter emits them; th/td may already carry
# an alignment style.
_OPEN_TAG_RE = {
    "thead": re.compile(r'<thead>'),
    "tr": re.compile(r'<tr>'),
    "th": re.compile(r'<th(?: style="([^"]*)")?>'),
    "td": re.compile(r'<td(?: style="([^"]*)")?>'),
}


def _attrs(tag: str, styles: Dict[str, Dict[str, str]], extra_style: str = '') -> str:
    spec = styles.get(tag, {})
    style = spec.get("style", "")
    if extra_style:
        style = f"{style} {extra_style}".strip()
    return f' class="{spec.get("class", "")}" style="{style}"'


def style_tables(html: str, overrides: Optional[Dict[str, str]] = None) -> str:
    """
    Inject presentation attributes into converter-generated table tags.

    Plain tag-string substitution, valid only on converter output and only
    before sanitization: the sanitizer then re-validates every attribute
    added here.

    Args:
        html: Converter output
        overrides: Optional ``{tag: style}`` replacing the default styles
    """
    if '<table>' not in html:
        return html

    styles = {tag: dict(spec) for tag, spec in TABLE_STYLES.items()}
    for tag, style in (overrides or {}).items():
        if tag in styles:
            styles[tag]["style"] = style

    html = html.replace(
        '<table>',
        f'<div class="md-table-wrapper" style="{_TABLE_WRAPPER_STYLE}"><table{_attrs("table", styles)}>',
    )
    html = html.replace('</table>', '</table></div>')

    for tag, pattern in _OPEN_TAG_RE.items():
        html = pattern.sub(
            lambda m, tag=tag: f'<{tag}{_attrs(tag, styles, (m.group(1) or "") if m.groups() else "")}>',
            html,
        )
    return html
