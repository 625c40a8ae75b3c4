# -*- coding: utf-8 -*-
"""
Render pipeline: model text → sanitized HTML, and the session that commits
it to a display container.

Order per content value::

    normalize → canonicalize math → protect → convert → style tables
              → restore → sanitize → commit → typeset → copy controls
"""

import html
import logging
from typing import Callable, Dict, List, Optional

from aimarkup.converter import Transform, convert, style_tables
from aimarkup.enhancer import DomEnhancer, HtmlContainer
from aimarkup.exceptions import ParseFailure
from aimarkup.math_protect import protect, restore
from aimarkup.models import MathRegistry, RenderResult, RendererConfig
from aimarkup.normalizer import canonicalize_math, normalize_markup
from aimarkup.sanitizer import sanitize
from aimarkup.typeset import TypesetWaiter

logger = logging.getLogger(__name__)


def _literal_html(text: str) -> str:
    """Plain text as HTML, with nothing interpreted."""
    return f'<p style="white-space:pre-wrap;">{html.escape(text)}</p>'


async def render_markup(
    content: str,
    transform: Optional[Transform] = None,
    table_styles: Optional[Dict[str, str]] = None,
) -> RenderResult:
    """
    Run the full pipeline for one content value.

    Never raises: a failing stage is logged and recorded in
    ``RenderResult.errors``, the output degrades to literal text, and
    sanitization runs regardless.
    """
    content = content or ""
    errors: List[str] = []

    def _fail(stage: str, e: Exception) -> None:
        logger.error(f"Render stage '{stage}' failed: {e}")
        errors.append(f"{stage}: {e}")

    # 1. Normalize model quirks
    text = content
    try:
        text = canonicalize_math(normalize_markup(text))
    except Exception as e:
        _fail("normalize", e)
        text = content

    # 2. Protect math
    registry: Optional[MathRegistry] = None
    try:
        text, registry = protect(text)
    except Exception as e:
        _fail("protect", e)
        registry = None

    # 3. Markdown → HTML
    def _on_parse_failure(failure: ParseFailure) -> None:
        errors.append(f"convert: {failure.message}")

    try:
        rendered = await convert(text, transform, on_failure=_on_parse_failure)
    except Exception as e:
        _fail("convert", e)
        rendered = _literal_html(text)

    # 4. Table presentation; must stay ahead of sanitization
    try:
        rendered = style_tables(rendered, table_styles)
    except Exception as e:
        _fail("style_tables", e)

    # 5. Restore math
    if registry is not None:
        try:
            rendered = restore(rendered, registry, escape=True)
        except Exception as e:
            _fail("restore", e)
            # Placeholders must not reach the output
            rendered = _literal_html(content)

    # 6. Sanitize, always
    try:
        safe_html = sanitize(rendered)
    except Exception as e:
        _fail("sanitize", e)
        safe_html = html.escape(content)

    return RenderResult(
        content=content,
        html=safe_html,
        math_count=len(registry) if registry is not None else 0,
        degraded=bool(errors),
        errors=errors,
    )


class RenderSession:
    """
    Commits rendered content to a container, newest content wins.

    Only the last committed result is kept. A run that settles after newer
    content was submitted is dropped instead of being committed out of
    order.
    """

    def __init__(
        self,
        container: HtmlContainer,
        waiter: Optional[TypesetWaiter] = None,
        enhancer: Optional[DomEnhancer] = None,
        transform: Optional[Transform] = None,
        config: Optional[RendererConfig] = None,
        on_commit: Optional[Callable[[RenderResult], None]] = None,
    ):
        self.container = container
        self._waiter = waiter
        self._enhancer = enhancer
        self._transform = transform
        self._config = config or RendererConfig()
        self._on_commit = on_commit
        self._generation = 0
        self._mounted = True
        self.last_committed: Optional[RenderResult] = None

    async def update(self, content: str) -> Optional[RenderResult]:
        """
        Render ``content`` and commit it unless newer content arrived meanwhile.

        Returns:
            The committed result, or None if it was discarded
        """
        self._generation += 1
        generation = self._generation

        result = await render_markup(content, self._transform, self._config.table_styles)

        if generation != self._generation or not self._mounted:
            logger.debug(f"Discarding stale render #{generation}")
            return None

        self._commit(result)
        return result

    def _commit(self, result: RenderResult) -> None:
        if self._waiter is not None:
            self._waiter.cancel()
        if self._enhancer is not None:
            self._enhancer.reset()

        self.last_committed = result
        self.container.set_html(result.html)

        if self._waiter is not None and result.html:
            self._waiter.start()
        if self._on_commit:
            self._on_commit(result)

    def unmount(self) -> None:
        """Stop everything for the current content."""
        self._mounted = False
        self._generation += 1
        if self._waiter is not None:
            self._waiter.cancel()
        if self._enhancer is not None:
            self._enhancer.reset()
