# -*- coding: utf-8 -*-
"""
Math typesetting: waiting for the engine and running it over the container.

The engine is an optional capability. Either it is handed over at setup
(``Capability``), or it appears at some point and is discovered by polling
a probe with a bounded timeout (``TypesetWaiter`` in probe mode).

States::

    IDLE -> POLLING -> READY      (probe found the engine)
                    -> TIMED_OUT  (guard timer expired first)
"""

import logging
from typing import Any, Callable, List, Optional, Protocol, Tuple

import latex2mathml.converter
from bs4 import BeautifulSoup, Comment, NavigableString

from aimarkup.enhancer import HtmlContainer
from aimarkup.exceptions import TypesetExpressionError, TypesetUnavailable
from aimarkup.models import MathDelimiter, RendererConfig, TypesetOptions, TypesetState
from aimarkup.sanitizer import sanitize_mathml
from aimarkup.scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class TypesetEngine(Protocol):
    """Renders math source found in a container into visual markup."""

    def render_math_in_element(self, container: HtmlContainer, options: TypesetOptions) -> Any: ...


Probe = Callable[[], Optional[TypesetEngine]]


class Capability:
    """Typesetting capability resolved once, at setup."""

    def __init__(self, engine: Optional[TypesetEngine] = None):
        self.engine = engine

    @classmethod
    def unavailable(cls) -> "Capability":
        return cls(None)

    @property
    def available(self) -> bool:
        return self.engine is not None


# ---------------------------------------------------------------------------
# Waiter
# ---------------------------------------------------------------------------

class TypesetWaiter:
    """
    Bounded, cancelable wait for the typesetting engine.

    ``start()`` is called every time new HTML is committed to the container.
    A wait still outstanding from the previous commit is cancelled first,
    so the engine never runs twice or against a stale tree.
    """

    def __init__(
        self,
        container: HtmlContainer,
        scheduler: Scheduler,
        probe: Optional[Probe] = None,
        capability: Optional[Capability] = None,
        config: Optional[RendererConfig] = None,
        options: Optional[TypesetOptions] = None,
        on_typeset: Optional[Callable[[HtmlContainer], Any]] = None,
        on_finished: Optional[Callable[[TypesetState], None]] = None,
    ):
        if probe is not None and capability is not None:
            raise ValueError("Pass either a probe or a capability, not both")

        self._container = container
        self._scheduler = scheduler
        self._probe = probe
        self._capability = capability if probe is None else None
        if self._probe is None and self._capability is None:
            self._capability = Capability.unavailable()

        self._config = config or RendererConfig()
        self._options = options or TypesetOptions()
        self._on_typeset = on_typeset
        self._on_finished = on_finished

        self._state = TypesetState.IDLE
        self._poll_timer: Optional[TimerHandle] = None
        self._guard_timer: Optional[TimerHandle] = None
        self._settle_timer: Optional[TimerHandle] = None
        self._run = 0
        self.last_error: Optional[Exception] = None

    @property
    def state(self) -> TypesetState:
        return self._state

    @property
    def pending(self) -> bool:
        """True while any timer of the current run is alive."""
        return any(
            timer is not None and timer.active
            for timer in (self._poll_timer, self._guard_timer, self._settle_timer)
        )

    def start(self) -> None:
        """Begin a fresh wait for the current container contents."""
        self.cancel()
        self._run += 1
        self.last_error = None

        if self._capability is not None:
            if self._capability.available:
                self._become_ready(self._capability.engine)
            else:
                self._state = TypesetState.TIMED_OUT
                self.last_error = TypesetUnavailable("Typesetting engine not configured")
                logger.warning("Typesetting engine not configured, math stays as source")
                self._finish()
            return

        self._state = TypesetState.POLLING
        self._poll_timer = self._scheduler.call_repeating(self._config.poll_interval_ms, self._poll)
        self._guard_timer = self._scheduler.call_later(self._config.timeout_ms, self._on_guard_expired)

    def cancel(self) -> None:
        """Cancel every timer of the current run."""
        for timer in (self._poll_timer, self._guard_timer, self._settle_timer):
            if timer is not None:
                timer.cancel()
        self._poll_timer = None
        self._guard_timer = None
        self._settle_timer = None
        if self._state == TypesetState.POLLING:
            self._state = TypesetState.IDLE

    def _cancel_wait_timers(self) -> None:
        # Poll and guard always go together
        if self._poll_timer is not None:
            self._poll_timer.cancel()
        if self._guard_timer is not None:
            self._guard_timer.cancel()
        self._poll_timer = None
        self._guard_timer = None

    def _poll(self) -> None:
        if self._state != TypesetState.POLLING:
            return
        try:
            engine = self._probe()
        except Exception as e:
            # Treated as "not there yet"; the guard still bounds the wait
            logger.warning(f"Typesetting engine probe failed: {e}")
            return
        if engine is not None:
            logger.info("Typesetting engine found")
            self._become_ready(engine)

    def _on_guard_expired(self) -> None:
        if self._state != TypesetState.POLLING:
            return
        self._cancel_wait_timers()
        self._state = TypesetState.TIMED_OUT
        self.last_error = TypesetUnavailable(
            "Typesetting engine did not load, math is shown as source",
            timeout_ms=self._config.timeout_ms,
        )
        logger.error(f"{self.last_error.message} (waited {self._config.timeout_ms} ms)")
        self._finish()

    def _become_ready(self, engine: TypesetEngine) -> None:
        self._cancel_wait_timers()
        self._state = TypesetState.READY
        run = self._run
        self._settle_timer = self._scheduler.call_later(
            self._config.settle_delay_ms,
            lambda: self._typeset(engine, run),
        )

    def _typeset(self, engine: TypesetEngine, run: int) -> None:
        self._settle_timer = None
        if run != self._run:
            return

        try:
            engine.render_math_in_element(self._container, self._options)
        except Exception as e:
            self.last_error = e
            logger.error(f"Typesetting failed: {e}")
            self._finish()
            return

        logger.info("Typesetting complete")
        try:
            if self._on_typeset:
                self._on_typeset(self._container)
        except Exception as e:
            self.last_error = e
            logger.error(f"Post-typeset hook failed: {e}")
        finally:
            self._finish()

    def _finish(self) -> None:
        if self._on_finished:
            self._on_finished(self._state)


# ---------------------------------------------------------------------------
# MathML engine
# ---------------------------------------------------------------------------

# Text inside these is never typeset
_IGNORED_TAGS = frozenset({"script", "noscript", "style", "textarea", "pre", "code", "option"})
_RENDERED_CLASSES = frozenset({"math-rendered", "math-error"})


def _find_right(text: str, right: str, start: int) -> int:
    """Index of the closing delimiter, skipping backslash-escaped ones."""
    index = text.find(right, start)
    while index != -1 and right == "$" and index > 0 and text[index - 1] == "\\":
        index = text.find(right, index + 1)
    return index


def split_at_delimiters(text: str, delimiters: List[MathDelimiter]) -> List[Tuple[str, str, Optional[MathDelimiter]]]:
    """
    Split text into text and math pieces.

    Returns:
        List of ``(kind, content, delimiter)``; ``kind`` is ``"text"`` or
        ``"math"``, ``content`` of a math piece is the expression without
        its delimiters.
    """
    pieces: List[Tuple[str, str, Optional[MathDelimiter]]] = []
    position = 0
    buffer = ""

    while position < len(text):
        # Earliest opening delimiter; on a tie the one listed first ($$ before $)
        best = None
        for delimiter in delimiters:
            index = text.find(delimiter.left, position)
            if index != -1 and (best is None or index < best[0]):
                best = (index, delimiter)
        if best is None:
            break

        index, delimiter = best
        start = index + len(delimiter.left)
        end = _find_right(text, delimiter.right, start)
        if end == -1 or end == start:
            buffer += text[position:start]
            position = start
            continue

        buffer += text[position:index]
        if buffer:
            pieces.append(("text", buffer, None))
            buffer = ""
        pieces.append(("math", text[start:end], delimiter))
        position = end + len(delimiter.right)

    buffer += text[position:]
    if buffer:
        pieces.append(("text", buffer, None))
    return pieces


class MathMLTypesetter:
    """Typesetting engine converting LaTeX to MathML with latex2mathml."""

    def _inside_ignored(self, node) -> bool:
        for parent in node.parents:
            if parent.name in _IGNORED_TAGS:
                return True
            if _RENDERED_CLASSES.intersection(parent.get("class") or ()):
                return True
        return False

    def _render_expression(self, soup: BeautifulSoup, latex: str, delimiter: MathDelimiter,
                           options: TypesetOptions):
        display = "block" if delimiter.display else "inline"
        try:
            mathml = sanitize_mathml(latex2mathml.converter.convert(latex.strip(), display=display))
        except Exception as e:
            error = TypesetExpressionError(f"Cannot typeset expression: {e}", source=latex)
            if options.throw_on_error:
                raise error from e
            logger.warning(f"{error.message} [{latex}]")
            span = soup.new_tag("span", title=str(e))
            span["class"] = ["math-error"]
            span.string = f"{delimiter.left}{latex}{delimiter.right}"
            return span

        span = soup.new_tag("span")
        span["class"] = ["math-rendered", f"math-{display}"]
        span.append(BeautifulSoup(mathml, "html.parser"))
        return span

    def render_math_in_element(self, container: HtmlContainer, options: TypesetOptions) -> int:
        """
        Typeset every delimited expression in the container.

        A malformed expression is left as literal source inside a
        ``span.math-error`` unless ``options.throw_on_error`` is set.

        Returns:
            Number of expressions replaced (including failed ones)
        """
        soup = container.soup
        replaced = 0

        text_nodes = [
            node for node in soup.find_all(string=True)
            if not isinstance(node, Comment) and not self._inside_ignored(node)
        ]
        for node in text_nodes:
            pieces = split_at_delimiters(str(node), options.delimiters)
            if not any(kind == "math" for kind, _, _ in pieces):
                continue

            anchor = node
            for kind, content, delimiter in pieces:
                if kind == "text":
                    new_node = NavigableString(content)
                else:
                    new_node = self._render_expression(soup, content, delimiter, options)
                    replaced += 1
                anchor.insert_after(new_node)
                anchor = new_node
            node.extract()

        if replaced:
            container.notify()
        return replaced
