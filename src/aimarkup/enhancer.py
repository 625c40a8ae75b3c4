# -*- coding: utf-8 -*-
"""
Display container and post-typeset DOM augmentation.

``HtmlContainer`` is the caller-owned subtree the sanitized HTML is
committed into; typesetting and copy controls modify only this tree.
"""

import logging
from typing import Callable, Dict, List, Optional, Protocol

from bs4 import BeautifulSoup, Tag

from aimarkup.exceptions import ClipboardWriteError
from aimarkup.models import RendererConfig
from aimarkup.scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

COPY_MARKER_ATTR = "data-copy-attached"
COPY_SCHEME = "copy"

_WRAPPER_STYLE = "position:relative;"
_BUTTON_STYLE = (
    "position:absolute; top:8px; right:8px; padding:2px 8px; font-size:11px; "
    "background:#475569; color:#ffffff; border-radius:4px; text-decoration:none;"
)


class HtmlContainer:
    """Parsed HTML subtree that listeners (views) mirror."""

    def __init__(self, html: str = ""):
        self._soup = BeautifulSoup(html, "html.parser")
        self._listeners: List[Callable[["HtmlContainer"], None]] = []
        self.revision = 0

    @property
    def soup(self) -> BeautifulSoup:
        return self._soup

    @property
    def html(self) -> str:
        return str(self._soup)

    def text(self) -> str:
        return self._soup.get_text()

    def set_html(self, html: str) -> None:
        """Replace the whole subtree."""
        self._soup = BeautifulSoup(html, "html.parser")
        self.revision += 1
        self.notify()

    def add_listener(self, listener: Callable[["HtmlContainer"], None]) -> None:
        self._listeners.append(listener)

    def notify(self) -> None:
        """Tell listeners the tree changed in place."""
        for listener in self._listeners:
            listener(self)


class Clipboard(Protocol):
    """Platform clipboard: plain text writes only."""

    def write_text(self, text: str) -> None: ...


class CopyControl:
    """Copy-to-clipboard control attached to one code block."""

    def __init__(
        self,
        index: int,
        pre: Tag,
        button: Tag,
        container: HtmlContainer,
        clipboard: Clipboard,
        scheduler: Scheduler,
        config: RendererConfig,
        on_error: Optional[Callable[[ClipboardWriteError], None]] = None,
    ):
        self.index = index
        self._pre = pre
        self._button = button
        self._container = container
        self._clipboard = clipboard
        self._scheduler = scheduler
        self._config = config
        self._on_error = on_error
        self._revert_timer: Optional[TimerHandle] = None

    @property
    def label(self) -> str:
        return self._button.get_text()

    def code_text(self) -> str:
        """Rendered text of the block, without the control's own label."""
        code = self._pre.find("code")
        if code is not None:
            return code.get_text()
        return "".join(
            child.get_text() if isinstance(child, Tag) else str(child)
            for child in self._pre.children
            if child is not self._button
        )

    def _set_label(self, label: str) -> None:
        self._button.string = label
        self._container.notify()

    def click(self) -> bool:
        """
        Copy the block text.

        Returns:
            True on success; on failure the label stays as it was
        """
        try:
            self._clipboard.write_text(self.code_text())
        except Exception as e:
            error = ClipboardWriteError(f"Clipboard write failed: {e}")
            logger.error(error.message)
            if self._on_error:
                self._on_error(error)
            return False

        self._set_label(self._config.copied_label)
        if self._revert_timer is not None:
            self._revert_timer.cancel()
        self._revert_timer = self._scheduler.call_later(self._config.copy_revert_ms, self._revert)
        return True

    def _revert(self) -> None:
        self._revert_timer = None
        self._set_label(self._config.copy_label)

    def cancel(self) -> None:
        if self._revert_timer is not None:
            self._revert_timer.cancel()
            self._revert_timer = None


class DomEnhancer:
    """Attaches copy controls to code blocks, at most one per block."""

    def __init__(
        self,
        clipboard: Clipboard,
        scheduler: Scheduler,
        config: Optional[RendererConfig] = None,
        on_error: Optional[Callable[[ClipboardWriteError], None]] = None,
    ):
        self._clipboard = clipboard
        self._scheduler = scheduler
        self._config = config or RendererConfig()
        self._on_error = on_error
        self._controls: Dict[int, CopyControl] = {}
        self._revision: Optional[int] = None

    @property
    def controls(self) -> List[CopyControl]:
        return list(self._controls.values())

    def reset(self) -> None:
        """Forget controls of a replaced tree."""
        for control in self._controls.values():
            control.cancel()
        self._controls.clear()

    def add_copy_buttons(self, container: HtmlContainer) -> int:
        """
        Attach a copy control to every ``pre`` that has none yet.

        Each augmented block is marked with ``data-copy-attached``, so
        repeated calls on the same tree add nothing.

        Returns:
            Number of controls added
        """
        if self._revision != container.revision:
            self.reset()
            self._revision = container.revision

        soup = container.soup
        added = 0
        for pre in soup.find_all("pre"):
            if pre.has_attr(COPY_MARKER_ATTR):
                continue

            index = len(self._controls)
            wrapper = soup.new_tag("div", style=_WRAPPER_STYLE)
            pre.wrap(wrapper)

            button = soup.new_tag(
                "a",
                href=f"{COPY_SCHEME}:{index}",
                role="button",
                style=_BUTTON_STYLE,
            )
            button["class"] = ["copy-button"]
            button.string = self._config.copy_label
            pre.append(button)
            pre[COPY_MARKER_ATTR] = "true"

            self._controls[index] = CopyControl(
                index, pre, button, container,
                self._clipboard, self._scheduler, self._config, self._on_error,
            )
            added += 1

        if added:
            logger.debug(f"Attached {added} copy controls")
            container.notify()
        return added

    def click(self, index: int) -> bool:
        """Activate the control with ``index``; unknown indices are ignored."""
        control = self._controls.get(index)
        if control is None:
            logger.warning(f"No copy control with index {index}")
            return False
        return control.click()
