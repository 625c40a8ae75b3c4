# -*- coding: utf-8 -*-
"""
Qt-виджеты: просмотр отрендеренного ответа модели.

QTextBrowser играет роль контейнера, QTimer - планировщика,
системный буфер обмена - цели кнопок копирования.
"""

import asyncio
import sys
import logging
import traceback
from typing import Callable, Optional

from PyQt6.QtWidgets import (
    QApplication, QFrame, QVBoxLayout, QLabel, QTextBrowser, QStackedWidget, QMainWindow
)
from PyQt6.QtCore import Qt, QTimer, QUrl, pyqtSignal
from PyQt6.QtGui import QFont, QDesktopServices, QGuiApplication

from aimarkup.enhancer import COPY_SCHEME, DomEnhancer, HtmlContainer
from aimarkup.exceptions import ClipboardWriteError
from aimarkup.models import RendererConfig
from aimarkup.pipeline import RenderSession
from aimarkup.typeset import Capability, MathMLTypesetter, TypesetWaiter

logger = logging.getLogger(__name__)


def install_exception_hook():
    """Устанавливает глобальный обработчик необработанных исключений для PyQt6."""
    def _exception_hook(exc_type, exc_value, exc_tb):
        lines = traceback.format_exception(exc_type, exc_value, exc_tb)
        msg = "".join(lines)
        logger.critical(f"Unhandled exception:\n{msg}")
        # Вызов дефолтного обработчика (чтобы Python мог завершить процесс)
        sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = _exception_hook


class _QtTimer:
    """Таймер планировщика поверх QTimer."""

    def __init__(self, parent, delay_ms: int, callback: Callable[[], None], repeat: bool):
        self._timer = QTimer(parent)
        self._timer.setSingleShot(not repeat)
        self._timer.setInterval(delay_ms)
        self._timer.timeout.connect(callback)
        self._timer.start()

    def cancel(self) -> None:
        self._timer.stop()

    @property
    def active(self) -> bool:
        return self._timer.isActive()


class QtScheduler:
    """Планировщик на цикле событий Qt."""

    def __init__(self, parent=None):
        self._parent = parent

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> _QtTimer:
        return _QtTimer(self._parent, delay_ms, callback, repeat=False)

    def call_repeating(self, interval_ms: int, callback: Callable[[], None]) -> _QtTimer:
        return _QtTimer(self._parent, interval_ms, callback, repeat=True)


class QtClipboard:
    """Системный буфер обмена."""

    def write_text(self, text: str) -> None:
        clipboard = QGuiApplication.clipboard()
        if clipboard is None:
            raise ClipboardWriteError("System clipboard is not available")
        clipboard.setText(text)


class MarkupView(QTextBrowser):
    """Отображение ответа модели: Markdown, формулы, кнопки копирования кода."""

    copy_failed = pyqtSignal(str)

    def __init__(self, config: Optional[RendererConfig] = None, parent=None):
        super().__init__(parent)
        self._config = config or RendererConfig()

        self.setOpenLinks(False)
        self.anchorClicked.connect(self._on_anchor_clicked)
        self.setFont(QFont("Segoe UI", 11))
        self.setStyleSheet("""
            QTextBrowser {
                background: #ffffff; color: #333;
                border: 1px solid #e0e0e0; border-radius: 18px;
                padding: 12px 16px;
            }
        """)

        self.container = HtmlContainer()
        self.container.add_listener(self._sync)

        scheduler = QtScheduler(self)
        self._enhancer = DomEnhancer(
            QtClipboard(), scheduler, self._config,
            on_error=lambda e: self.copy_failed.emit(e.message),
        )
        # Движок входит в пакет, поэтому опрос не нужен
        self._waiter = TypesetWaiter(
            self.container, scheduler,
            capability=Capability(MathMLTypesetter()),
            config=self._config,
            on_typeset=self._enhancer.add_copy_buttons,
        )
        self._session = RenderSession(
            self.container, self._waiter, self._enhancer, config=self._config
        )

    def set_content(self, content: str) -> None:
        """Отрендерить и показать текст модели."""
        asyncio.run(self._session.update(content))

    def unmount(self) -> None:
        self._session.unmount()

    def _sync(self, container: HtmlContainer) -> None:
        self.setHtml(container.html)

    def _on_anchor_clicked(self, url: QUrl) -> None:
        if url.scheme() == COPY_SCHEME:
            try:
                index = int(url.path())
            except ValueError:
                logger.warning(f"Bad copy link: {url.toString()}")
                return
            self._enhancer.click(index)
        else:
            QDesktopServices.openUrl(url)


class ResultPanel(QFrame):
    """Панель результата: загрузка, ошибка, ответ или заглушка."""

    def __init__(self, title: str = "Результат", config: Optional[RendererConfig] = None, parent=None):
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(10, 10, 10, 10)
        layout.setSpacing(6)

        self._title = QLabel(f"<b>{title}</b>")
        self._title.setStyleSheet("font-size: 14px; color: #333;")
        layout.addWidget(self._title)

        self._stack = QStackedWidget()

        self._placeholder = QLabel("Результат появится здесь.")
        self._placeholder.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._placeholder.setStyleSheet("color: #999; padding: 30px 0;")

        self._loader = QLabel("Загрузка…")
        self._loader.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._loader.setStyleSheet("color: #0066cc; font-style: italic;")

        self._error = QLabel("")
        self._error.setWordWrap(True)
        self._error.setStyleSheet("color: #dc3545;")

        self.view = MarkupView(config)
        self.view.copy_failed.connect(self._on_copy_failed)

        for widget in (self._placeholder, self._loader, self._error, self.view):
            self._stack.addWidget(widget)
        layout.addWidget(self._stack, 1)

        self._status = QLabel("")
        self._status.setStyleSheet("color: #856404; font-size: 10px;")
        layout.addWidget(self._status)

    def set_loading(self) -> None:
        self._stack.setCurrentWidget(self._loader)

    def set_error(self, message: str) -> None:
        self._error.setText(f"⚠️ {message}")
        self._stack.setCurrentWidget(self._error)

    def set_result(self, content: str) -> None:
        if not content:
            self.clear()
            return
        self.view.set_content(content)
        self._stack.setCurrentWidget(self.view)

    def clear(self) -> None:
        self._stack.setCurrentWidget(self._placeholder)

    def _on_copy_failed(self, message: str) -> None:
        self._status.setText(f"Не удалось скопировать: {message}")


class _ViewerWindow(QMainWindow):
    def __init__(self, panel: ResultPanel):
        super().__init__()
        self._panel = panel
        self.setCentralWidget(panel)

    def closeEvent(self, event):
        self._panel.view.unmount()
        super().closeEvent(event)


def run_viewer(content: str, title: str = "aimarkup", config: Optional[RendererConfig] = None) -> int:
    """Открыть окно просмотра и вернуть код выхода Qt."""
    install_exception_hook()

    app = QApplication.instance() or QApplication(sys.argv)
    app.setApplicationName("aimarkup")
    app.setStyle("Fusion")

    panel = ResultPanel(title, config)
    window = _ViewerWindow(panel)
    window.setWindowTitle(title)
    window.resize(900, 700)
    window.show()

    panel.set_result(content)
    return app.exec()
