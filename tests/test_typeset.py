"""Tests for the typesetting wait and the MathML engine."""

import html
import logging

import latex2mathml.converter
import pytest

from aimarkup.enhancer import HtmlContainer
from aimarkup.exceptions import TypesetExpressionError, TypesetUnavailable
from aimarkup.models import DEFAULT_DELIMITERS, RendererConfig, TypesetOptions, TypesetState
from aimarkup.typeset import Capability, MathMLTypesetter, TypesetWaiter, split_at_delimiters


class FakeEngine:
    def __init__(self, error: Exception = None):
        self.calls = 0
        self.error = error

    def render_math_in_element(self, container, options):
        self.calls += 1
        if self.error:
            raise self.error


class CountingProbe:
    """Probe that finds the engine on the ``ready_after``-th call."""

    def __init__(self, engine=None, ready_after: int = None):
        self.engine = engine
        self.ready_after = ready_after
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.ready_after is not None and self.calls >= self.ready_after:
            return self.engine
        return None


@pytest.fixture
def container() -> HtmlContainer:
    return HtmlContainer("<p>$x$</p>")


class TestTypesetWaiter:
    """Polling, timeout and cancellation."""

    def test_timeout_logs_once_and_stops(self, container, scheduler, caplog) -> None:
        probe = CountingProbe()
        finished = []
        waiter = TypesetWaiter(container, scheduler, probe=probe, on_finished=finished.append)

        with caplog.at_level(logging.WARNING, logger="aimarkup.typeset"):
            waiter.start()
            assert waiter.state == TypesetState.POLLING
            scheduler.advance(10000)

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert waiter.state == TypesetState.TIMED_OUT
        assert isinstance(waiter.last_error, TypesetUnavailable)
        assert finished == [TypesetState.TIMED_OUT]
        assert scheduler.active_timers() == []

        calls = probe.calls
        scheduler.advance(5000)
        assert probe.calls == calls

    def test_polls_at_interval(self, container, scheduler) -> None:
        probe = CountingProbe()
        waiter = TypesetWaiter(container, scheduler, probe=probe)
        waiter.start()
        scheduler.advance(1000)
        assert probe.calls == 5
        waiter.cancel()

    def test_ready_then_settle(self, container, scheduler) -> None:
        engine = FakeEngine()
        typeset, finished = [], []
        waiter = TypesetWaiter(
            container, scheduler,
            probe=CountingProbe(engine, ready_after=3),
            on_typeset=typeset.append,
            on_finished=finished.append,
        )
        waiter.start()

        scheduler.advance(600)
        assert waiter.state == TypesetState.READY
        assert engine.calls == 0

        scheduler.advance(49)
        assert engine.calls == 0
        scheduler.advance(1)
        assert engine.calls == 1
        assert typeset == [container]
        assert finished == [TypesetState.READY]
        assert scheduler.active_timers() == []

    def test_restart_cancels_previous_wait(self, container, scheduler) -> None:
        waiter = TypesetWaiter(container, scheduler, probe=CountingProbe())
        waiter.start()
        scheduler.advance(100)
        waiter.start()
        assert len(scheduler.active_timers()) == 2
        waiter.cancel()
        assert scheduler.active_timers() == []
        assert waiter.state == TypesetState.IDLE

    def test_restart_during_settle_runs_engine_once(self, container, scheduler) -> None:
        engine = FakeEngine()
        waiter = TypesetWaiter(container, scheduler, probe=CountingProbe(engine, ready_after=1))
        waiter.start()
        scheduler.advance(200)
        assert waiter.pending

        waiter.start()
        scheduler.advance(300)
        assert engine.calls == 1

    def test_cancel_during_settle(self, container, scheduler) -> None:
        engine = FakeEngine()
        waiter = TypesetWaiter(container, scheduler, probe=CountingProbe(engine, ready_after=1))
        waiter.start()
        scheduler.advance(200)
        waiter.cancel()
        scheduler.advance(1000)
        assert engine.calls == 0

    def test_custom_timing(self, container, scheduler) -> None:
        config = RendererConfig(poll_interval_ms=50, timeout_ms=500)
        probe = CountingProbe()
        waiter = TypesetWaiter(container, scheduler, probe=probe, config=config)
        waiter.start()
        scheduler.advance(500)
        assert waiter.state == TypesetState.TIMED_OUT
        assert probe.calls == 10

    def test_capability_skips_polling(self, container, scheduler) -> None:
        engine = FakeEngine()
        waiter = TypesetWaiter(container, scheduler, capability=Capability(engine))
        waiter.start()
        assert waiter.state == TypesetState.READY
        assert len(scheduler.timers) == 1

        scheduler.advance(50)
        assert engine.calls == 1

    def test_unavailable_capability(self, container, scheduler, caplog) -> None:
        finished = []
        waiter = TypesetWaiter(container, scheduler, on_finished=finished.append)

        with caplog.at_level(logging.WARNING, logger="aimarkup.typeset"):
            waiter.start()

        assert waiter.state == TypesetState.TIMED_OUT
        assert isinstance(waiter.last_error, TypesetUnavailable)
        assert finished == [TypesetState.TIMED_OUT]
        assert scheduler.timers == []
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

    def test_engine_error_is_contained(self, container, scheduler) -> None:
        typeset, finished = [], []
        waiter = TypesetWaiter(
            container, scheduler,
            capability=Capability(FakeEngine(RuntimeError("bad"))),
            on_typeset=typeset.append,
            on_finished=finished.append,
        )
        waiter.start()
        scheduler.advance(50)

        assert isinstance(waiter.last_error, RuntimeError)
        assert typeset == []
        assert finished == [TypesetState.READY]

    def test_raising_engine_lookup_keeps_polling(self, container, scheduler, caplog) -> None:
        def find_engine():
            raise RuntimeError("not loaded")

        waiter = TypesetWaiter(container, scheduler, probe=find_engine)
        with caplog.at_level(logging.WARNING, logger="aimarkup.typeset"):
            waiter.start()
            scheduler.advance(10000)

        assert waiter.state == TypesetState.TIMED_OUT
        assert "not loaded" in caplog.text
        assert scheduler.active_timers() == []

    def test_failing_hook_still_finishes(self, container, scheduler) -> None:
        finished = []

        def hook(container):
            raise RuntimeError("hook broke")

        waiter = TypesetWaiter(
            container, scheduler,
            capability=Capability(FakeEngine()),
            on_typeset=hook,
            on_finished=finished.append,
        )
        waiter.start()
        scheduler.advance(50)

        assert finished == [TypesetState.READY]
        assert str(waiter.last_error) == "hook broke"

    def test_probe_and_capability_exclusive(self, container, scheduler) -> None:
        with pytest.raises(ValueError):
            TypesetWaiter(container, scheduler, probe=lambda: None, capability=Capability())


class TestMathMLTypesetter:
    """LaTeX to MathML inside the container."""

    def test_inline_and_block(self) -> None:
        container = HtmlContainer("<p>Area $x^2$</p><p>$$\\frac{1}{2}$$</p>")
        count = MathMLTypesetter().render_math_in_element(container, TypesetOptions())

        assert count == 2
        assert container.soup.select_one("span.math-inline math") is not None
        block = container.soup.select_one("span.math-block math")
        assert block is not None
        assert block.get("display") == "block"
        assert "$" not in container.text()

    def test_code_is_skipped(self) -> None:
        container = HtmlContainer("<pre><code>echo $HOME $PATH</code></pre>")
        assert MathMLTypesetter().render_math_in_element(container, TypesetOptions()) == 0
        assert "echo $HOME $PATH" in container.text()

    def test_second_pass_adds_nothing(self) -> None:
        container = HtmlContainer("<p>\\(a+b\\)</p>")
        engine = MathMLTypesetter()
        assert engine.render_math_in_element(container, TypesetOptions()) == 1
        assert engine.render_math_in_element(container, TypesetOptions()) == 0

    def test_notifies_listeners(self) -> None:
        container = HtmlContainer("<p>$y$</p>")
        seen = []
        container.add_listener(seen.append)
        MathMLTypesetter().render_math_in_element(container, TypesetOptions())
        assert seen == [container]

    def test_text_and_href_cannot_inject_markup(self) -> None:
        sources = [
            r"$\text{<script>alert(1)</script>}$",
            r"$\text{<svg/onload=alert(1)>}$",
            r'$\text{<img/src="x"/onerror="alert(1)">}$',
            r"$\href{javascript:alert(1)}{click}$",
        ]
        container = HtmlContainer("".join(f"<p>{html.escape(s)}</p>" for s in sources))
        MathMLTypesetter().render_math_in_element(container, TypesetOptions())

        assert "<script" not in container.html
        for tag in container.soup.find_all(True):
            assert tag.name not in ("script", "svg", "img")
            for name, value in tag.attrs.items():
                assert not name.startswith("on")
                assert name != "href"
                assert "javascript:" not in str(value)

    def test_plain_text_command_kept(self) -> None:
        container = HtmlContainer(r"<p>$\text{speed}$</p>")
        MathMLTypesetter().render_math_in_element(container, TypesetOptions())
        assert container.soup.find("mtext").get_text() == "speed"

    def test_bad_expression_left_as_source(self, monkeypatch) -> None:
        def broken(latex, display="inline"):
            raise ValueError("unsupported")

        monkeypatch.setattr(latex2mathml.converter, "convert", broken)
        container = HtmlContainer("<p>$x^2$</p>")
        MathMLTypesetter().render_math_in_element(container, TypesetOptions())

        error = container.soup.select_one("span.math-error")
        assert error is not None
        assert error.get_text() == "$x^2$"

    def test_throw_on_error(self, monkeypatch) -> None:
        def broken(latex, display="inline"):
            raise ValueError("unsupported")

        monkeypatch.setattr(latex2mathml.converter, "convert", broken)
        container = HtmlContainer("<p>$x$</p>")
        with pytest.raises(TypesetExpressionError):
            MathMLTypesetter().render_math_in_element(container, TypesetOptions(throw_on_error=True))


class TestSplitAtDelimiters:
    def test_mixed(self) -> None:
        pieces = split_at_delimiters("a $x$ b $$y$$", DEFAULT_DELIMITERS)
        assert [(kind, content) for kind, content, _ in pieces] == [
            ("text", "a "), ("math", "x"), ("text", " b "), ("math", "y"),
        ]
        assert pieces[3][2].display

    def test_unclosed(self) -> None:
        assert split_at_delimiters("costs $5", DEFAULT_DELIMITERS) == [("text", "costs $5", None)]
