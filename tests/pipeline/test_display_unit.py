"""Unit tests for terminal progress output."""

import asyncio
import io

import pytest

from prflow.display import (
    MODEL_COLUMN_WIDTH,
    NullDisplay,
    StepTicker,
    TerminalDisplay,
    format_cost,
    format_preview,
    sanitize_model,
    truncate_model,
)


def run_async(coro):
    return asyncio.run(coro)


class TestModelColumn:

    def test_ansi_and_control_characters_are_stripped(self):
        assert sanitize_model("\x1b[31mred/model\x1b[0m\x07") == "red/model"

    def test_short_model_unchanged(self):
        assert truncate_model("anthropic/claude-opus-4-6") == "anthropic/claude-opus-4-6"

    def test_long_model_truncated_with_ellipsis(self):
        model = "provider/" + "m" * 40

        truncated = truncate_model(model)

        assert len(truncated) == MODEL_COLUMN_WIDTH
        assert truncated.endswith("…")
        assert truncated[:-1] == model[: MODEL_COLUMN_WIDTH - 1]

    def test_exact_width_not_truncated(self):
        model = "m" * MODEL_COLUMN_WIDTH

        assert truncate_model(model) == model


class TestFormatting:

    def test_zero_cost_shows_dash(self):
        assert format_cost(0) == "—"

    def test_cost_has_four_decimals(self):
        assert format_cost(0.01234) == "$0.0123"

    def test_preview_limited_to_ten_lines(self):
        text = "\n".join(f"line {i}" for i in range(15))

        preview = format_preview(text)

        lines = preview.splitlines()
        assert len(lines) == 11
        assert all(line.startswith("   │ ") for line in lines)
        assert lines[0] == "   │ line 0"
        assert lines[-1] == "   │ ... 5 more lines"

    def test_short_preview_has_no_more_note(self):
        assert format_preview("one\ntwo") == "   │ one\n   │ two\n"

    def test_empty_preview(self):
        assert format_preview("\n") == ""


class TestTerminalDisplay:

    def test_header_includes_title(self):
        stream = io.StringIO()

        TerminalDisplay("Add logging", stream=stream).header()

        assert "Add logging" in stream.getvalue()
        assert "─" * 76 in stream.getvalue()

    def test_step_start_without_newline_in_place_mode(self):
        stream = io.StringIO()

        TerminalDisplay("t", stream=stream).step_start("Plan", "model")

        assert stream.getvalue().startswith("⏳ Plan")
        assert not stream.getvalue().endswith("\n")

    def test_step_start_verbose_ends_line(self):
        stream = io.StringIO()

        TerminalDisplay("t", verbose=True, stream=stream).step_start("Plan", "model")

        assert stream.getvalue().endswith("running...\n")

    def test_step_done_overwrites_line_and_shows_preview(self):
        stream = io.StringIO()

        TerminalDisplay("t", stream=stream).step_done(
            "Plan", "model", "PLAN.md", 0.5, 2.25, preview="# Plan"
        )

        output = stream.getvalue()
        assert output.startswith("\r✅ Plan")
        assert "PLAN.md" in output
        assert "$0.5000" in output
        assert "2.2s" in output or "2.3s" in output
        assert "   │ # Plan" in output

    def test_step_done_zero_cost(self):
        stream = io.StringIO()

        TerminalDisplay("t", verbose=True, stream=stream).step_done(
            "Test", "shell", "3s", 0.0, 3.0
        )

        assert "—" in stream.getvalue()
        assert not stream.getvalue().startswith("\r")

    def test_step_failed(self):
        stream = io.StringIO()

        TerminalDisplay("t", stream=stream).step_failed(
            "Plan", "model", RuntimeError("boom")
        )

        assert stream.getvalue().startswith("\r❌ Plan")
        assert stream.getvalue().rstrip().endswith("boom")

    def test_summary_and_failed(self):
        stream = io.StringIO()
        display = TerminalDisplay("t", stream=stream)

        display.summary(1.5, 42.0)
        display.failed(RuntimeError("nope"))

        output = stream.getvalue()
        assert "✅ Done  $1.5000  42s" in output
        assert "❌ Failed: nope" in output

    def test_verbose_ticker_writes_nothing(self):
        stream = io.StringIO()
        display = TerminalDisplay("t", verbose=True, stream=stream)

        async def scenario():
            async with display.ticker("Plan", "model"):
                await asyncio.sleep(0.05)

        run_async(scenario())

        assert stream.getvalue() == ""


class TestStepTicker:

    def test_redraws_while_running_and_stops_on_exit(self):
        stream = io.StringIO()
        ticker = StepTicker(stream, "Plan", "model", interval=0.01)

        async def scenario():
            async with ticker:
                await asyncio.sleep(0.05)
                assert ticker.running
            written = stream.getvalue()
            await asyncio.sleep(0.05)
            return written

        written = run_async(scenario())

        assert "\r⏳ Plan" in written
        assert "running..." in written
        assert not ticker.running
        assert stream.getvalue() == written

    def test_stops_when_body_raises(self):
        stream = io.StringIO()
        ticker = StepTicker(stream, "Plan", "model", interval=0.01)

        async def scenario():
            with pytest.raises(ValueError):
                async with ticker:
                    raise ValueError("step failed")

        run_async(scenario())

        assert not ticker.running

    def test_stop_without_start_is_noop(self):
        run_async(StepTicker(io.StringIO(), "a", "b").stop())


class TestNullDisplay:

    def test_accepts_every_notification(self):
        display = NullDisplay()

        async def scenario():
            async with display.ticker("a", "b"):
                pass

        display.header()
        display.step_start("a", "b")
        run_async(scenario())
        display.step_done("a", "b", "c", 0.0, 1.0, "preview")
        display.step_failed("a", "b", RuntimeError("x"))
        display.summary(0.0, 1.0)
        display.failed(RuntimeError("x"))
