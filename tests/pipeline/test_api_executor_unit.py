"""Unit tests for the chat-completion executor.

The ChatOpenAI client is replaced through the executor's llm_factory so no
request leaves the process.
"""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from prflow.config import PrflowSettings
from prflow.errors import ExecutorError
from prflow.executor.api import ApiExecutor
from prflow.executor.base import ExecutorRequest, build_user_content
from prflow.executor.pricing import cost_from_header, cost_from_usage, header_value
from prflow.pipeline import Step


def run_async(coro):
    return asyncio.run(coro)


def _response(content="PLAN", headers=None, usage=None):
    return AIMessage(
        content=content,
        response_metadata={"headers": headers or {}},
        usage_metadata=usage,
    )


def _executor(response=None, side_effect=None, prompts=None):
    llm = MagicMock()
    llm.ainvoke = AsyncMock(return_value=response, side_effect=side_effect)
    factory = MagicMock(return_value=llm)
    executor = ApiExecutor(
        PrflowSettings(),
        prompts if prompts is not None else {"plan": "You plan."},
        llm_factory=factory,
    )
    return executor, llm, factory


def _request(step=None, inputs=None):
    return ExecutorRequest(
        step=step or Step(name="Plan", executor="api", model="m/x", prompt_template="plan"),
        run_dir=Path("/tmp/run"),
        input_files=inputs if inputs is not None else {"TICKET.md": "ticket"},
    )


class TestBuildUserContent:

    def test_inputs_rendered_in_sorted_order(self):
        content = build_user_content({"b.md": "B", "a.md": "A"})

        assert content == "## a.md\n\nA\n\n## b.md\n\nB\n\n"

    def test_diff_rendered_as_fenced_block(self):
        content = build_user_content({"git:diff": "+line"})

        assert content == "## git diff\n\n```diff\n+line\n```\n\n"

    def test_empty_diff_is_skipped(self):
        assert build_user_content({"git:diff": "", "PLAN.md": "p"}) == "## PLAN.md\n\np\n\n"


class TestApiExecutor:

    def test_returns_output_tokens_and_header_cost(self):
        executor, llm, _ = _executor(
            _response(
                "the plan",
                headers={"X-OpenRouter-Cost": "0.0123"},
                usage={"input_tokens": 100, "output_tokens": 20, "total_tokens": 120},
            )
        )

        result = run_async(executor.execute(_request()))

        assert result.output == "the plan"
        assert result.cost == pytest.approx(0.0123)
        assert result.tokens_in == 100
        assert result.tokens_out == 20
        messages = llm.ainvoke.call_args[0][0]
        assert isinstance(messages[0], SystemMessage)
        assert messages[0].content == "You plan."
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == "## TICKET.md\n\nticket\n\n"

    def test_cost_falls_back_to_price_table(self):
        executor, _, _ = _executor(
            _response(usage={"input_tokens": 1_000_000, "output_tokens": 0, "total_tokens": 1_000_000})
        )
        step = Step(name="Plan", executor="api", model="anthropic/claude-sonnet-4-6")

        result = run_async(executor.execute(_request(step)))

        assert result.cost == pytest.approx(3.0)

    def test_cost_is_zero_when_unknown(self):
        executor, _, _ = _executor(
            _response(usage={"input_tokens": 10, "output_tokens": 10, "total_tokens": 20})
        )

        result = run_async(executor.execute(_request()))

        assert result.cost == 0.0

    def test_empty_model_uses_planner_role(self):
        executor, _, factory = _executor(_response())
        step = Step(name="Plan", executor="api")

        run_async(executor.execute(_request(step)))

        factory.assert_called_once_with(PrflowSettings().roles.planner)

    def test_no_prompt_template_sends_only_user_message(self):
        executor, llm, _ = _executor(_response())
        step = Step(name="Plan", executor="api", model="m")

        run_async(executor.execute(_request(step)))

        messages = llm.ainvoke.call_args[0][0]
        assert len(messages) == 1

    def test_unknown_prompt_template_raises(self):
        executor, llm, _ = _executor(_response(), prompts={})

        with pytest.raises(ExecutorError, match="prompt template 'plan' not found"):
            run_async(executor.execute(_request()))
        llm.ainvoke.assert_not_called()

    def test_http_error_includes_response_body(self):
        request = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
        response = httpx.Response(502, text="upstream broke", request=request)
        error = openai.APIStatusError("bad gateway", response=response, body=None)
        executor, _, _ = _executor(side_effect=error)

        with pytest.raises(ExecutorError) as exc_info:
            run_async(executor.execute(_request()))

        assert "API returned 502" in str(exc_info.value)
        assert "upstream broke" in str(exc_info.value)

    def test_connection_error_raises_executor_error(self):
        request = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
        executor, _, _ = _executor(side_effect=openai.APIConnectionError(request=request))

        with pytest.raises(ExecutorError, match="API request failed"):
            run_async(executor.execute(_request()))

    def test_llm_client_is_reused_per_model(self):
        executor, _, factory = _executor(_response())

        run_async(executor.execute(_request()))
        run_async(executor.execute(_request()))

        assert factory.call_count == 1


class TestPricing:

    def test_header_parsing(self):
        assert cost_from_header(" 0.5 ") == 0.5
        assert cost_from_header("") is None
        assert cost_from_header(None) is None
        assert cost_from_header("n/a") is None

    def test_header_lookup_is_case_insensitive(self):
        assert header_value({"X-OPENROUTER-COST": "1"}, "x-openrouter-cost") == "1"
        assert header_value({}, "x-openrouter-cost") is None

    def test_unknown_model_has_no_price(self):
        assert cost_from_usage("unknown/model", 10, 10) is None

    def test_usage_cost(self):
        cost = cost_from_usage("deepseek/deepseek-r1", 1_000_000, 1_000_000)

        assert cost == pytest.approx(2.5)
