"""Chat-completion executor for OpenAI-compatible providers.

Sends the step's system prompt and its assembled inputs to the configured
provider (OpenRouter by default) through LangChain's ChatOpenAI client and
records output text, token usage and cost.

Cost is taken from the x-openrouter-cost response header, then from the
token price table, and is 0 (with a warning) when neither is available.
"""

import logging
import time
from typing import Callable, Dict, Optional

import httpx
import openai
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from prflow.config import PrflowSettings
from prflow.errors import ExecutorError
from prflow.executor.base import (
    Executor,
    ExecutorKind,
    ExecutorRequest,
    ExecutorResult,
    build_user_content,
)
from prflow.executor.pricing import (
    COST_HEADER,
    cost_from_header,
    cost_from_usage,
    header_value,
)

logger = logging.getLogger(__name__)

LLMFactory = Callable[[str], ChatOpenAI]


class ApiExecutor(Executor):
    """Executes steps as a single chat-completion call.

    Attributes:
        settings: Provider endpoint, API key and timeout; roles for the
            default model.
        prompts: Prompt template name -> system prompt text.
    """

    kind = ExecutorKind.API

    def __init__(
        self,
        settings: PrflowSettings,
        prompts: Dict[str, str],
        llm_factory: Optional[LLMFactory] = None,
    ):
        self.settings = settings
        self.prompts = prompts
        self._llm_factory = llm_factory or self._build_llm
        self._llms: Dict[str, ChatOpenAI] = {}

    def resolve_prompt(self, name: str) -> Optional[str]:
        """Return the system prompt for a template name, or None if unknown."""
        return self.prompts.get(name)

    def _system_prompt(self, template: str) -> str:
        if not template:
            return ""
        prompt = self.resolve_prompt(template)
        if prompt is None:
            raise ExecutorError(
                f"prompt template {template!r} not found", executor=self.kind.value
            )
        return prompt

    def _build_llm(self, model: str) -> ChatOpenAI:
        return ChatOpenAI(
            base_url=self.settings.provider.endpoint,
            model=model,
            api_key=self.settings.api_key() or "not-set",
            timeout=self.settings.provider.api_timeout_seconds,
            max_retries=0,
            include_response_headers=True,
        )

    def _llm(self, model: str) -> ChatOpenAI:
        if model not in self._llms:
            self._llms[model] = self._llm_factory(model)
        return self._llms[model]

    async def execute(self, request: ExecutorRequest) -> ExecutorResult:
        """Call the provider with the step's prompt and inputs.

        Raises:
            ExecutorError: On unknown prompt templates, HTTP errors, timeouts
                or malformed responses.
        """
        start = time.monotonic()
        step = request.step

        system_prompt = self._system_prompt(step.prompt_template)
        model = step.model or self.settings.roles.planner

        messages: list[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=build_user_content(request.input_files)))

        logger.debug(
            "Calling chat completion",
            extra={"step": step.name, "model": model, "inputs": sorted(request.input_files)},
        )

        try:
            response = await self._llm(model).ainvoke(messages)
        except openai.APIStatusError as exc:
            raise ExecutorError(
                f"API returned {exc.status_code}",
                executor=self.kind.value,
                detail=_response_text(exc),
            ) from exc
        except openai.APIError as exc:
            raise ExecutorError(
                f"API request failed: {exc}", executor=self.kind.value
            ) from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ExecutorError(
                f"malformed API response: {exc}", executor=self.kind.value
            ) from exc

        output = _message_text(response.content)
        tokens_in, tokens_out = _usage(response)
        headers = response.response_metadata.get("headers") or {}
        cost = self._cost(model, headers, tokens_in, tokens_out, step.name)

        return ExecutorResult(
            output=output,
            cost=cost,
            duration_seconds=time.monotonic() - start,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
        )

    def _cost(
        self,
        model: str,
        headers: Dict[str, str],
        tokens_in: int,
        tokens_out: int,
        step_name: str,
    ) -> float:
        header_cost = cost_from_header(header_value(headers, COST_HEADER))
        if header_cost is not None:
            return header_cost

        if tokens_in > 0 or tokens_out > 0:
            usage_cost = cost_from_usage(model, tokens_in, tokens_out)
            if usage_cost is not None:
                return usage_cost

        logger.warning(
            "Could not determine cost for step",
            extra={"step": step_name, "model": model},
        )
        return 0.0


def _message_text(content) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    raise ExecutorError(
        f"malformed API response: unexpected content type {type(content).__name__}",
        executor=ExecutorKind.API.value,
    )


def _usage(response) -> tuple:
    usage = getattr(response, "usage_metadata", None) or {}
    return int(usage.get("input_tokens", 0) or 0), int(usage.get("output_tokens", 0) or 0)


def _response_text(exc: openai.APIStatusError) -> str:
    try:
        return exc.response.text
    except (AttributeError, httpx.ResponseNotRead):
        return str(exc.body or exc.message)
