"""
Agent executor — bounded tool-calling loop against the OpenAI chat API.

The executor is the only place that talks to the model and the only place
that validates tool arguments. Each round sends the conversation, executes
every tool call the model asked for, and feeds the outputs back. The loop
ends when the model answers without tool calls or max_rounds is reached.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from leadscout.pipeline.tools import ToolArgumentError
from leadscout.tools.base import ToolResult

logger = logging.getLogger('services.llm')


class AgentConfigurationError(Exception):
    """No LLM provider is configured."""


@dataclass
class ToolCallRecord:
    """One executed tool call, as handed to on_tool_call."""
    name: str
    arguments: Dict[str, Any]
    output: str
    error: Optional[str] = None
    duration_ms: int = 0
    round: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class AgentResult:
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    total_tokens: int = 0
    rounds: int = 0


class AgentExecutor:
    """
    Shared tool dispatch for every executor.

    Subclasses implement run(). _invoke() turns one model-issued call into a
    ToolCallRecord: unknown tools, malformed JSON and failed validation all
    become error outputs the model can read; exceptions raised by the
    handler itself propagate to the stage.
    """

    def run(self, model: str, system_prompt: str, tools: list, max_rounds: int,
            on_tool_call: Callable[[ToolCallRecord], None] = None,
            on_round_finish: Callable[[int, List[ToolCallRecord], int], None] = None) -> AgentResult:
        raise NotImplementedError

    @staticmethod
    def _invoke(specs: Dict[str, Any], name: str, raw_arguments, round_number: int) -> ToolCallRecord:
        started = time.monotonic()

        def record(arguments, output, error=None):
            return ToolCallRecord(
                name=name,
                arguments=arguments,
                output=output,
                error=error,
                duration_ms=int((time.monotonic() - started) * 1000),
                round=round_number,
            )

        spec = specs.get(name)
        if spec is None:
            msg = f"Unknown tool '{name}'"
            return record({}, json.dumps({'error': msg}), msg)

        if isinstance(raw_arguments, dict):
            arguments = raw_arguments
        else:
            try:
                arguments = json.loads(raw_arguments or '{}')
            except (TypeError, ValueError):
                msg = f"Arguments for '{name}' are not valid JSON"
                return record({'raw': str(raw_arguments)[:500]}, json.dumps({'error': msg}), msg)

        try:
            tool_input = spec.input_cls.from_args(arguments)
        except ToolArgumentError as e:
            return record(arguments, json.dumps({'error': str(e)}), str(e))

        result = spec.handler(tool_input)

        if isinstance(result, ToolResult):
            return record(arguments, json.dumps(result.to_dict(), default=str), result.error)
        if isinstance(result, (dict, list)):
            return record(arguments, json.dumps(result, default=str))
        return record(arguments, str(result))


class OpenAIAgentExecutor(AgentExecutor):
    """
    Usage:
        executor = OpenAIAgentExecutor()
        result = executor.run('gpt-4o', prompt, tool_specs, max_rounds=25,
                              on_tool_call=record_step)
    """

    def __init__(self, client=None, breaker=None):
        if client is None:
            from leadscout.extensions import openai_client as client
        self.client = client
        self.breaker = breaker

    def _complete(self, **kwargs):
        """Route chat completion through the OpenAI circuit breaker."""
        breaker = self.breaker
        if breaker is None:
            from leadscout.services.circuit_breaker import get_breaker
            breaker = get_breaker('openai')
        return breaker.call(self.client.chat.completions.create, **kwargs)

    def run(self, model, system_prompt, tools, max_rounds, on_tool_call=None, on_round_finish=None,
            user_prompt='Begin.') -> AgentResult:
        if self.client is None:
            raise AgentConfigurationError('No AI provider configured. Set OPENAI_API_KEY.')

        specs = {spec.name: spec for spec in tools}
        tool_defs = [spec.openai_schema() for spec in tools]
        messages = [
            {'role': 'system', 'content': system_prompt},
            {'role': 'user', 'content': user_prompt},
        ]
        result = AgentResult()

        for round_number in range(1, max_rounds + 1):
            response = self._complete(model=model, messages=messages, tools=tool_defs)
            result.rounds = round_number
            usage = getattr(response, 'usage', None)
            if usage is not None:
                result.total_tokens += usage.total_tokens or 0

            message = response.choices[0].message
            calls = message.tool_calls or []
            if not calls:
                logger.info("Agent finished after %d rounds (%d tokens)", round_number, result.total_tokens)
                break

            messages.append({
                'role': 'assistant',
                'content': message.content,
                'tool_calls': [
                    {
                        'id': call.id,
                        'type': 'function',
                        'function': {'name': call.function.name, 'arguments': call.function.arguments},
                    }
                    for call in calls
                ],
            })

            round_records = []
            for call in calls:
                rec = self._invoke(specs, call.function.name, call.function.arguments, round_number)
                if not rec.ok:
                    logger.info("Tool %s returned error: %s", rec.name, rec.error)
                result.tool_calls.append(rec)
                round_records.append(rec)
                if on_tool_call:
                    on_tool_call(rec)
                messages.append({'role': 'tool', 'tool_call_id': call.id, 'content': rec.output})

            if on_round_finish:
                on_round_finish(round_number, round_records, result.total_tokens)
        else:
            logger.info("Agent hit round cap (%d)", max_rounds)

        return result


def get_executor() -> AgentExecutor:
    """OpenAI executor, or the canned one when MOCK_PIPELINE is set."""
    from leadscout.config import MOCK_PIPELINE
    if MOCK_PIPELINE:
        from leadscout.pipeline.mock_adapters import MockAgentExecutor
        logger.info("MOCK_PIPELINE active — using fake agent executor")
        return MockAgentExecutor()
    return OpenAIAgentExecutor()
