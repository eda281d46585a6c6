"""Model-invocation loop collaborator.

Everything that talks to a real model goes through a ``ModelInvoker``; the
rest of the runtime only inspects message and tool-call shapes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from langchain.agents import create_agent
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.tools import tool
from langgraph.errors import GraphRecursionError

from core.errors import DeepStateError, StepLimitExceededError, UpstreamFailureError
from core.model_catalog import create_chat_model

logger = logging.getLogger(__name__)

StepCallback = Callable[[list[BaseMessage], int], None]


class ModelInvoker(Protocol):
    def invoke(
        self,
        messages: list[BaseMessage],
        middleware: list[Any],
        instructions: str,
        *,
        max_steps: int,
        on_step: StepCallback | None = None,
        model: str | None = None,
    ) -> list[BaseMessage]:
        """Run the tool loop and return the full resulting message list.

        ``on_step(messages, step)`` is called whenever the history grows
        (after each model call and after each round of tool results).

        Raises:
            StepLimitExceededError: the loop did not finish within max_steps.
            UpstreamFailureError: the model or loop failed.
        """
        ...


# Placeholder tool to ensure agent graph has a "tools" node.
#
# create_agent builds a ToolNode only when some tool is registered. The
# middleware here inject dict schemas in wrap_model_call and answer calls in
# wrap_tool_call, so no real tool object exists.
@tool
def _placeholder_tool() -> str:
    """Internal placeholder - ensures ToolNode is created for middleware tools."""
    return ""


def count_model_steps(messages: list[BaseMessage]) -> int:
    return sum(1 for msg in messages if isinstance(msg, AIMessage))


class LangChainInvoker:
    """ModelInvoker on top of ``langchain.agents.create_agent``.

    A step is one model call plus the tool calls it requested. The graph's
    recursion limit is derived from max_steps; hitting it raises
    StepLimitExceededError.
    """

    def __init__(self, model: str | Any, model_kwargs: dict[str, Any] | None = None):
        self.model_kwargs = model_kwargs or {}
        self._default_model = self._resolve(model)

    def _resolve(self, model: str | Any) -> Any:
        if isinstance(model, str):
            return create_chat_model(model, **self.model_kwargs)
        return model

    @property
    def chat_model(self) -> Any:
        return self._default_model

    def invoke(
        self,
        messages: list[BaseMessage],
        middleware: list[Any],
        instructions: str,
        *,
        max_steps: int,
        on_step: StepCallback | None = None,
        model: str | None = None,
    ) -> list[BaseMessage]:
        chat_model = self._resolve(model) if model else self._default_model
        middleware_has_tools = any(getattr(m, "tools", None) for m in middleware)
        tools = [] if middleware_has_tools else [_placeholder_tool]

        agent = create_agent(
            model=chat_model,
            tools=tools,
            system_prompt=instructions,
            middleware=middleware,
        )

        base_steps = count_model_steps(messages)
        seen = len(messages)
        result: list[BaseMessage] = list(messages)
        # Each step is a model node plus a tools node, so at most max_steps model calls.
        config = {"recursion_limit": max_steps * 2}

        try:
            for chunk in agent.stream({"messages": list(messages)}, config=config, stream_mode="values"):
                if not isinstance(chunk, dict) or "messages" not in chunk:
                    continue
                result = list(chunk["messages"])
                if len(result) > seen and on_step is not None:
                    on_step(result, count_model_steps(result) - base_steps)
                seen = max(seen, len(result))
        except GraphRecursionError as e:
            raise StepLimitExceededError(max_steps) from e
        except DeepStateError:
            raise
        except Exception as e:
            logger.error("Model loop failed: %s", e)
            raise UpstreamFailureError(f"Model loop failed: {e}") from e

        return result
