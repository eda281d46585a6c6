"""Subagent runner for executing task agents."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from core.errors import DeepStateError, SandboxViolationError, StepLimitExceededError
from core.events import SUBAGENT_FINISH, SUBAGENT_START, EventCallback, emit
from core.prompts import DEFAULT_GENERAL_PURPOSE_DESCRIPTION, build_system_prompt
from core.state.types import AgentState, merge_subagent_files

from .invoker import ModelInvoker, count_model_steps
from .types import AgentConfig, TaskResult

logger = logging.getLogger(__name__)

GENERAL_PURPOSE = "general-purpose"
DEFAULT_SUBAGENT_MAX_STEPS = 50

MiddlewareFactory = Callable[[AgentState, AgentConfig], list[Any]]


def general_purpose_config() -> AgentConfig:
    return AgentConfig(name=GENERAL_PURPOSE, description=DEFAULT_GENERAL_PURPOSE_DESCRIPTION)


def final_text(messages: list[BaseMessage]) -> str:
    for msg in reversed(messages):
        if isinstance(msg, AIMessage):
            content = msg.content
            if isinstance(content, str):
                return content
            parts = [
                block.get("text", "")
                for block in content
                if isinstance(block, dict) and block.get("type") == "text"
            ]
            return "".join(parts)
    return ""


class SubagentRunner:
    """Execute subagent tasks synchronously on a forked state.

    The child shares the parent's files while it runs; its file map is merged
    back into the parent exactly once when it terminates, whatever the outcome.
    """

    def __init__(
        self,
        invoker: ModelInvoker,
        agents: dict[str, AgentConfig] | None,
        middleware_factory: MiddlewareFactory,
        max_steps: int = DEFAULT_SUBAGENT_MAX_STEPS,
        on_event: EventCallback | None = None,
        include_general_purpose: bool = True,
    ):
        self.invoker = invoker
        self.middleware_factory = middleware_factory
        self.max_steps = max_steps
        self.on_event = on_event
        self.agents: dict[str, AgentConfig] = {}
        if include_general_purpose:
            self.agents[GENERAL_PURPOSE] = general_purpose_config()
        # Configured agents may override the built-in general-purpose entry
        self.agents.update(agents or {})

    def descriptions(self) -> list[str]:
        return [f"- {name}: {cfg.description}" for name, cfg in sorted(self.agents.items())]

    def run(
        self,
        state: AgentState,
        subagent_type: str,
        description: str,
        tool_call_id: str | None = None,
        max_steps: int | None = None,
    ) -> TaskResult:
        task_id = tool_call_id or uuid.uuid4().hex[:8]
        config = self.agents.get(subagent_type)
        if config is None:
            allowed = ", ".join(f"`{name}`" for name in sorted(self.agents))
            return TaskResult(
                task_id=task_id,
                subagent_type=subagent_type,
                status="error",
                error=f"Unknown subagent type `{subagent_type}`. Allowed types: {allowed}",
                description=description,
            )

        steps = max_steps or config.max_steps or self.max_steps
        child = state.fork()
        emit(self.on_event, SUBAGENT_START, task_id=task_id, subagent_type=subagent_type, description=description)
        logger.info("Starting subagent %s (%s)", subagent_type, task_id)

        messages: list[BaseMessage] = [HumanMessage(content=description)]
        status = "completed"
        error: str | None = None
        try:
            messages = self.invoker.invoke(
                messages,
                self.middleware_factory(child, config),
                build_system_prompt(config.system_prompt, include_task=False),
                max_steps=steps,
                model=config.model,
            )
        except SandboxViolationError:
            raise
        except StepLimitExceededError as e:
            status, error = "timeout", str(e)
        except DeepStateError as e:
            status, error = "error", str(e)
        except Exception as e:
            logger.exception("Subagent %s crashed", subagent_type)
            status, error = "error", f"{type(e).__name__}: {e}"
        finally:
            merge_subagent_files(state, child)

        if error:
            logger.warning("Subagent %s (%s) ended with %s: %s", subagent_type, task_id, status, error)

        result = TaskResult(
            task_id=task_id,
            subagent_type=subagent_type,
            status=status,
            result=final_text(messages) if status == "completed" else None,
            error=error,
            description=description,
            steps_used=count_model_steps(messages),
        )
        emit(
            self.on_event,
            SUBAGENT_FINISH,
            task_id=task_id,
            subagent_type=subagent_type,
            status=status,
            result=result.to_tool_content(),
        )
        return result
