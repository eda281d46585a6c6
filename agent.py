"""
DeepState - Agent runtime with checkpointed conversation state

Middleware-based tool implementation:
- ApprovalMiddleware: human-in-the-loop gate for selected tools
- EvictionMiddleware: oversized tool results moved to the backend
- MemoryMiddleware: tool-call patching + summarization per model request
- FileSystemMiddleware: ls, read_file, write_file, edit_file, glob, grep
- TodoMiddleware: write_todos
- SkillsMiddleware: load_skill (only when SKILL.md files are found)
- TaskMiddleware: task (synchronous subagents on a forked state)

Every step of a turn is checkpointed under its thread id, so a crashed or
interrupted turn resumes from the last completed step.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from langchain_core.messages import BaseMessage, HumanMessage, ToolMessage

from config.loader import AgentLoader
from config.schema import DeepStateSettings, RouteConfig
from config.types import AgentConfig, SkillMetadata
from core.approval import ApprovalMiddleware, rejection_message
from core.approval.middleware import ApprovalCallback, ApprovalRule
from core.backends import (
    BackendFactory,
    BackendProtocol,
    CompositeBackend,
    FilesystemBackend,
    InMemoryStore,
    KeyValueStore,
    PersistentBackend,
    StateBackend,
    resolve_backend,
)
from core.checkpoint import BaseCheckpointSaver, Checkpoint, FileSaver, InterruptData, KeyValueSaver, MemorySaver
from core.errors import ApprovalRequiredError, DeepStateError, ValidationError
from core.events import APPROVAL_RESPONSE, CHECKPOINT_LOADED, CHECKPOINT_SAVED, EventCallback, emit
from core.eviction import EvictionMiddleware
from core.filesystem import FileSystemMiddleware
from core.memory import MemoryMiddleware, patch_tool_calls, summarize_if_needed
from core.model_catalog import create_chat_model
from core.prompts import build_system_prompt
from core.skills import SkillsMiddleware
from core.state import AgentState
from core.task import LangChainInvoker, ModelInvoker, SubagentRunner, TaskMiddleware, count_model_steps
from core.task.subagent import final_text
from core.todo import TodoMiddleware
from storage import SQLiteKeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """Outcome of one ``DeepStateAgent.run`` call."""

    thread_id: str
    messages: list[BaseMessage]
    state: AgentState
    step: int
    interrupt: InterruptData | None = None

    @property
    def interrupted(self) -> bool:
        return self.interrupt is not None

    @property
    def response(self) -> str:
        return final_text(self.messages)


def _resume_approved(resume: Any) -> bool:
    """Accept "approve"/"deny", a bool, or ``{"decisions": [{"type": ...}]}``."""
    if isinstance(resume, bool):
        return resume
    if isinstance(resume, str):
        decision = resume
    elif isinstance(resume, Mapping):
        decisions = resume.get("decisions") or [resume]
        decision = decisions[0].get("type") if isinstance(decisions[0], Mapping) else None
    else:
        decision = None
    if decision not in ("approve", "deny"):
        raise ValidationError(f"Resume decision must be 'approve' or 'deny', got {resume!r}")
    return decision == "approve"


class DeepStateAgent:
    """
    DeepState Agent - turn orchestrator

    One instance owns one AgentState object. Loading a checkpoint mutates it
    in place, so backends and middleware holding the state stay valid.
    """

    def __init__(
        self,
        model: str | Any | None = None,
        workspace_root: str | Path | None = None,
        *,
        settings: DeepStateSettings | None = None,
        cli_overrides: dict[str, Any] | None = None,
        invoker: ModelInvoker | None = None,
        backend: BackendProtocol | BackendFactory | None = None,
        checkpointer: BaseCheckpointSaver | None = None,
        subagents: dict[str, AgentConfig] | None = None,
        skills: list[SkillMetadata] | None = None,
        interrupt_on: Mapping[str, ApprovalRule] | None = None,
        on_approval_request: ApprovalCallback | None = None,
        summarization_model: Any = None,
        on_event: EventCallback | None = None,
    ):
        """
        Initialize DeepState Agent

        Args:
            model: Model as provider/name string or a chat model instance (defaults to settings.model)
            workspace_root: Workspace directory (project config and agents are read from .deepstate/)
            settings: Pre-built settings (skips config file loading)
            cli_overrides: Highest-priority config overrides
            invoker: Model loop collaborator (defaults to LangChainInvoker)
            backend: Storage for file tools, or a factory called with each state (defaults to settings.backend)
            checkpointer: Checkpoint saver (defaults to one built from settings.checkpoint)
            subagents: Extra subagent definitions, overriding .md-defined ones by name
            skills: Extra skills, overriding discovered SKILL.md entries by name
            interrupt_on: Tool name -> bool or predicate over args; merged over settings.approval
            on_approval_request: Approver callback; without one, gated calls interrupt the turn
            summarization_model: Model for summaries (defaults to the invoker's chat model)
            on_event: Optional observer for runtime events
        """
        self.workspace_root = Path(workspace_root).resolve() if workspace_root else None
        self._loader = AgentLoader(self.workspace_root)
        self.settings = settings or self._loader.load(cli_overrides)
        self.on_event = on_event
        self.state = AgentState()

        self.invoker = invoker or LangChainInvoker(model or self.settings.model, self.settings.model_kwargs)
        self._kv_store: KeyValueStore | None = None

        self._backend_source = backend
        self.backend = resolve_backend(backend, self.state) if backend is not None else self._build_backend(self.state)
        self.checkpointer = checkpointer or self._build_checkpointer()

        interrupt_rules: dict[str, ApprovalRule] = dict(self.settings.approval.interrupt_on)
        interrupt_rules.update(interrupt_on or {})
        self.interrupt_on = interrupt_rules
        self.on_approval_request = on_approval_request

        self._summarization_model = self._resolve_summarization_model(summarization_model)

        agents = self._loader.load_all_agents() if self.settings.subagents.enabled else {}
        agents.update(subagents or {})
        self.subagent_runner = SubagentRunner(
            invoker=self.invoker,
            agents=agents,
            middleware_factory=self._build_subagent_middleware,
            max_steps=self.settings.subagents.max_steps,
            on_event=self.on_event,
            include_general_purpose=self.settings.subagents.include_general_purpose,
        )

        discovered: dict[str, SkillMetadata] = {}
        if self.settings.skills.enabled:
            discovered = self._loader.load_all_skills()
            discovered.update({skill.name: skill for skill in skills or []})
        self._skills = list(discovered.values())
        self._skills_middleware = (
            SkillsMiddleware(self._skills, self.settings.skills.enabled_skills, on_event=self.on_event)
            if self._skills
            else None
        )

        self.system_prompt = build_system_prompt(
            self.settings.system_prompt or "",
            include_task=self.settings.subagents.enabled,
            skills=self._skills_middleware.skills if self._skills_middleware else None,
        )
        self.middleware = self._build_middleware_stack()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _store(self) -> KeyValueStore:
        if self._kv_store is None:
            database = self.settings.backend.database or self.settings.checkpoint.database
            self._kv_store = SQLiteKeyValueStore(database) if database else InMemoryStore()
        return self._kv_store

    def _root_dir(self, root_dir: str | None) -> str | None:
        if root_dir:
            return root_dir
        if self.settings.workspace_root:
            return self.settings.workspace_root
        return str(self.workspace_root) if self.workspace_root else None

    def _build_backend(self, state: AgentState) -> BackendProtocol:
        cfg = self.settings.backend
        if cfg.kind == "filesystem":
            default: BackendProtocol = FilesystemBackend(
                root_dir=self._root_dir(cfg.root_dir),
                virtual_mode=cfg.virtual_mode,
                max_file_size_mb=cfg.max_file_size_mb,
            )
        else:
            default = StateBackend(state)
        if not cfg.routes:
            return default
        routes = [(prefix, self._build_route(route, state)) for prefix, route in cfg.routes.items()]
        return CompositeBackend(default, routes)

    def _build_route(self, route: RouteConfig, state: AgentState) -> BackendProtocol:
        if route.kind == "persistent":
            return PersistentBackend(self._store(), namespace=route.namespace)
        if route.kind == "filesystem":
            return FilesystemBackend(
                root_dir=self._root_dir(route.root_dir),
                virtual_mode=self.settings.backend.virtual_mode,
                max_file_size_mb=self.settings.backend.max_file_size_mb,
            )
        return StateBackend(state)

    def _build_checkpointer(self) -> BaseCheckpointSaver:
        cfg = self.settings.checkpoint
        if cfg.saver == "file":
            return FileSaver(Path(cfg.directory).expanduser())
        if cfg.saver == "kv":
            store = SQLiteKeyValueStore(cfg.database) if cfg.database else self._store()
            return KeyValueSaver(store, namespace=cfg.namespace)
        return MemorySaver()

    def _resolve_summarization_model(self, model: Any) -> Any:
        if model is not None:
            return model
        if self.settings.summarization.model:
            return create_chat_model(self.settings.summarization.model, **self.settings.model_kwargs)
        return getattr(self.invoker, "chat_model", None)

    def _build_middleware_stack(self) -> list:
        """Build middleware stack (outermost first)."""
        middleware: list[Any] = []

        # 1. Approval wraps every tool call, so it sees them before any handler
        if self.interrupt_on:
            self._approval_middleware = ApprovalMiddleware(
                self.interrupt_on, self.on_approval_request, on_event=self.on_event
            )
            middleware.append(self._approval_middleware)
        else:
            self._approval_middleware = None

        # 2. Eviction post-processes results of every inner handler
        if self.settings.eviction.enabled:
            self._eviction_middleware = EvictionMiddleware(
                self.backend,
                token_limit=self.settings.eviction.token_limit,
                excluded_tools=self.settings.eviction.excluded_tools,
                on_event=self.on_event,
            )
            middleware.append(self._eviction_middleware)
        else:
            self._eviction_middleware = None

        # 3. Memory
        summarization = self.settings.summarization
        self._memory_middleware = MemoryMiddleware(
            model=self._summarization_model,
            token_threshold=summarization.token_threshold,
            keep_messages=summarization.keep_messages,
            summarization_enabled=summarization.enabled,
        )
        middleware.append(self._memory_middleware)

        # 4. FileSystem
        middleware.append(
            FileSystemMiddleware(
                self.backend,
                enabled_tools=self.settings.filesystem.model_dump(),
                on_event=self.on_event,
            )
        )

        # 5. Todo
        middleware.append(TodoMiddleware(self.state, on_event=self.on_event))

        # 6. Skills
        if self._skills_middleware is not None:
            middleware.append(self._skills_middleware)

        # 7. Task (sub-agent orchestration)
        if self.settings.subagents.enabled:
            middleware.append(TaskMiddleware(self.subagent_runner, self.state))

        return middleware

    def _build_subagent_middleware(self, state: AgentState, config: AgentConfig) -> list:
        """Middleware for one subagent run: no task tool, tools filtered by config.tools."""
        if self._backend_source is None:
            backend = self._build_backend(state)
        else:
            backend = resolve_backend(self._backend_source, state)
        middleware: list[Any] = []

        # Without an approver a subagent cannot pause, so gating needs the callback
        if self.interrupt_on and self.on_approval_request is not None:
            middleware.append(ApprovalMiddleware(self.interrupt_on, self.on_approval_request, on_event=self.on_event))
        if self.settings.eviction.enabled:
            middleware.append(
                EvictionMiddleware(
                    backend,
                    token_limit=self.settings.eviction.token_limit,
                    excluded_tools=self.settings.eviction.excluded_tools,
                    on_event=self.on_event,
                )
            )
        summarization = self.settings.summarization
        middleware.append(
            MemoryMiddleware(
                model=self._summarization_model,
                token_threshold=summarization.token_threshold,
                keep_messages=summarization.keep_messages,
                summarization_enabled=summarization.enabled,
            )
        )

        fs_tools = {
            name: enabled and config.allows_tool(name) for name, enabled in self.settings.filesystem.model_dump().items()
        }
        if any(fs_tools.values()):
            middleware.append(FileSystemMiddleware(backend, enabled_tools=fs_tools, on_event=self.on_event))
        if config.allows_tool(TodoMiddleware.TOOL_WRITE_TODOS):
            middleware.append(TodoMiddleware(state, on_event=self.on_event))
        if self._skills_middleware is not None and config.allows_tool(SkillsMiddleware.TOOL_LOAD_SKILL):
            middleware.append(self._skills_middleware)
        return middleware

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def _restore(self, thread_id: str) -> tuple[list[BaseMessage], int, InterruptData | None]:
        checkpoint = self.checkpointer.load(thread_id)
        if checkpoint is None:
            self.state.todos = []
            self.state.files.clear()
            return [], 0, None

        self.state.todos = list(checkpoint.state.todos)
        self.state.files.clear()
        self.state.files.update(checkpoint.state.files)
        emit(
            self.on_event,
            CHECKPOINT_LOADED,
            thread_id=thread_id,
            step=checkpoint.step,
            message_count=len(checkpoint.messages),
            interrupted=checkpoint.interrupt is not None,
        )
        logger.info("Restored thread %s at step %d", thread_id, checkpoint.step)
        return list(checkpoint.messages), checkpoint.step, checkpoint.interrupt

    def _save(
        self,
        thread_id: str,
        messages: list[BaseMessage],
        step: int,
        interrupt: InterruptData | None = None,
    ) -> None:
        snapshot = AgentState(todos=list(self.state.todos), files=dict(self.state.files))
        self.checkpointer.save(
            Checkpoint(thread_id=thread_id, messages=list(messages), state=snapshot, step=step, interrupt=interrupt)
        )
        emit(self.on_event, CHECKPOINT_SAVED, thread_id=thread_id, step=step, message_count=len(messages))
        logger.debug("Saved checkpoint for %s at step %d", thread_id, step)

    # ------------------------------------------------------------------
    # Approval resume
    # ------------------------------------------------------------------

    def _execute_tool_call(self, tool_call: dict) -> ToolMessage:
        """Run one tool call through the handlers outside the model loop."""
        result: ToolMessage | None = None
        for mw in self.middleware:
            if mw is self._approval_middleware:
                continue
            handle = getattr(mw, "_handle_tool_call", None)
            if handle is None:
                continue
            result = handle(tool_call)
            if result is not None:
                break

        if result is None:
            result = ToolMessage(
                content=f"Error: unknown tool {tool_call.get('name')}",
                tool_call_id=tool_call.get("id", ""),
                name=tool_call.get("name", ""),
                status="error",
            )
        if self._eviction_middleware is not None:
            result = self._eviction_middleware.process_result(tool_call, result)
        return result

    def _apply_resume(self, messages: list[BaseMessage], interrupt: InterruptData, approved: bool) -> list[BaseMessage]:
        tool_call = {
            "name": interrupt.tool_name,
            "args": interrupt.args,
            "id": interrupt.tool_call_id,
            "type": "tool_call",
        }
        emit(self.on_event, APPROVAL_RESPONSE, tool_call_id=interrupt.tool_call_id, approved=approved)
        if approved:
            logger.info("Approved %s (%s), executing", interrupt.tool_name, interrupt.tool_call_id)
            result = self._execute_tool_call(tool_call)
        else:
            logger.info("Denied %s (%s)", interrupt.tool_name, interrupt.tool_call_id)
            result = rejection_message(tool_call)
        return [*messages, result]

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    def _compact(self, messages: list[BaseMessage]) -> list[BaseMessage]:
        summarization = self.settings.summarization
        if not summarization.enabled or self._summarization_model is None:
            return messages
        result = summarize_if_needed(
            messages,
            self._summarization_model,
            token_threshold=summarization.token_threshold,
            keep_messages=summarization.keep_messages,
        )
        if result.summarized:
            logger.info("Summarized history: ~%d -> ~%d tokens", result.tokens_before, result.tokens_after)
        return result.messages

    def run(
        self,
        prompt: str | None = None,
        thread_id: str | None = None,
        resume: Any = None,
    ) -> TurnResult:
        """Run one turn on ``thread_id``.

        Args:
            prompt: New user message (may be omitted when resuming)
            thread_id: Thread to continue (a fresh id is generated when omitted)
            resume: Decision for a pending approval: "approve" / "deny"

        Returns:
            TurnResult; ``interrupt`` is set when a tool call awaits approval.

        Raises:
            ValidationError: neither prompt nor resume given, or a bad decision
            UpstreamFailureError: the model loop failed (the last step is checkpointed)
        """
        if not prompt and resume is None:
            raise ValidationError("Either prompt or resume is required")
        approved = _resume_approved(resume) if resume is not None else None
        thread_id = thread_id or uuid.uuid4().hex

        messages, step, interrupt = self._restore(thread_id)
        self._memory_middleware.reset()

        if interrupt is not None:
            if approved is None:
                logger.warning("Thread %s had a pending approval; treating it as interrupted", thread_id)
            else:
                messages = self._apply_resume(messages, interrupt, approved)
        elif approved is not None:
            logger.warning("Resume given for thread %s but nothing is pending", thread_id)

        if prompt:
            messages.append(HumanMessage(content=prompt))
        messages = self._compact(patch_tool_calls(messages))

        base_step = step
        base_model_steps = count_model_steps(messages)
        latest: list[BaseMessage] = messages
        current_step = step

        def on_step(snapshot: list[BaseMessage], steps: int) -> None:
            nonlocal latest, current_step
            latest = snapshot
            current_step = base_step + steps
            self._save(thread_id, snapshot, current_step)

        try:
            messages = self.invoker.invoke(
                messages,
                self.middleware,
                self.system_prompt,
                max_steps=self.settings.max_steps,
                on_step=on_step,
            )
        except ApprovalRequiredError as e:
            pending = InterruptData(
                tool_call_id=e.tool_call.get("id", ""),
                tool_name=e.tool_call.get("name", ""),
                args=e.tool_call.get("args", {}),
                step=current_step,
            )
            self._save(thread_id, latest, current_step, interrupt=pending)
            logger.info("Thread %s paused for approval of %s", thread_id, pending.tool_name)
            return TurnResult(thread_id, list(latest), self.state, current_step, interrupt=pending)
        except DeepStateError:
            self._save(thread_id, latest, current_step)
            raise

        step = base_step + count_model_steps(messages) - base_model_steps
        self._save(thread_id, messages, step)
        return TurnResult(thread_id, list(messages), self.state, step)

    def get_response(self, prompt: str, thread_id: str | None = None) -> str:
        """Get the agent's final text response for one turn."""
        return self.run(prompt, thread_id=thread_id).response


def create_deepstate_agent(
    model: str | Any | None = None,
    workspace_root: str | Path | None = None,
    **kwargs: Any,
) -> DeepStateAgent:
    """Create DeepState Agent.

    Examples:
        # Basic usage
        agent = create_deepstate_agent()

        # File-backed checkpoints
        agent = create_deepstate_agent(cli_overrides={"checkpoint": {"saver": "file", "directory": "~/.deepstate/threads"}})
    """
    return DeepStateAgent(model=model, workspace_root=workspace_root, **kwargs)
