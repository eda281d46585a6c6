"""Typed errors raised by backends, savers and the subagent runner."""

from __future__ import annotations


class DeepStateError(Exception):
    """Base class for all deepstate errors."""


class NotFoundError(DeepStateError):
    """Missing path, missing edit target, or unknown thread."""


class ConflictError(DeepStateError):
    """Edit target matched more than once."""


class ValidationError(DeepStateError, ValueError):
    """Malformed input: bad checkpoint document, bad regex, bad offset."""


class SandboxViolationError(DeepStateError):
    """A resolved path escapes the configured root directory.

    Never converted into a tool result; always propagates.
    """


class FileAccessError(DeepStateError):
    """The operating system refused a read, write or listing."""


class UpstreamFailureError(DeepStateError):
    """A collaborator call (model, subagent loop) failed."""


class StepLimitExceededError(UpstreamFailureError):
    """A model loop ran out of steps before finishing."""

    def __init__(self, max_steps: int, message: str | None = None):
        self.max_steps = max_steps
        super().__init__(message or f"Step limit of {max_steps} reached before completion")


class ApprovalRequiredError(DeepStateError):
    """A tool call needs human approval and no approver is attached.

    Stops the turn; the pending call is saved with the checkpoint so the
    thread can be resumed with an approve or deny decision.
    """

    def __init__(self, tool_call: dict):
        self.tool_call = tool_call
        super().__init__(f"Tool call {tool_call.get('name')} ({tool_call.get('id')}) requires approval")


__all__ = [
    "ApprovalRequiredError",
    "DeepStateError",
    "NotFoundError",
    "ConflictError",
    "FileAccessError",
    "ValidationError",
    "SandboxViolationError",
    "UpstreamFailureError",
    "StepLimitExceededError",
]
