"""Task middleware - Sub-agent orchestration."""

from .invoker import LangChainInvoker, ModelInvoker, count_model_steps
from .middleware import TaskMiddleware
from .subagent import GENERAL_PURPOSE, SubagentRunner, general_purpose_config
from .types import AgentConfig, TaskParams, TaskResult

__all__ = [
    "TaskMiddleware",
    "SubagentRunner",
    "ModelInvoker",
    "LangChainInvoker",
    "count_model_steps",
    "GENERAL_PURPOSE",
    "general_purpose_config",
    "AgentConfig",
    "TaskParams",
    "TaskResult",
]
