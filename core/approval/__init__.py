"""Approval middleware - human-in-the-loop tool gating."""

from .middleware import REJECTED_TOOL_RESULT, ApprovalMiddleware, rejection_message

__all__ = ["ApprovalMiddleware", "rejection_message", "REJECTED_TOOL_RESULT"]
