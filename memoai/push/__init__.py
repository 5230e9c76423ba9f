"""
Pushes: bounded, trackable review sessions.

Components:
- Push / PushMessage / PushEvaluation: session data model
- PushScheduler: refresh selection and the session state machine
- PushEvents: "pushes changed" notifications
"""

from .events import PushEvents
from .models import (
    EvaluationMethod,
    MessageSender,
    Push,
    PushConfig,
    PushEvaluation,
    PushMessage,
    PushState,
    RefreshStats,
)
from .scheduler import PushScheduler

__all__ = [
    "EvaluationMethod",
    "MessageSender",
    "Push",
    "PushConfig",
    "PushEvaluation",
    "PushEvents",
    "PushMessage",
    "PushScheduler",
    "PushState",
    "RefreshStats",
]
