"""Client-side tracking agent."""

from .analytics import Analytics, CommandBuffer, bootstrap
from .browser import Window
from .core import CONFIG, AgentConfig, AnalyticsEvent, EventBatch
from .queue import EventQueue
from .transport import EventTransport

__all__ = [
    "Analytics",
    "AgentConfig",
    "AnalyticsEvent",
    "CONFIG",
    "CommandBuffer",
    "EventBatch",
    "EventQueue",
    "EventTransport",
    "Window",
    "bootstrap",
]
