"""
Video Job Orchestrator Service

Wires providers, stores, the streaming poller and the scheduler together and
exposes them over HTTP.
"""

from .context import AppContext, build_context, create_context

__all__ = [
    "AppContext",
    "build_context",
    "create_context",
]
