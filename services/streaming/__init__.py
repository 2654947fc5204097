"""
SSE Progress Streaming Service

Relays video job progress to clients over Server-Sent Events.

Usage:
    poller = JobPoller(registry, job_store, blob_store)
    events = await poller.open(job_id, user_id=user_id)
    async for event in events:
        yield event.to_sse()

    # From a terminal
    curl -N -H "X-User-Id: user-1" http://localhost:8765/api/video/{job_id}/stream
"""

from .poller import JobPoller, ProgressEvent

__all__ = [
    "JobPoller",
    "ProgressEvent",
]
