"""
Video Job Services

- video_generation: provider adapters, registry, job store, pricing, submission
- streaming: SSE job progress poller
- scheduler: recurring generation schedules
- orchestrator: application wiring and HTTP API
"""
