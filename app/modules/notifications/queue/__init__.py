"""Per-channel delivery queues: broker, rate limiting, batching and workers.

Import from the submodules directly, e.g.
``from modules.notifications.queue.orchestrator import DeliveryQueueOrchestrator``.
"""
