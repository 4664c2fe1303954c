"""User notification module.

Creates notifications under per-user delivery preferences, fans them out to
per-channel delivery queues, and tracks their status until they are read or
expire.

Entry point: ``modules.notifications.service.create_notification_service``.
"""
