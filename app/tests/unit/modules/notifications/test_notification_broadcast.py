"""Unit tests for BroadcastResolver."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from modules.notifications.broadcast import BroadcastResolver
from modules.notifications.directory import DirectoryUser, InMemoryUserDirectory
from modules.notifications.domain.errors import DuplicateError, ValidationError
from modules.notifications.domain.types import BroadcastOutcome, NotificationType

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

MESSAGE = {
    "type": "SYSTEM_ANNOUNCEMENT",
    "title": "Scheduled maintenance",
    "content": "The platform is unavailable on Sunday from 02:00 to 03:00",
    "channels": ["IN_APP", "EMAIL"],
}


@pytest.fixture
def directory():
    return InMemoryUserDirectory(
        [
            DirectoryUser("u1", role="customer", location="paris"),
            DirectoryUser("u2", role="customer", location="lyon"),
            DirectoryUser("u3", role="vendor", location="paris"),
            DirectoryUser("u4", role="admin", location="nice"),
            DirectoryUser("u5", role="customer", location="paris", active=False),
        ]
    )


@pytest.fixture
def create_fn(notification_factory):
    def _create(request, preferences, now):
        return notification_factory(user_id=request.user_id)

    return MagicMock(side_effect=_create)


@pytest.fixture
def broadcasts(directory, resolver, create_fn):
    return BroadcastResolver(directory, resolver, create_fn)


@pytest.mark.unit
class TestResolveAudience:
    def test_explicit_user_ids_taken_as_given(self, broadcasts):
        audience = broadcasts.resolve_audience(
            {"user_ids": ["u2", "guest-9", "u1", "u2"]}
        )

        assert audience == ["u2", "guest-9", "u1"]

    def test_all_active_users(self, broadcasts):
        assert broadcasts.resolve_audience({"all": True}) == ["u1", "u2", "u3", "u4"]

    def test_roles_and_locations_union(self, broadcasts):
        audience = broadcasts.resolve_audience(
            {"roles": ["admin"], "locations": ["paris"]}
        )

        assert audience == ["u4", "u1", "u3"]

    def test_user_ids_take_precedence(self, broadcasts):
        assert broadcasts.resolve_audience({"user_ids": ["u3"], "all": True}) == ["u3"]

    def test_empty_segment_rejected(self, broadcasts):
        with pytest.raises(ValidationError):
            broadcasts.resolve_audience({})


@pytest.mark.unit
class TestSendBroadcast:
    def test_every_recipient_sent(self, broadcasts, create_fn):
        result = broadcasts.send_broadcast(MESSAGE, {"all": True}, NOW)

        assert result.total_recipients == 4
        assert result.sent == 4
        assert result.suppressed == 0
        assert result.failed == 0
        assert len(result.details) == 4
        assert create_fn.call_count == 4

    def test_recipients_without_channels_suppressed(self, broadcasts, resolver, create_fn):
        for user_id in ("u1", "u3"):
            resolver.update_channel_preferences(
                user_id, NotificationType.SYSTEM_ANNOUNCEMENT, []
            )

        result = broadcasts.send_broadcast(MESSAGE, {"all": True}, NOW)

        assert (result.sent, result.suppressed, result.failed) == (2, 2, 0)
        assert len(result.details) == result.total_recipients
        suppressed = [d.user_id for d in result.details if d.outcome == BroadcastOutcome.SUPPRESSED]
        assert suppressed == ["u1", "u3"]
        assert create_fn.call_count == 2

    def test_failures_do_not_stop_broadcast(self, broadcasts, create_fn, notification_factory):
        def _create(request, preferences, now):
            if request.user_id == "u2":
                raise DuplicateError()
            if request.user_id == "u4":
                raise RuntimeError("store offline")
            return notification_factory(user_id=request.user_id)

        create_fn.side_effect = _create

        result = broadcasts.send_broadcast(MESSAGE, {"all": True}, NOW)

        assert (result.sent, result.suppressed, result.failed) == (2, 0, 2)
        failed = {d.user_id: d.error for d in result.details if d.outcome == BroadcastOutcome.FAILED}
        assert set(failed) == {"u2", "u4"}
        assert failed["u4"] == "store offline"

    def test_invalid_message_rejected(self, broadcasts):
        with pytest.raises(ValidationError):
            broadcasts.send_broadcast({**MESSAGE, "channels": []}, {"all": True}, NOW)

    def test_sent_detail_carries_notification(self, broadcasts):
        result = broadcasts.send_broadcast(MESSAGE, {"user_ids": ["u1"]}, NOW)

        (detail,) = result.details
        assert detail.outcome == BroadcastOutcome.SENT
        assert detail.notification_id is not None
        assert detail.channels
