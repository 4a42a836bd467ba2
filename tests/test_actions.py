"""Tests for action templating, transports and dispatch."""

import smtplib
import sys
from unittest.mock import MagicMock, patch

import pytest
import requests

sys.path.insert(0, "src")

from conftest import RecordingTransport

from ghostwatch.actions.base import ActionMessage
from ghostwatch.actions.dispatcher import ActionDispatcher, DispatchJob
from ghostwatch.actions.templating import placeholders, render_template
from ghostwatch.actions.transports import (
    DiscordTransport,
    EmailTransport,
    NotificationTransport,
    WebhookTransport,
)
from ghostwatch.errors import ActionDispatchError
from ghostwatch.rules.models import Action, ActionType, Rule


def make_message(**config):
    return ActionMessage(
        action_type="WEBHOOK",
        message="alert",
        record={"username": "botuser", "ghostScore": 91},
        config=config,
        rule_id="r1",
        rule_name="High ghosts",
        owner_id="owner-1",
    )


class TestTemplating:
    """Tests for render_template."""

    def test_renders_known_fields(self):
        text = render_template("{{username}} scored {{ghostScore}}", {"username": "x", "ghostScore": 91})
        assert text == "x scored 91"

    def test_unknown_placeholder_renders_empty(self):
        assert render_template("hi {{nope}}!", {"a": 1}) == "hi !"

    def test_nested_and_whitespace(self):
        assert render_template("{{ stats.score }}", {"stats": {"score": 2.5}}) == "2.5"

    def test_empty_template(self):
        assert render_template(None, {}) == ""

    def test_placeholders(self):
        assert placeholders("{{a}} and {{b.c}}") == ["a", "b.c"]


class TestWebhookTransport:
    """Tests for WebhookTransport."""

    def test_posts_json_payload(self):
        client = MagicMock()
        client.post.return_value = MagicMock(ok=True, status_code=200)
        with patch("ghostwatch.actions.transports.webhook.get_sync_client", return_value=client):
            WebhookTransport(timeout=3).send(make_message(url="https://example.com/hook"))

        args, kwargs = client.post.call_args
        assert args[0] == "https://example.com/hook"
        assert kwargs["timeout"] == 3
        assert b'"message": "alert"' in kwargs["data"]
        assert b'"rule": {"id": "r1"' in kwargs["data"]

    def test_non_2xx_raises(self):
        client = MagicMock()
        client.post.return_value = MagicMock(ok=False, status_code=500)
        with patch("ghostwatch.actions.transports.webhook.get_sync_client", return_value=client):
            with pytest.raises(ActionDispatchError) as exc:
                WebhookTransport().send(make_message(url="https://example.com/hook"))
        assert exc.value.status_code == 500

    def test_network_error_raises(self):
        client = MagicMock()
        client.post.side_effect = requests.exceptions.ConnectionError("refused")
        with patch("ghostwatch.actions.transports.webhook.get_sync_client", return_value=client):
            with pytest.raises(ActionDispatchError):
                WebhookTransport().send(make_message(url="https://example.com/hook"))

    def test_missing_url_raises(self):
        with pytest.raises(ActionDispatchError):
            WebhookTransport().send(make_message())


class TestDiscordTransport:
    """Tests for DiscordTransport."""

    def test_uses_default_url_and_embed(self):
        client = MagicMock()
        client.post.return_value = MagicMock(status_code=204)
        transport = DiscordTransport(default_webhook_url="https://discord.test/hook")
        with patch("ghostwatch.actions.transports.discord.get_sync_client", return_value=client):
            transport.send(make_message())

        args, kwargs = client.post.call_args
        assert args[0] == "https://discord.test/hook"
        embed = kwargs["json"]["embeds"][0]
        assert embed["description"] == "alert"
        assert {"name": "username", "value": "botuser", "inline": True} in embed["fields"]

    def test_no_url_raises(self):
        with pytest.raises(ActionDispatchError):
            DiscordTransport().send(make_message())


class TestEmailTransport:
    """Tests for EmailTransport."""

    def test_sends_via_smtp(self):
        transport = EmailTransport(smtp_host="smtp.test", username="u", password="p")
        with patch("ghostwatch.actions.transports.email_channel.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            transport.send(make_message(recipients=["ops@example.com"], subject="Ghosts"))

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("u", "p")
        from_addr, to_addrs, body = server.sendmail.call_args[0]
        assert to_addrs == ["ops@example.com"]
        assert "Subject: Ghosts" in body

    def test_smtp_failure_raises(self):
        transport = EmailTransport(smtp_host="smtp.test")
        with patch("ghostwatch.actions.transports.email_channel.smtplib.SMTP") as smtp_cls:
            smtp_cls.side_effect = smtplib.SMTPException("down")
            with pytest.raises(ActionDispatchError):
                transport.send(make_message(recipients="ops@example.com"))

    def test_unconfigured_host_raises(self):
        with pytest.raises(ActionDispatchError):
            EmailTransport(smtp_host=None).send(make_message(recipients=["a@b.c"]))


class TestNotificationTransport:
    """Tests for NotificationTransport."""

    def test_writes_to_store(self, store):
        NotificationTransport(store).send(make_message())
        notifications = store.list_notifications("owner-1")
        assert len(notifications) == 1
        assert notifications[0].message == "alert"
        assert notifications[0].payload["username"] == "botuser"


class TestActionDispatcher:
    """Tests for ActionDispatcher."""

    @pytest.fixture
    def rule(self):
        return Rule(name="r", owner_id="owner-1")

    def test_success_result(self, rule):
        transport = RecordingTransport()
        dispatcher = ActionDispatcher()
        dispatcher.register(ActionType.WEBHOOK, transport)
        action = Action(type=ActionType.WEBHOOK, config={"url": "https://x", "message": "{{username}}!"})

        result = dispatcher.dispatch(action, {"username": "botuser"}, rule=rule)

        assert result.success is True
        assert result.error is None
        assert transport.sent[0].message == "botuser!"
        assert transport.sent[0].owner_id == "owner-1"

    def test_transport_error_is_captured(self, rule):
        dispatcher = ActionDispatcher()
        dispatcher.register(ActionType.WEBHOOK, RecordingTransport(fail=True))
        result = dispatcher.dispatch(Action(type=ActionType.WEBHOOK), {}, rule=rule)
        assert result.success is False
        assert result.error == "boom"

    def test_unexpected_exception_is_captured(self, rule):
        transport = MagicMock()
        transport.send.side_effect = RuntimeError("kaput")
        transport.name.return_value = "broken"
        dispatcher = ActionDispatcher()
        dispatcher.register(ActionType.EMAIL, transport)
        result = dispatcher.dispatch(Action(type=ActionType.EMAIL), {}, rule=rule)
        assert result.success is False
        assert "kaput" in result.error

    def test_missing_transport_is_failure(self):
        result = ActionDispatcher().dispatch(Action(type=ActionType.EMAIL), {})
        assert result.success is False

    def test_dispatch_many_keeps_order_and_isolates_failures(self, rule):
        dispatcher = ActionDispatcher(max_workers=4)
        dispatcher.register(ActionType.WEBHOOK, RecordingTransport())
        dispatcher.register(ActionType.EMAIL, RecordingTransport(fail=True))
        jobs = [
            DispatchJob(0, Action(type=ActionType.WEBHOOK), {"i": 0}, 0),
            DispatchJob(1, Action(type=ActionType.EMAIL), {"i": 0}, 0),
            DispatchJob(0, Action(type=ActionType.WEBHOOK), {"i": 1}, 1),
            DispatchJob(1, Action(type=ActionType.EMAIL), {"i": 1}, 1),
        ]
        try:
            results = dispatcher.dispatch_many(jobs, rule=rule)
        finally:
            dispatcher.shutdown()
        assert [r.success for r in results] == [True, False, True, False]
        assert [(r.action_index, r.record_index) for r in results] == [(0, 0), (1, 0), (0, 1), (1, 1)]

    def test_pool_is_reused_until_shutdown(self, rule):
        dispatcher = ActionDispatcher(max_workers=2)
        dispatcher.register(ActionType.WEBHOOK, RecordingTransport())
        jobs = [DispatchJob(0, Action(type=ActionType.WEBHOOK), {"i": i}, i) for i in range(3)]

        dispatcher.dispatch_many(jobs, rule=rule)
        pool = dispatcher._pool
        dispatcher.dispatch_many(jobs, rule=rule)
        assert dispatcher._pool is pool
        assert dispatcher.is_running

        dispatcher.shutdown()
        assert not dispatcher.is_running
        assert len(dispatcher.dispatch_many(jobs, rule=rule)) == 3
        dispatcher.shutdown()
