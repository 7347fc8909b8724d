"""Tests for notification channel implementations and the dispatcher."""

import asyncio
import hashlib
import hmac
import logging

import aiohttp
import pytest

from src.alerting.channels.base import DeliveryResult, Notifier, alert_subject, encode_payload
from src.alerting.channels.dispatcher import NotificationDispatcher, build_dispatcher
from src.alerting.channels.email import EmailNotifier
from src.alerting.channels.in_app import InAppNotifier
from src.alerting.channels.pagerduty import PagerDutyNotifier
from src.alerting.channels.slack import SlackNotifier
from src.alerting.channels.sms import SMS_MAX_LENGTH, SMSNotifier, format_sms
from src.alerting.channels.webhook import SIGNATURE_HEADER, WebhookNotifier, sign_payload
from src.alerting.config import AlertSeverity, ChannelType
from src.alerting.models import NotificationChannel, SystemAlert
from src.settings import Settings


def _alert(severity=AlertSeverity.CRITICAL, description="Memory at 95%"):
    return SystemAlert(
        alert_type="critical_memory_usage",
        severity=severity,
        title="Critical Memory Usage",
        description=description,
        source_service="db-1",
    )


class FakePoster:
    """Records posted requests and answers with a fixed status."""

    def __init__(self, status=200, exc=None):
        self.status = status
        self.exc = exc
        self.requests = []

    async def __call__(self, url, payload, headers, timeout_seconds):
        self.requests.append({"url": url, "payload": payload, "headers": headers})
        if self.exc is not None:
            raise self.exc
        return self.status


# ── Shared helpers ───────────────────────────────────────────────────


class TestBase:
    def test_subject(self):
        assert alert_subject(_alert()) == "[CRITICAL] Critical Memory Usage"

    def test_encode_payload_is_canonical(self):
        assert encode_payload({"b": 1, "a": 2}) == b'{"a":2,"b":1}'

    def test_notifiers_satisfy_protocol(self):
        for notifier in (
            EmailNotifier(), SlackNotifier(), WebhookNotifier(),
            SMSNotifier(), PagerDutyNotifier(), InAppNotifier(),
        ):
            assert isinstance(notifier, Notifier)


# ── Email ────────────────────────────────────────────────────────────


class TestEmailNotifier:
    @pytest.mark.asyncio
    async def test_demo_mode_without_host(self):
        notifier = EmailNotifier()
        result = await notifier.send(_alert(), {"template": "critical_alert"}, ["oncall@company.com"])
        assert result.success
        assert notifier.sent[0]["demo"] is True
        assert notifier.sent[0]["subject"] == "[CRITICAL] Critical Memory Usage"

    @pytest.mark.asyncio
    async def test_requires_recipients(self):
        result = await EmailNotifier().send(_alert(), {}, [])
        assert result.success is False

    def test_message_contents(self):
        msg = EmailNotifier(sender="alerts@skc.io").build_message(
            _alert(), {"template": "executive_alert"}, ["a@x.io", "b@x.io"]
        )
        assert msg["To"] == "a@x.io, b@x.io"
        assert msg["From"] == "alerts@skc.io"
        assert msg["X-Alert-Template"] == "executive_alert"
        assert "Memory at 95%" in msg.get_content()

    @pytest.mark.asyncio
    async def test_smtp_failure_is_reported(self, monkeypatch):
        notifier = EmailNotifier(smtp_host="smtp.invalid")

        def _boom(msg):
            raise OSError("connection refused")

        monkeypatch.setattr(notifier, "_deliver", _boom)
        result = await notifier.send(_alert(), {}, ["oncall@company.com"])
        assert result.success is False
        assert "connection refused" in result.error


# ── Slack ────────────────────────────────────────────────────────────


class TestSlackNotifier:
    def test_payload(self):
        payload = SlackNotifier().build_payload(
            _alert(), {"channel": "#critical-alerts", "mention": "@channel"}
        )
        assert payload["text"].startswith("@channel :fire: Critical Memory Usage")
        assert payload["channel"] == "#critical-alerts"
        assert "Service: db-1" in payload["blocks"][1]["elements"][0]["text"]

    @pytest.mark.asyncio
    async def test_demo_mode(self):
        notifier = SlackNotifier()
        result = await notifier.send(_alert(), {}, [])
        assert result.success
        assert notifier.sent[0]["demo"] is True

    @pytest.mark.asyncio
    async def test_posts_to_configured_url(self):
        poster = FakePoster()
        notifier = SlackNotifier(webhook_url="https://hooks.slack.test/T/B/X", poster=poster)
        result = await notifier.send(_alert(), {}, [])
        assert result.success
        assert poster.requests[0]["url"] == "https://hooks.slack.test/T/B/X"

    @pytest.mark.asyncio
    async def test_http_error(self):
        notifier = SlackNotifier(webhook_url="https://hooks.slack.test/x", poster=FakePoster(500))
        result = await notifier.send(_alert(), {}, [])
        assert result.success is False
        assert result.error == "Slack HTTP 500"


# ── Webhook ──────────────────────────────────────────────────────────


class TestWebhookNotifier:
    @pytest.mark.asyncio
    async def test_signed_delivery(self):
        poster = FakePoster()
        notifier = WebhookNotifier(poster=poster)
        result = await notifier.send(
            _alert(), {"url": "https://example.com/hook", "secret": "s3cret"}, []
        )
        assert result.success
        request = poster.requests[0]
        assert request["payload"]["event"] == "alert.escalated"
        expected = hmac.new(
            b"s3cret", encode_payload(request["payload"]), hashlib.sha256
        ).hexdigest()
        assert request["headers"][SIGNATURE_HEADER] == expected
        assert sign_payload("s3cret", request["payload"]) == expected

    @pytest.mark.asyncio
    async def test_unsigned_without_secret(self):
        poster = FakePoster()
        await WebhookNotifier(poster=poster).send(_alert(), {"url": "https://example.com/hook"}, [])
        assert SIGNATURE_HEADER not in poster.requests[0]["headers"]

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        poster = FakePoster()
        result = await WebhookNotifier(poster=poster).send(_alert(), {"url": "ftp://nope"}, [])
        assert result.success is False
        assert poster.requests == []

    @pytest.mark.asyncio
    async def test_connection_error(self):
        poster = FakePoster(exc=aiohttp.ClientConnectionError("refused"))
        result = await WebhookNotifier(poster=poster).send(
            _alert(), {"url": "https://example.com/hook"}, []
        )
        assert result.success is False

    @pytest.mark.asyncio
    async def test_timeout(self):
        poster = FakePoster(exc=asyncio.TimeoutError())
        result = await WebhookNotifier(poster=poster).send(
            _alert(), {"url": "https://example.com/hook"}, []
        )
        assert result.success is False


# ── SMS ──────────────────────────────────────────────────────────────


class TestSMSNotifier:
    def test_format_truncates(self):
        body = format_sms(_alert(description="x" * 500))
        assert len(body) == SMS_MAX_LENGTH
        assert body.endswith("...")

    @pytest.mark.asyncio
    async def test_demo_mode(self):
        notifier = SMSNotifier()
        result = await notifier.send(_alert(), {}, ["+15551234567"])
        assert result.success
        assert notifier.sent[0]["demo"] is True

    @pytest.mark.asyncio
    async def test_sends_only_to_phone_numbers(self):
        requests = []

        async def poster(url, form, auth, timeout_seconds):
            requests.append(form)
            return 201

        notifier = SMSNotifier("AC1", "token", "+15550000000", poster=poster)
        result = await notifier.send(_alert(), {}, ["+15551234567", "team@company.com"])
        assert result.success
        assert [r["To"] for r in requests] == ["+15551234567"]

    @pytest.mark.asyncio
    async def test_no_valid_numbers(self):
        notifier = SMSNotifier("AC1", "token", "+15550000000", poster=FakePoster())
        result = await notifier.send(_alert(), {}, ["team@company.com"])
        assert result.success is False


# ── PagerDuty ────────────────────────────────────────────────────────


class TestPagerDutyNotifier:
    def test_event(self):
        alert = _alert()
        event = PagerDutyNotifier(routing_key="rk").build_event(alert, {"service_key": "critical-incidents"})
        assert event["routing_key"] == "rk"
        assert event["dedup_key"] == alert.id
        assert event["payload"]["severity"] == "critical"
        assert event["payload"]["group"] == "critical-incidents"

    @pytest.mark.asyncio
    async def test_demo_without_routing_key(self):
        notifier = PagerDutyNotifier()
        result = await notifier.send(_alert(), {}, [])
        assert result.success
        assert notifier.sent[0]["demo"] is True

    @pytest.mark.asyncio
    async def test_posts_event(self):
        poster = FakePoster(202)
        notifier = PagerDutyNotifier(routing_key="rk", poster=poster)
        result = await notifier.send(_alert(AlertSeverity.HIGH), {}, [])
        assert result.success
        assert poster.requests[0]["payload"]["payload"]["severity"] == "error"


# ── In-app ───────────────────────────────────────────────────────────


class TestInAppNotifier:
    @pytest.mark.asyncio
    async def test_inbox(self):
        notifier = InAppNotifier()
        await notifier.send(_alert(), {}, ["ops", "lead"])
        (item,) = notifier.inbox("ops")
        assert item.title == "Critical Memory Usage"
        assert notifier.mark_read("ops", item.id)
        assert notifier.inbox("ops", unread_only=True) == []
        assert len(notifier.inbox("lead")) == 1

    @pytest.mark.asyncio
    async def test_inbox_is_bounded(self):
        notifier = InAppNotifier(max_per_recipient=3)
        for _ in range(5):
            await notifier.send(_alert(), {}, ["ops"])
        assert len(notifier.inbox("ops")) == 3


# ── Dispatcher ───────────────────────────────────────────────────────


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_dispatch_routes_by_type(self):
        inbox = InAppNotifier()
        dispatcher = NotificationDispatcher([inbox])
        result = await dispatcher.dispatch(
            NotificationChannel(type=ChannelType.IN_APP), _alert(), ["ops"]
        )
        assert result.success
        assert result.channel == "in_app"

    @pytest.mark.asyncio
    async def test_unregistered_type(self):
        dispatcher = NotificationDispatcher([InAppNotifier()])
        result = await dispatcher.dispatch(
            NotificationChannel(type=ChannelType.SMS), _alert(), ["+15551234567"]
        )
        assert result == DeliveryResult(
            success=False,
            channel="sms",
            error="Unknown notification channel type: sms",
            delivered_at=result.delivered_at,
        )

    @pytest.mark.asyncio
    async def test_send_test_defaults_recipient(self):
        inbox = InAppNotifier()
        dispatcher = NotificationDispatcher([inbox])
        await dispatcher.send_test(NotificationChannel(type=ChannelType.IN_APP))
        assert inbox.inbox("test@example.com")[0].title == "Test Notification"

    def test_build_dispatcher_wires_every_channel(self):
        dispatcher = build_dispatcher(Settings(slack_webhook_url="https://hooks.slack.test/x"))
        assert set(dispatcher.available_channels) == set(ChannelType)
        assert dispatcher.get(ChannelType.SLACK).is_configured()
        assert not dispatcher.get(ChannelType.PAGERDUTY).is_configured()

    @pytest.mark.asyncio
    async def test_dispatch_is_timed(self, caplog):
        dispatcher = NotificationDispatcher([InAppNotifier()])
        with caplog.at_level(logging.DEBUG, logger="src.logging_config.performance"):
            await dispatcher.dispatch(NotificationChannel(type=ChannelType.IN_APP), _alert(), ["ops"])
        assert any(
            r.name == "src.logging_config.performance" and "dispatch in_app" in r.getMessage()
            for r in caplog.records
        )
