"""Tests for the email notifier and the background dispatcher."""

import asyncio
import logging
import smtplib

import pytest

from recipebox.core.exceptions import EmailDeliveryError
from recipebox.services.email_service import MockEmailService, SMTPEmailService, build_email_service
from recipebox.services.notification_dispatcher import NotificationDispatcher


@pytest.mark.unit
class TestMockEmailService:
    async def test_records_messages_and_returns_ids(self, settings):
        service = MockEmailService(settings)

        first = await service.send_welcome("bob@example.com", "Bob")
        second = await service.send_password_reset("bob@example.com", "Bob", "123456")

        assert first != second
        assert [email["id"] for email in service.sent_emails] == [first, second]
        assert "123456" in service.get_last_email()["body"]
        assert "123456" in service.get_last_email()["html"]

    async def test_verification_link_points_at_frontend(self, settings):
        service = MockEmailService(settings)
        await service.send_verification("bob@example.com", "Bob", "tok_abc")
        assert f"{settings.FRONTEND_URL}/verify-email?token=tok_abc" in service.get_last_email()["body"]

    async def test_instances_do_not_share_outbox(self, settings):
        a, b = MockEmailService(settings), MockEmailService(settings)
        await a.send_password_changed("bob@example.com", "Bob")
        assert b.sent_emails == []

    def test_build_picks_mock_without_smtp_host(self, settings):
        assert isinstance(build_email_service(settings), MockEmailService)
        smtp = build_email_service(settings.model_copy(update={"SMTP_HOST": "smtp.example.com"}))
        assert isinstance(smtp, SMTPEmailService)


@pytest.mark.unit
class TestSMTPEmailService:
    async def test_delivery_failure_raises(self, settings, monkeypatch):
        service = SMTPEmailService(settings.model_copy(update={"SMTP_HOST": "smtp.example.com"}))

        def refuse(to, msg):
            raise smtplib.SMTPRecipientsRefused({to: (550, b"no such user")})

        monkeypatch.setattr(service, "_deliver", refuse)
        with pytest.raises(EmailDeliveryError, match="bob@example.com"):
            await service.send_welcome("bob@example.com", "Bob")

    async def test_successful_delivery_returns_message_id(self, settings, monkeypatch):
        service = SMTPEmailService(settings.model_copy(update={"SMTP_HOST": "smtp.example.com"}))
        delivered = []
        monkeypatch.setattr(service, "_deliver", lambda to, msg: delivered.append((to, msg)))

        message_id = await service.send_password_changed("bob@example.com", "Bob")

        assert message_id.startswith("<")
        assert delivered[0][0] == "bob@example.com"
        assert delivered[0][1]["Subject"] == "Your Recipebox password was changed"


@pytest.mark.unit
class TestNotificationDispatcher:
    async def test_submit_does_not_wait(self):
        dispatcher = NotificationDispatcher()
        release = asyncio.Event()
        done = []

        async def job():
            await release.wait()
            done.append(True)

        dispatcher.submit(job(), "slow job")
        assert dispatcher.pending == 1
        assert done == []

        release.set()
        await dispatcher.drain()
        assert done == [True]
        assert dispatcher.pending == 0

    async def test_failures_are_logged_not_raised(self, caplog):
        dispatcher = NotificationDispatcher()

        async def job():
            raise EmailDeliveryError("bob@example.com", "connection refused")

        with caplog.at_level(logging.ERROR):
            dispatcher.submit(job(), "welcome email to bob@example.com")
            await dispatcher.drain()

        assert "welcome email to bob@example.com" in caplog.text
        assert "connection refused" in caplog.text

    async def test_drain_waits_for_jobs_submitted_by_jobs(self):
        dispatcher = NotificationDispatcher()
        done = []

        async def child():
            await asyncio.sleep(0)
            done.append("child")

        async def parent():
            dispatcher.submit(child(), "child")
            done.append("parent")

        dispatcher.submit(parent(), "parent")
        await dispatcher.drain()

        assert done == ["parent", "child"]
