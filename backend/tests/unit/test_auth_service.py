"""Unit tests for magic-link sign-in."""

import re
from datetime import timedelta

import pytest
from sqlmodel import select

from portal.core.errors import (
    AuthenticationError,
    AuthorizationError,
    TooManyRequestsError,
    ValidationError,
)
from portal.core.rate_limit import RateLimiter
from portal.core.security import decode_token
from portal.models import AuditLog, MagicLinkToken
from portal.models.types import utcnow
from portal.services.audit import RequestContext
from portal.services.auth import EMAIL_RECOVERY_MESSAGE, MAGIC_LINK_MESSAGE, AuthService
from tests.conftest import create_user

CONTEXT = RequestContext(ip_address="203.0.113.5", user_agent="Mozilla/5.0")


def link_token(text: str) -> str:
    return re.search(r"token=([\w\-]+)", text).group(1)


async def login_attempts(session) -> list[AuditLog]:
    result = await session.execute(
        select(AuditLog).where(AuditLog.action == "LOGIN_ATTEMPT").order_by(AuditLog.id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
class TestRequestMagicLink:
    async def test_known_user_receives_link(self, test_session, email_sender, resident_user):
        service = AuthService(test_session, email_sender, limiter=RateLimiter())

        message = await service.request_magic_link("  Resident@Test.com ", CONTEXT)

        assert message == MAGIC_LINK_MESSAGE
        [email] = email_sender.sent_to(resident_user.email)
        token = link_token(email.text)
        stored = (await test_session.execute(select(MagicLinkToken))).scalar_one()
        assert stored.user_id == resident_user.id
        assert stored.token_hash != token

    async def test_unknown_email_gets_same_reply(self, test_session, email_sender):
        service = AuthService(test_session, email_sender, limiter=RateLimiter())

        message = await service.request_magic_link("nobody@test.com", CONTEXT)

        assert message == MAGIC_LINK_MESSAGE
        assert email_sender.sent == []
        row = (await test_session.execute(select(AuditLog))).scalar_one()
        assert row.action == "MAGIC_LINK_REQUEST"
        assert row.success is False
        assert row.details == {"reason": "unknown_email"}

    async def test_rate_limited_after_configured_requests(self, test_session, email_sender, resident_user):
        service = AuthService(test_session, email_sender, limiter=RateLimiter())
        for _ in range(3):
            await service.request_magic_link(resident_user.email, CONTEXT)

        with pytest.raises(TooManyRequestsError):
            await service.request_magic_link(resident_user.email, CONTEXT)

        assert len(email_sender.sent) == 3


@pytest.mark.asyncio
class TestVerifyMagicLink:
    async def _issue(self, session, sender, user) -> tuple[AuthService, str]:
        service = AuthService(session, sender, limiter=RateLimiter())
        await service.request_magic_link(user.email, CONTEXT)
        return service, link_token(sender.sent_to(user.email)[-1].text)

    async def test_verified_user_gets_access_token(self, test_session, email_sender, resident_user):
        service, token = await self._issue(test_session, email_sender, resident_user)

        access_token = await service.verify_magic_link(token, CONTEXT)

        assert decode_token(access_token)["sub"] == str(resident_user.id)
        assert resident_user.last_login is not None
        [attempt] = await login_attempts(test_session)
        assert attempt.success is True
        assert attempt.user_id == resident_user.id

    async def test_token_is_single_use(self, test_session, email_sender, resident_user):
        service, token = await self._issue(test_session, email_sender, resident_user)
        await service.verify_magic_link(token, CONTEXT)

        with pytest.raises(AuthenticationError):
            await service.verify_magic_link(token, CONTEXT)

    async def test_expired_token(self, test_session, email_sender, resident_user):
        service, token = await self._issue(test_session, email_sender, resident_user)
        stored = (await test_session.execute(select(MagicLinkToken))).scalar_one()
        stored.expires_at = utcnow() - timedelta(minutes=1)
        await test_session.commit()

        with pytest.raises(AuthenticationError):
            await service.verify_magic_link(token, CONTEXT)

    async def test_pending_user_refused(self, test_session, email_sender, pending_user):
        service, token = await self._issue(test_session, email_sender, pending_user)

        with pytest.raises(AuthorizationError, match="not been verified"):
            await service.verify_magic_link(token, CONTEXT)

        [attempt] = await login_attempts(test_session)
        assert attempt.success is False
        assert attempt.details == {"reason": "status_pending"}

    async def test_unknown_token_logged_as_failure(self, test_session, email_sender):
        service = AuthService(test_session, email_sender, limiter=RateLimiter())

        with pytest.raises(AuthenticationError):
            await service.verify_magic_link("bogus", CONTEXT)

        [attempt] = await login_attempts(test_session)
        assert attempt.success is False
        assert attempt.user_id is None


@pytest.mark.asyncio
class TestRecoverEmail:
    async def test_every_verified_user_in_unit_is_reminded(
        self, test_session, email_sender, resident_user, pending_user
    ):
        partner = await create_user(test_session, "partner@test.com", unit_number="401")
        service = AuthService(test_session, email_sender, limiter=RateLimiter())

        message = await service.recover_email(" 401 ", CONTEXT)

        assert message == EMAIL_RECOVERY_MESSAGE
        assert sorted(m.to for m in email_sender.sent) == ["partner@test.com", "resident@test.com"]
        [email] = email_sender.sent_to(resident_user.email)
        assert "resident@test.com" in email.text
        assert "unit 401" in email.text
        rows = (await test_session.execute(select(AuditLog).order_by(AuditLog.id))).scalars().all()
        assert [(row.action, row.user_id) for row in rows] == [
            ("EMAIL_RECOVERY_SENT", resident_user.id),
            ("EMAIL_RECOVERY_SENT", partner.id),
        ]
        assert rows[0].details == {"unitNumber": "401"}

    async def test_pending_users_are_not_reminded(self, test_session, email_sender, pending_user):
        service = AuthService(test_session, email_sender, limiter=RateLimiter())

        message = await service.recover_email(pending_user.unit_number, CONTEXT)

        assert message == EMAIL_RECOVERY_MESSAGE
        assert email_sender.sent == []
        row = (await test_session.execute(select(AuditLog))).scalar_one()
        assert row.action == "EMAIL_RECOVERY_REQUEST"
        assert row.success is False
        assert row.details == {"unitNumber": "501", "reason": "no_verified_users"}

    async def test_failed_send_does_not_stop_others(self, test_session, email_sender, resident_user):
        await create_user(test_session, "partner@test.com", unit_number="401")
        email_sender.fail_for.add(resident_user.email)
        service = AuthService(test_session, email_sender, limiter=RateLimiter())

        await service.recover_email("401", CONTEXT)

        assert [m.to for m in email_sender.sent] == ["partner@test.com"]
        rows = (await test_session.execute(select(AuditLog).order_by(AuditLog.id))).scalars().all()
        assert [row.success for row in rows] == [False, True]

    async def test_blank_unit(self, test_session, email_sender):
        service = AuthService(test_session, email_sender, limiter=RateLimiter())

        with pytest.raises(ValidationError, match="Unit number is required"):
            await service.recover_email("   ", CONTEXT)

    async def test_rate_limited_per_address(self, test_session, email_sender, resident_user):
        service = AuthService(test_session, email_sender, limiter=RateLimiter())
        for _ in range(3):
            await service.recover_email("401", CONTEXT)

        with pytest.raises(TooManyRequestsError):
            await service.recover_email("401", CONTEXT)
