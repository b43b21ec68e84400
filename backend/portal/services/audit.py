"""Audit event recorder.

Every state-changing operation records one event. Each event fans out to two
independent sinks, a JSON-lines file and the ``audit_logs`` table. Sink
failures are logged and reported in the result, never raised.
"""

import asyncio
import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import func, select

from portal.core.config import get_settings
from portal.models import AuditLog, AuditLogPage, AuditLogRead, User
from portal.models.types import utcnow

logger = logging.getLogger(__name__)

PAGE_VIEW = "PAGE_VIEW"

BOT_SIGNATURES = (
    "bot",
    "crawler",
    "spider",
    "slurp",
    "facebookexternalhit",
    "embedly",
    "curl/",
    "wget/",
    "python-requests",
    "python-urllib",
    "python-httpx",
    "aiohttp",
    "go-http-client",
    "java/",
    "okhttp",
    "axios/",
    "node-fetch",
    "libwww-perl",
    "scrapy",
    "httpclient",
    "headlesschrome",
    "phantomjs",
    "puppeteer",
    "playwright",
    "selenium",
)


def is_bot(user_agent: str | None) -> bool:
    """Classify a user-agent string as automated traffic."""
    if not user_agent:
        return False
    lowered = user_agent.lower()
    return any(signature in lowered for signature in BOT_SIGNATURES)


def format_actor(
    user_name: str | None = None,
    unit_number: str | None = None,
    user_email: str | None = None,
) -> str:
    """Human-readable actor label stored with each event."""
    if user_name and unit_number:
        return f"{user_name} (Unit: {unit_number})"
    if user_name:
        return user_name
    if user_email:
        return user_email
    return "anonymous"


@dataclass
class RequestContext:
    """Caller network metadata attached to audit events."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class AuditEntry:
    """Fields supplied by callers for one audit event."""

    action: str
    success: bool = True
    user_id: int | None = None
    user_name: str | None = None
    user_email: str | None = None
    unit_number: str | None = None
    entity_type: str | None = None
    entity_id: str | int | None = None
    details: dict[str, Any] = field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def for_user(
        cls,
        user: User | None,
        action: str,
        context: RequestContext | None = None,
        **kwargs: Any,
    ) -> "AuditEntry":
        """Build an entry attributed to ``user`` (or anonymous when None)."""
        if context is not None:
            kwargs.setdefault("ip_address", context.ip_address)
            kwargs.setdefault("user_agent", context.user_agent)
        if user is None:
            return cls(action=action, **kwargs)
        return cls(
            action=action,
            user_id=user.id,
            user_name=user.display_name or None,
            user_email=user.email,
            unit_number=user.unit_number,
            **kwargs,
        )

    @property
    def actor(self) -> str:
        return format_actor(self.user_name, self.unit_number, self.user_email)

    @property
    def is_bot(self) -> bool:
        return is_bot(self.user_agent)

    def to_record(self, timestamp: datetime) -> dict[str, Any]:
        """Serialisable record shape shared by every sink."""
        return {
            "timestamp": timestamp.isoformat(),
            "userId": self.user_id,
            "actor": self.actor,
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": str(self.entity_id) if self.entity_id is not None else None,
            "success": self.success,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "isBot": self.is_bot,
            # Round-trip so datetimes and other objects become plain JSON
            "details": json.loads(json.dumps(self.details or {}, default=str)),
        }


@dataclass
class SinkResult:
    """Outcome of one sink write."""

    sink: str
    ok: bool
    error: str | None = None


@dataclass
class AuditRecordResult:
    """Outcome of recording one event across all sinks."""

    recorded: bool
    sinks: list[SinkResult] = field(default_factory=list)
    skipped_reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.recorded and all(result.ok for result in self.sinks)


class AuditSink(Protocol):
    """Destination for audit records."""

    name: str

    async def write(self, record: dict[str, Any]) -> None: ...


class FileAuditSink:
    """Appends one JSON object per line to a single log file."""

    name = "file"

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def write(self, record: dict[str, Any]) -> None:
        await asyncio.to_thread(self._append, json.dumps(record) + "\n")

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line)


class DatabaseAuditSink:
    """Inserts one ``audit_logs`` row per record.

    Rows go through a dedicated session on the caller's engine. A failed insert
    rolls back only that session, so objects the caller already committed stay
    loaded.
    """

    name = "database"

    def __init__(self, session: AsyncSession):
        self.session_factory = async_sessionmaker(
            session.bind, class_=AsyncSession, expire_on_commit=False
        )

    async def write(self, record: dict[str, Any]) -> None:
        entry = AuditLog(
            timestamp=datetime.fromisoformat(record["timestamp"]),
            user_id=record["userId"],
            actor=record["actor"],
            action=record["action"],
            entity_type=record["entityType"],
            entity_id=record["entityId"],
            success=record["success"],
            details=record["details"],
            ip_address=record["ipAddress"],
            user_agent=record["userAgent"],
            is_bot=record["isBot"],
        )
        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()


class AuditService:
    """Service for recording and querying audit events."""

    def __init__(self, session: AsyncSession, sinks: list[AuditSink] | None = None):
        self.session = session
        if sinks is None:
            sinks = [
                FileAuditSink(get_settings().audit_log_path),
                DatabaseAuditSink(session),
            ]
        self.sinks = sinks

    async def record(self, entry: AuditEntry) -> AuditRecordResult:
        """Record an event in every sink.

        Page views from classified bots are dropped before any write. All
        other events are recorded regardless of bot status.
        """
        if entry.action == PAGE_VIEW and entry.is_bot:
            return AuditRecordResult(recorded=False, skipped_reason="bot_page_view")

        record = entry.to_record(utcnow())
        results = []
        for sink in self.sinks:
            try:
                await sink.write(record)
                results.append(SinkResult(sink=sink.name, ok=True))
            except Exception as e:
                logger.exception(f"Audit sink '{sink.name}' failed for action {entry.action}")
                results.append(SinkResult(sink=sink.name, ok=False, error=str(e)))
        return AuditRecordResult(recorded=True, sinks=results)

    async def log(
        self,
        action: str,
        user: User | None = None,
        entity_type: str | None = None,
        entity_id: str | int | None = None,
        details: dict[str, Any] | None = None,
        success: bool = True,
        context: RequestContext | None = None,
    ) -> AuditRecordResult:
        """Record an event attributed to ``user``.

        Args:
            action: Action tag (e.g., document_published, user_approved)
            user: Acting user, or None for anonymous/system events
            entity_type: Type of subject (e.g., "Document", "User")
            entity_id: ID of the subject
            details: Arbitrary structured detail
            success: Whether the action succeeded
            context: Caller IP and user agent

        Returns:
            Per-sink outcome
        """
        return await self.record(
            AuditEntry.for_user(
                user,
                action,
                context,
                entity_type=entity_type,
                entity_id=entity_id,
                details=details or {},
                success=success,
            )
        )

    async def log_login_attempt(
        self,
        email: str,
        success: bool,
        user: User | None = None,
        reason: str | None = None,
        context: RequestContext | None = None,
    ) -> AuditRecordResult:
        """Log a sign-in attempt."""
        entry = AuditEntry.for_user(
            user,
            "LOGIN_ATTEMPT",
            context,
            success=success,
            details={"reason": reason} if reason else {},
        )
        if user is None:
            entry.user_email = email
        return await self.record(entry)

    async def log_magic_link_request(
        self,
        email: str,
        success: bool,
        reason: str | None = None,
        context: RequestContext | None = None,
    ) -> AuditRecordResult:
        """Log a magic-link request. Always anonymous."""
        entry = AuditEntry.for_user(
            None,
            "MAGIC_LINK_REQUEST",
            context,
            success=success,
            details={"reason": reason} if reason else {},
        )
        entry.user_email = email
        return await self.record(entry)

    async def query(
        self,
        user_id: int | None = None,
        action: str | None = None,
        entity_type: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        include_bots: bool = True,
        page: int = 1,
        page_size: int = 50,
    ) -> AuditLogPage:
        """Filtered, paginated audit log listing (newest first)."""
        conditions = []
        if user_id is not None:
            conditions.append(AuditLog.user_id == user_id)
        if action is not None:
            conditions.append(AuditLog.action == action)
        if entity_type is not None:
            conditions.append(AuditLog.entity_type == entity_type)
        if since is not None:
            conditions.append(AuditLog.timestamp >= since)
        if until is not None:
            conditions.append(AuditLog.timestamp <= until)
        if not include_bots:
            conditions.append(AuditLog.is_bot == False)  # noqa: E712

        total = (
            await self.session.execute(select(func.count()).select_from(AuditLog).where(*conditions))
        ).scalar_one()

        result = await self.session.execute(
            select(AuditLog)
            .where(*conditions)
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        logs = [AuditLogRead.model_validate(log) for log in result.scalars().all()]

        return AuditLogPage(
            logs=logs,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total else 0,
            actions=await self.distinct_actions(),
        )

    async def distinct_actions(self) -> list[str]:
        """All action tags present in the table."""
        result = await self.session.execute(
            select(AuditLog.action).distinct().order_by(AuditLog.action)
        )
        return [row[0] for row in result.all()]
