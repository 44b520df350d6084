"""Audit trail: entries, persistence and the background writer.

Audit writes are best-effort. Request handlers only enqueue entries on the
``AuditWriter``; a single worker task logs each entry and hands it to the
configured store, so latency or failure in persistence never reaches the
request/response cycle.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple

from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskmarket.config.logger import app_logger
from taskmarket.db.db import Database
from taskmarket.models.audit_log import AuditLog


class AuditEntry(BaseModel):
    """Who did what to which resource."""

    user_id: str
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditStore(Protocol):
    async def write(self, entry: AuditEntry) -> None: ...


def create_audit_log(session: AsyncSession, entry: AuditEntry) -> AuditLog:
    """Add an audit log row for ``entry`` to the session.

    The caller commits, so the row can share a transaction with other work.
    """
    audit_log = AuditLog(
        user_id=entry.user_id,
        action=entry.action,
        resource_type=entry.resource_type,
        resource_id=entry.resource_id,
        ip_address=entry.ip,
        user_agent=entry.user_agent,
        request_id=entry.request_id,
        metadata_json=entry.metadata,
        created_at=entry.created_at,
    )
    session.add(audit_log)
    return audit_log


class AuditLogFilters(BaseModel):
    """Filters for reading the audit trail back."""

    user_id: Optional[str] = None
    action: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def list_audit_logs(
    session: AsyncSession,
    filters: AuditLogFilters,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[AuditLog], int]:
    """One page of audit rows matching ``filters``, newest first, plus the total."""
    conditions = []
    if filters.user_id:
        conditions.append(AuditLog.user_id == filters.user_id)
    if filters.action:
        conditions.append(AuditLog.action == filters.action)
    if filters.resource_type:
        conditions.append(AuditLog.resource_type == filters.resource_type)
    if filters.resource_id:
        conditions.append(AuditLog.resource_id == filters.resource_id)
    if filters.start_date:
        conditions.append(AuditLog.created_at >= _as_utc(filters.start_date))
    if filters.end_date:
        conditions.append(AuditLog.created_at <= _as_utc(filters.end_date))

    count_stmt = select(func.count()).select_from(AuditLog).where(*conditions)
    total = (await session.execute(count_stmt)).scalar() or 0

    stmt = (
        select(AuditLog)
        .where(*conditions)
        .order_by(AuditLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return list(rows), total


def audit_log_to_dict(row: AuditLog) -> Dict[str, Any]:
    created_at = _as_utc(row.created_at) if row.created_at else None
    return {
        "id": str(row.id),
        "userId": row.user_id,
        "action": row.action,
        "resourceType": row.resource_type,
        "resourceId": row.resource_id,
        "ipAddress": row.ip_address,
        "userAgent": row.user_agent,
        "requestId": row.request_id,
        "metadata": row.metadata_json or {},
        "createdAt": created_at.isoformat() if created_at else None,
    }


class SQLAuditStore:
    """Persist audit entries to the ``audit_logs`` table and read them back."""

    def __init__(self, database: Database):
        self.database = database

    async def initialize(self) -> None:
        await self.database.init()

    async def cleanup(self) -> None:
        await self.database.close()

    async def health_check(self) -> bool:
        is_ok, _ = await self.database.ping()
        return is_ok

    async def write(self, entry: AuditEntry) -> None:
        async with self.database.session() as session:
            create_audit_log(session, entry)
            await session.commit()

    async def list_entries(
        self, filters: AuditLogFilters, page: int = 1, limit: int = 20
    ) -> Tuple[List[Dict[str, Any]], int]:
        async with self.database.session() as session:
            rows, total = await list_audit_logs(session, filters, page, limit)
        return [audit_log_to_dict(row) for row in rows], total


class AuditWriter:
    """Bounded queue plus one worker task that drains it."""

    def __init__(self, store: Optional[AuditStore] = None, max_queue_size: int = 1000, shutdown_timeout: float = 5.0):
        self.store = store
        self.max_queue_size = max_queue_size
        self.shutdown_timeout = shutdown_timeout
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def initialize(self) -> None:
        if self.is_running:
            return
        self._queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._worker = asyncio.create_task(self._run(), name="audit-writer")
        app_logger.info("Audit writer started")

    async def cleanup(self) -> None:
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            app_logger.error("Audit writer shutdown timed out with {} entries pending", self._queue.qsize())
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        app_logger.info("Audit writer stopped")

    async def health_check(self) -> bool:
        return self.is_running

    def submit(self, entry: AuditEntry) -> bool:
        """Enqueue ``entry`` without waiting. Returns False when it was dropped."""
        if not self.is_running:
            app_logger.error("AUDIT DROPPED: writer not running ({} by {})", entry.action, entry.user_id)
            return False
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            app_logger.error("AUDIT DROPPED: queue full ({} by {})", entry.action, entry.user_id)
            return False
        return True

    async def drain(self) -> None:
        """Wait until every queued entry has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def _run(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                await self._write(entry)
            finally:
                self._queue.task_done()

    async def _write(self, entry: AuditEntry) -> None:
        try:
            app_logger.bind(event="audit", request_id=entry.request_id or "-", **entry.model_dump(exclude={"request_id", "created_at"})).info(
                "AUDIT: {} {} {}:{}",
                entry.user_id,
                entry.action,
                entry.resource_type or "-",
                entry.resource_id or "-",
            )
            if self.store is not None:
                await self.store.write(entry)
        except Exception as exc:
            app_logger.opt(exception=exc).error("AUDIT ERROR: failed to write {} by {}", entry.action, entry.user_id)
