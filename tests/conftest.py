"""Shared fixtures for the admin API tests."""

from typing import Any, Dict, List
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from taskmarket.config.logger import app_logger
from taskmarket.main import create_app
from taskmarket.services.admin_service import Page
from taskmarket.services.registry import ServiceContext
from taskmarket.utils.audit import AuditEntry, AuditWriter
from taskmarket.utils.local_tokens import create_local_token

ADMIN_ID = "admin-1"


class StubAdminService:
    """AdminService double whose operations are AsyncMocks."""

    def __init__(self) -> None:
        self.get_dashboard_statistics = AsyncMock(return_value={"users": {"total": 3}})
        self.get_users_for_moderation = AsyncMock(return_value=Page(items=[{"id": "user-1"}], total=1))
        self.moderate_user = AsyncMock(return_value={
            "action": "SUSPEND",
            "reason": "Repeated no-shows",
            "previousStatus": True,
            "newStatus": False,
            "targetUserEmail": "user-5@example.com",
        })
        self.get_pending_verifications = AsyncMock(return_value=Page(items=[], total=0))
        self.process_verification = AsyncMock(return_value={"action": "APPROVE", "targetUserId": "user-5"})
        self.get_system_analytics = AsyncMock(return_value={"userGrowth": []})
        self.get_dispute_cases = AsyncMock(return_value=Page(items=[], total=0))
        self.generate_health_report = AsyncMock(return_value={"alerts": []})


class MemoryAuditStore:
    """Audit store keeping entries in a list."""

    def __init__(self) -> None:
        self.entries: List[AuditEntry] = []

    async def write(self, entry: AuditEntry) -> None:
        self.entries.append(entry)


def bearer_headers(role: str = "ADMIN", user_id: str = ADMIN_ID) -> Dict[str, str]:
    token = create_local_token(user_id, f"{user_id}@example.com", role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return bearer_headers


@pytest.fixture
def admin_service() -> StubAdminService:
    return StubAdminService()


@pytest.fixture
def audit_store() -> MemoryAuditStore:
    return MemoryAuditStore()


@pytest.fixture
def services(admin_service, audit_store) -> ServiceContext:
    context = ServiceContext()
    context.register("audit", AuditWriter(store=audit_store))
    context.register("admin", admin_service)
    return context


@pytest.fixture
def app(services):
    return create_app(services=services)


@pytest.fixture
def client(app):
    # Entering the client runs the lifespan, which starts the audit writer
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def log_records():
    """Capture every Loguru record emitted during the test."""
    records: List[Dict[str, Any]] = []
    sink_id = app_logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    app_logger.remove(sink_id)
