"""Admin moderation API routes.

Every route requires the ADMIN role. The routes listed in ``AUDIT_POLICY``
record an audit entry once their handler has returned successfully.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Path, Query, Request

from taskmarket.api.admin.schemas import (
    DisputePriority,
    DisputeStatus,
    ModerateUserRequest,
    ProcessVerificationRequest,
    UserModerationFilters,
    UserRole,
)
from taskmarket.config.logger import app_logger
from taskmarket.middleware.audit import ResourceExtractor, audit_log, path_resource, static_resource
from taskmarket.services.admin_service import AdminService
from taskmarket.utils.audit import AuditLogFilters, SQLAuditStore
from taskmarket.utils.auth import Principal, require_admin
from taskmarket.utils.errors import ServiceUnavailableError, call_service
from taskmarket.utils.responses import (
    PaginatedResponse,
    SuccessResponse,
    paginated_response,
    success_response,
)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"], dependencies=[Depends(require_admin)])

AUDIT_POLICY: Dict[str, Tuple[str, ResourceExtractor]] = {
    "get_dashboard": ("VIEW_DASHBOARD", static_resource("ADMIN")),
    "moderate_user": ("MODERATE_USER", path_resource("USER", "user_id")),
    "process_verification": ("PROCESS_VERIFICATION", path_resource("VERIFICATION", "verification_id")),
    "get_analytics": ("VIEW_ANALYTICS", static_resource("ADMIN")),
    "get_health_report": ("VIEW_HEALTH_REPORT", static_resource("ADMIN")),
}

MODERATION_MESSAGES = {
    "SUSPEND": "User suspended successfully",
    "REACTIVATE": "User reactivated successfully",
}

VERIFICATION_MESSAGES = {
    "APPROVE": "Verification approved successfully",
    "REJECT": "Verification rejected successfully",
}


def audited(operation: str):
    action, resource_extractor = AUDIT_POLICY[operation]
    return Depends(audit_log(action, resource_extractor))


def get_admin_service(request: Request) -> AdminService:
    services = getattr(request.app.state, "services", None)
    if services is None or "admin" not in services:
        raise ServiceUnavailableError("Admin service is not available", service="admin")
    return services.get("admin")


def get_audit_store(request: Request) -> SQLAuditStore:
    services = getattr(request.app.state, "services", None)
    if services is None or "audit_store" not in services:
        raise ServiceUnavailableError("Audit log storage is not available", service="audit_store")
    return services.get("audit_store")


@router.get(
    "/dashboard",
    response_model=SuccessResponse[Dict[str, Any]],
    dependencies=[audited("get_dashboard")],
)
async def get_dashboard(service: AdminService = Depends(get_admin_service)):
    """Platform-wide statistics for the admin dashboard."""
    stats = await call_service("admin", "get_dashboard_statistics", service.get_dashboard_statistics)
    return success_response(data=stats, message="Dashboard statistics retrieved successfully")


@router.get("/users", response_model=PaginatedResponse[Dict[str, Any]])
async def get_users(
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    email_verified: Optional[bool] = Query(None, alias="emailVerified"),
    flagged_only: bool = Query(False, alias="flaggedOnly"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    service: AdminService = Depends(get_admin_service),
):
    """Users with activity stats and moderation flags, newest first."""
    filters = UserModerationFilters(
        role=role,
        is_active=is_active,
        email_verified=email_verified,
        flagged_only=flagged_only,
    )
    result = await call_service("admin", "get_users_for_moderation", service.get_users_for_moderation, filters, page, limit)
    return paginated_response(
        data=result.items,
        page=page,
        limit=limit,
        total=result.total,
        message="Users for moderation retrieved successfully",
    )


@router.post(
    "/users/{user_id}/moderate",
    response_model=SuccessResponse[None],
    dependencies=[audited("moderate_user")],
)
async def moderate_user(
    request: Request,
    body: ModerateUserRequest,
    user_id: str = Path(..., description="User to moderate"),
    principal: Principal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    """Suspend or reactivate a user account."""
    request.state.audit_details = await call_service(
        "admin", "moderate_user", service.moderate_user, principal.id, user_id, body.action, body.reason
    )
    app_logger.info(f"Admin {principal.id} applied {body.action} to user {user_id}")
    return success_response(data=None, message=MODERATION_MESSAGES[body.action])


@router.get("/verifications/pending", response_model=PaginatedResponse[Dict[str, Any]])
async def get_pending_verifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    service: AdminService = Depends(get_admin_service),
):
    """Pending verifications, oldest first."""
    result = await call_service("admin", "get_pending_verifications", service.get_pending_verifications, page, limit)
    return paginated_response(
        data=result.items,
        page=page,
        limit=limit,
        total=result.total,
        message="Pending verifications retrieved successfully",
    )


@router.post(
    "/verifications/{verification_id}/process",
    response_model=SuccessResponse[None],
    dependencies=[audited("process_verification")],
)
async def process_verification(
    request: Request,
    body: ProcessVerificationRequest,
    verification_id: str = Path(..., description="Verification to process"),
    principal: Principal = Depends(require_admin),
    service: AdminService = Depends(get_admin_service),
):
    """Approve or reject a pending verification."""
    request.state.audit_details = await call_service(
        "admin",
        "process_verification",
        service.process_verification,
        principal.id,
        verification_id,
        body.action,
        body.notes,
    )
    return success_response(data=None, message=VERIFICATION_MESSAGES[body.action])


@router.get(
    "/analytics",
    response_model=SuccessResponse[Dict[str, Any]],
    dependencies=[audited("get_analytics")],
)
async def get_analytics(
    start_date: Optional[datetime] = Query(None, alias="startDate", description="ISO-8601 start of the window"),
    end_date: Optional[datetime] = Query(None, alias="endDate", description="ISO-8601 end of the window"),
    service: AdminService = Depends(get_admin_service),
):
    """Growth, completion, payment and retention analytics."""
    analytics = await call_service("admin", "get_system_analytics", service.get_system_analytics, start_date, end_date)
    return success_response(data=analytics, message="System analytics retrieved successfully")


@router.get("/disputes", response_model=PaginatedResponse[Dict[str, Any]])
async def get_disputes(
    status: Optional[DisputeStatus] = Query(None),
    priority: Optional[DisputePriority] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    service: AdminService = Depends(get_admin_service),
):
    """Dispute cases, optionally filtered by status and priority."""
    result = await call_service(
        "admin",
        "get_dispute_cases",
        service.get_dispute_cases,
        status.value if status else None,
        priority.value if priority else None,
        page,
        limit,
    )
    return paginated_response(
        data=result.items,
        page=page,
        limit=limit,
        total=result.total,
        message="Dispute cases retrieved successfully",
    )


@router.get(
    "/health",
    response_model=SuccessResponse[Dict[str, Any]],
    dependencies=[audited("get_health_report")],
)
async def get_health_report(service: AdminService = Depends(get_admin_service)):
    """Seven-day platform health metrics and alerts."""
    report = await call_service("admin", "generate_health_report", service.generate_health_report)
    return success_response(data=report, message="System health report generated successfully")


@router.get("/audit-logs", response_model=PaginatedResponse[Dict[str, Any]])
async def get_audit_logs(
    user_id: Optional[str] = Query(None, alias="userId", description="Acting user"),
    action: Optional[str] = Query(None, description="Audit action, e.g. MODERATE_USER"),
    resource_type: Optional[str] = Query(None, alias="resourceType"),
    resource_id: Optional[str] = Query(None, alias="resourceId"),
    start_date: Optional[datetime] = Query(None, alias="startDate", description="ISO-8601 start of the window"),
    end_date: Optional[datetime] = Query(None, alias="endDate", description="ISO-8601 end of the window"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store: SQLAuditStore = Depends(get_audit_store),
):
    """Recorded audit entries, newest first."""
    filters = AuditLogFilters(
        user_id=user_id,
        action=action.strip() if action else None,
        resource_type=resource_type,
        resource_id=resource_id,
        start_date=start_date,
        end_date=end_date,
    )
    items, total = await call_service("audit_store", "list_entries", store.list_entries, filters, page, limit)
    return paginated_response(
        data=items,
        page=page,
        limit=limit,
        total=total,
        message="Audit logs retrieved successfully",
    )
