"""Per-route audit logging.

``audit_log(action, resource_extractor)`` builds a FastAPI dependency that
lets the route run first and, once the handler has returned, schedules an
audit entry on the application's ``AuditWriter``. Anonymous requests and
handlers that raise produce no entry. A handler can attach details to its
entry by setting ``request.state.audit_details``.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable, NamedTuple, Optional

from fastapi import Request

from taskmarket.config.logger import app_logger
from taskmarket.utils.audit import AuditEntry, AuditWriter
from taskmarket.utils.request_context import RequestContext

CREATE = "create"
UPDATE = "update"
DELETE = "delete"
VIEW = "view"


class AuditResource(NamedTuple):
    resource_type: Optional[str]
    resource_id: Optional[str] = None


ResourceExtractor = Callable[[Request], AuditResource]


def path_resource(resource_type: str, param: str = "id") -> ResourceExtractor:
    """Resource identified by a path parameter."""

    def extract(request: Request) -> AuditResource:
        return AuditResource(resource_type, request.path_params.get(param))

    return extract


def state_resource(resource_type: str, attribute: str) -> ResourceExtractor:
    """Resource whose id the handler stored on ``request.state``."""

    def extract(request: Request) -> AuditResource:
        return AuditResource(resource_type, getattr(request.state, attribute))

    return extract


def static_resource(resource_type: str) -> ResourceExtractor:
    def extract(request: Request) -> AuditResource:
        return AuditResource(resource_type)

    return extract


def get_audit_writer(request: Request) -> Optional[AuditWriter]:
    services = getattr(request.app.state, "services", None)
    if services is None or "audit" not in services:
        return None
    return services.get("audit")


def _build_entry(request: Request, principal: Any, action: str, resource: AuditResource) -> AuditEntry:
    context: Optional[RequestContext] = getattr(request.state, "request_context", None)
    details = getattr(request.state, "audit_details", None)
    resource_id = resource.resource_id
    return AuditEntry(
        user_id=str(principal.id),
        action=action,
        resource_type=resource.resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        request_id=context.request_id if context else None,
        metadata=dict(details) if details else {},
    )


def record_audit(request: Request, action: str, resource_extractor: ResourceExtractor) -> None:
    """Build the entry for ``request`` and hand it to the writer.

    Never raises: failures are logged at error level.
    """
    principal = getattr(request.state, "principal", None)
    if principal is None:
        return

    try:
        entry = _build_entry(request, principal, action, resource_extractor(request))
    except Exception as exc:
        app_logger.opt(exception=exc).error("AUDIT ERROR: could not build {} entry for {}", action, request.url.path)
        return

    writer = get_audit_writer(request)
    if writer is None:
        app_logger.error("AUDIT DROPPED: no audit writer registered ({} by {})", action, entry.user_id)
        return
    writer.submit(entry)


def audit_log(action: str, resource_extractor: ResourceExtractor) -> Callable[[Request], AsyncIterator[None]]:
    """Dependency factory recording ``action`` after the route handler succeeds."""

    async def dependency(request: Request) -> AsyncIterator[None]:
        yield
        record_audit(request, action, resource_extractor)

    return dependency


def audit_create(resource_extractor: ResourceExtractor):
    return audit_log(CREATE, resource_extractor)


def audit_update(resource_extractor: ResourceExtractor):
    return audit_log(UPDATE, resource_extractor)


def audit_delete(resource_extractor: ResourceExtractor):
    return audit_log(DELETE, resource_extractor)


def audit_view(resource_extractor: ResourceExtractor):
    return audit_log(VIEW, resource_extractor)
