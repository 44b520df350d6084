"""Admin moderation and reporting operations.

``AdminService`` is the interface the admin routes depend on.
``SupabaseAdminService`` implements it over the platform tables through the
Supabase REST API (``users``, ``tasks``, ``payments``, ``reviews``,
``verifications``, ``disputes`` and ``categories``). Aggregations the REST
API cannot express are computed in Python by the helpers at the top of this
module.
"""

from __future__ import annotations

import asyncio
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from supabase import Client

from taskmarket.api.admin.schemas import UserModerationFilters
from taskmarket.config.logger import app_logger
from taskmarket.utils.errors import ConflictError, NotFoundError
from taskmarket.utils.supabase_client import create_admin_client

PLATFORM_FEE_RATE = 0.05
TRUST_SCORE_VERIFICATION_BONUS = 1.0

LOW_RATING_THRESHOLD = 3.0
LOW_RATING_MIN_REVIEWS = 3
INACTIVE_AFTER = timedelta(days=30)

TASK_COMPLETION_ALERT_THRESHOLD = 70
PAYMENT_SUCCESS_ALERT_THRESHOLD = 95
ACTIVE_USERS_ALERT_THRESHOLD = 50

USER_COLUMNS = (
    "id,first_name,last_name,email,role,trust_score,is_active,email_verified,"
    "phone_verified,created_at,last_active,total_earnings,total_spent"
)
VERIFICATION_USER_EMBED = "user:users(id,first_name,last_name,email,trust_score)"


@dataclass
class Page:
    """One page of rows plus the total number of matching rows."""

    items: List[Dict[str, Any]]
    total: int


class AdminService(Protocol):
    async def get_dashboard_statistics(self) -> Dict[str, Any]: ...

    async def get_users_for_moderation(
        self, filters: Optional[UserModerationFilters], page: int, limit: int
    ) -> Page: ...

    async def moderate_user(self, admin_id: str, user_id: str, action: str, reason: str) -> Dict[str, Any]: ...

    async def get_pending_verifications(self, page: int, limit: int) -> Page: ...

    async def process_verification(
        self, admin_id: str, verification_id: str, action: str, notes: Optional[str]
    ) -> Dict[str, Any]: ...

    async def get_system_analytics(
        self, start_date: Optional[datetime], end_date: Optional[datetime]
    ) -> Dict[str, Any]: ...

    async def get_dispute_cases(
        self, status: Optional[str], priority: Optional[str], page: int, limit: int
    ) -> Page: ...

    async def generate_health_report(self) -> Dict[str, Any]: ...


# ============================================
# Aggregation helpers
# ============================================

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp returned by PostgREST into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_amount(value: Any) -> float:
    return float(value) if value is not None else 0.0


def percentage(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def group_time_series(rows: Iterable[Mapping[str, Any]], amount_field: Optional[str] = None) -> List[Dict[str, Any]]:
    """Bucket rows by the UTC day of ``created_at``, oldest day first.

    Every bucket carries ``date``, ``count`` and ``volume``; ``volume`` sums
    ``amount_field`` when one is given and stays 0 otherwise.
    """
    grouped: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        created_at = parse_timestamp(row.get("created_at"))
        if created_at is None:
            continue
        day = created_at.astimezone(timezone.utc).date().isoformat()
        bucket = grouped.setdefault(day, {"date": day, "count": 0, "volume": 0.0})
        bucket["count"] += 1
        if amount_field:
            bucket["volume"] += to_amount(row.get(amount_field))
    return [grouped[day] for day in sorted(grouped)]


def build_health_alerts(task_completion_rate: float, payment_success_rate: float, active_users_24h: int) -> List[str]:
    alerts: List[str] = []
    if task_completion_rate < TASK_COMPLETION_ALERT_THRESHOLD:
        alerts.append("Task completion rate is below 70% - investigate task quality or user satisfaction")
    if payment_success_rate < PAYMENT_SUCCESS_ALERT_THRESHOLD:
        alerts.append("Payment success rate is below 95% - check payment gateway health")
    if active_users_24h < ACTIVE_USERS_ALERT_THRESHOLD:
        alerts.append("Low user activity in last 24 hours - consider engagement campaigns")
    return alerts


def moderation_flags(user: Mapping[str, Any], ratings: List[float], now: datetime) -> Dict[str, bool]:
    average = sum(ratings) / len(ratings) if ratings else 0.0
    last_active = parse_timestamp(user.get("last_active"))
    return {
        "hasDisputes": False,
        "lowRating": average < LOW_RATING_THRESHOLD and len(ratings) >= LOW_RATING_MIN_REVIEWS,
        "inactiveAccount": last_active is None or last_active < now - INACTIVE_AFTER,
        "unverifiedEmail": not user.get("email_verified"),
    }


def build_moderation_user(
    user: Mapping[str, Any],
    posted_tasks: List[Mapping[str, Any]],
    assigned_tasks: List[Mapping[str, Any]],
    ratings: List[float],
    now: datetime,
) -> Dict[str, Any]:
    """Shape one ``users`` row plus its related rows for the moderation listing."""
    average = sum(ratings) / len(ratings) if ratings else 0.0
    return {
        "id": user.get("id"),
        "firstName": user.get("first_name"),
        "lastName": user.get("last_name"),
        "email": user.get("email"),
        "role": user.get("role"),
        "trustScore": user.get("trust_score"),
        "isActive": user.get("is_active"),
        "emailVerified": user.get("email_verified"),
        "phoneVerified": user.get("phone_verified"),
        "createdAt": user.get("created_at"),
        "lastActive": user.get("last_active"),
        "stats": {
            "tasksPosted": len(posted_tasks),
            "tasksCompleted": sum(1 for task in assigned_tasks if task.get("status") == "COMPLETED"),
            "totalEarnings": to_amount(user.get("total_earnings")),
            "totalSpent": to_amount(user.get("total_spent")),
            "reviewsReceived": len(ratings),
            "averageRating": round(average, 1),
        },
        "flags": moderation_flags(user, ratings, now),
    }


def _group_by(rows: Iterable[Mapping[str, Any]], column: str) -> Dict[Any, List[Mapping[str, Any]]]:
    grouped: Dict[Any, List[Mapping[str, Any]]] = defaultdict(list)
    for row in rows:
        grouped[row.get(column)].append(row)
    return grouped


def _filter_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# ============================================
# Supabase implementation
# ============================================

class SupabaseAdminService:
    """AdminService backed by the platform's Supabase tables."""

    def __init__(self, client: Optional[Client] = None, client_factory: Callable[[], Client] = create_admin_client):
        self._client = client
        self._client_factory = client_factory

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    async def health_check(self) -> bool:
        try:
            await self._execute(self.client.table("users").select("id").limit(1))
            return True
        except Exception as e:
            app_logger.warning(f"Supabase health check failed: {e}")
            return False

    # Query helpers

    async def _execute(self, query):
        """Run a PostgREST query off the event loop; the client is synchronous."""
        return await asyncio.to_thread(query.execute)

    def _select(
        self,
        table: str,
        columns: str = "*",
        *,
        count: Optional[str] = None,
        eq: Optional[Mapping[str, Any]] = None,
        gte: Optional[Mapping[str, Any]] = None,
        lte: Optional[Mapping[str, Any]] = None,
    ):
        query = self.client.table(table).select(columns, count=count)
        for column, value in (eq or {}).items():
            query = query.eq(column, _filter_value(value))
        for column, value in (gte or {}).items():
            query = query.gte(column, _filter_value(value))
        for column, value in (lte or {}).items():
            query = query.lte(column, _filter_value(value))
        return query

    async def _count(self, table: str, **filters: Any) -> int:
        response = await self._execute(self._select(table, "id", count="exact", **filters).limit(1))
        return response.count or 0

    async def _rows(self, table: str, columns: str = "*", **filters: Any) -> List[Dict[str, Any]]:
        return (await self._execute(self._select(table, columns, **filters))).data or []

    async def _related(self, table: str, columns: str, column: str, ids: List[Any]) -> List[Dict[str, Any]]:
        if not ids:
            return []
        return (await self._execute(self.client.table(table).select(columns).in_(column, ids))).data or []

    @staticmethod
    def _date_range(start_date: Optional[datetime], end_date: Optional[datetime]) -> Dict[str, Any]:
        filters: Dict[str, Any] = {}
        if start_date:
            filters["gte"] = {"created_at": start_date}
        if end_date:
            filters["lte"] = {"created_at": end_date}
        return filters

    # Operations

    async def get_dashboard_statistics(self) -> Dict[str, Any]:
        now = utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        this_month = {"created_at": month_start}

        payments = await self._rows("payments", "amount,status,created_at")
        payment_status = Counter(payment.get("status") for payment in payments)
        total_volume = sum(to_amount(payment.get("amount")) for payment in payments)
        month_volume = sum(
            to_amount(payment.get("amount"))
            for payment in payments
            if (parse_timestamp(payment.get("created_at")) or now) >= month_start
        )

        ratings = [to_amount(review.get("rating")) for review in await self._rows("reviews", "rating")]

        stats = {
            "users": {
                "total": await self._count("users"),
                "active": await self._count("users", eq={"is_active": True}),
                "verified": await self._count("users", eq={"email_verified": True, "phone_verified": True}),
                "newThisMonth": await self._count("users", gte=this_month),
                "taskers": await self._count("users", eq={"role": "TASKER"}),
            },
            "tasks": {
                "total": await self._count("tasks"),
                "open": await self._count("tasks", eq={"status": "OPEN"}),
                "inProgress": await self._count("tasks", eq={"status": "IN_PROGRESS"}),
                "completed": await self._count("tasks", eq={"status": "COMPLETED"}),
                "cancelled": await self._count("tasks", eq={"status": "CANCELLED"}),
                "newThisMonth": await self._count("tasks", gte=this_month),
            },
            "payments": {
                "totalVolume": total_volume,
                "totalFees": total_volume * PLATFORM_FEE_RATE,
                "pendingPayments": payment_status.get("PENDING", 0),
                "completedPayments": payment_status.get("COMPLETED", 0),
                "refundedPayments": payment_status.get("REFUNDED", 0),
                "thisMonthVolume": month_volume,
            },
            "reviews": {
                "total": len(ratings),
                "averageRating": sum(ratings) / len(ratings) if ratings else 0.0,
                "newThisMonth": await self._count("reviews", gte=this_month),
                "pendingModeration": 0,
            },
            "verifications": {
                "pending": await self._count("verifications", eq={"status": "PENDING"}),
                "approved": await self._count("verifications", eq={"status": "VERIFIED"}),
                "rejected": await self._count("verifications", eq={"status": "REJECTED"}),
                "newThisMonth": await self._count("verifications", gte=this_month),
            },
        }

        app_logger.info("Admin dashboard statistics generated")
        return stats

    async def get_users_for_moderation(
        self,
        filters: Optional[UserModerationFilters] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Page:
        filters = filters or UserModerationFilters()
        eq: Dict[str, Any] = {}
        if filters.role is not None:
            eq["role"] = filters.role.value
        if filters.is_active is not None:
            eq["is_active"] = filters.is_active
        if filters.email_verified is not None:
            eq["email_verified"] = filters.email_verified

        total = await self._count("users", eq=eq)
        offset = (page - 1) * limit
        query = self._select("users", USER_COLUMNS, eq=eq).order("created_at", desc=True).range(offset, offset + limit - 1)
        users = (await self._execute(query)).data or []

        user_ids = [user["id"] for user in users]
        posted = _group_by(await self._related("tasks", "id,status,poster_id", "poster_id", user_ids), "poster_id")
        assigned = _group_by(await self._related("tasks", "id,status,tasker_id", "tasker_id", user_ids), "tasker_id")
        reviews = _group_by(await self._related("reviews", "rating,reviewee_id", "reviewee_id", user_ids), "reviewee_id")

        now = utcnow()
        items = []
        for user in users:
            ratings = [to_amount(review.get("rating")) for review in reviews.get(user["id"], [])]
            item = build_moderation_user(user, posted.get(user["id"], []), assigned.get(user["id"], []), ratings, now)
            # flaggedOnly narrows the current page; the total still counts every matching user
            if filters.flagged_only and not any(item["flags"].values()):
                continue
            items.append(item)

        return Page(items=items, total=total)

    async def moderate_user(self, admin_id: str, user_id: str, action: str, reason: str) -> Dict[str, Any]:
        """Suspend or reactivate ``user_id``.

        Returns the audit details of the change: the reason, the previous and
        new ``is_active`` values and the target user's email.
        """
        users = self.client.table("users")
        rows = (await self._execute(users.select("id,is_active,email").eq("id", user_id))).data
        if not rows:
            raise NotFoundError("User not found")
        user = rows[0]

        is_active = action == "REACTIVATE"
        await self._execute(
            self.client.table("users").update({
                "is_active": is_active,
                "updated_at": utcnow().isoformat(),
            }).eq("id", user_id)
        )

        app_logger.info(
            f"User moderation action completed: admin={admin_id} user={user_id} action={action} "
            f"previous_active={user.get('is_active')}"
        )
        return {
            "action": action,
            "reason": reason,
            "previousStatus": user.get("is_active"),
            "newStatus": is_active,
            "targetUserEmail": user.get("email"),
        }

    async def get_pending_verifications(self, page: int = 1, limit: int = 20) -> Page:
        pending = {"status": "PENDING"}
        total = await self._count("verifications", eq=pending)
        offset = (page - 1) * limit
        query = (
            self._select("verifications", f"*,{VERIFICATION_USER_EMBED}", eq=pending)
            .order("created_at")
            .range(offset, offset + limit - 1)
        )
        verifications = (await self._execute(query)).data or []
        return Page(items=verifications, total=total)

    async def process_verification(
        self,
        admin_id: str,
        verification_id: str,
        action: str,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Approve or reject a pending verification and return its audit details."""
        query = self.client.table("verifications").select("id,status,type,user_id").eq("id", verification_id)
        rows = (await self._execute(query)).data
        if not rows:
            raise NotFoundError("Verification not found")
        verification = rows[0]

        if verification.get("status") != "PENDING":
            raise ConflictError("Only pending verifications can be processed")

        approved = action == "APPROVE"
        await self._execute(
            self.client.table("verifications").update({
                "status": "VERIFIED" if approved else "REJECTED",
                "reviewed_by": admin_id,
                "reviewed_at": utcnow().isoformat(),
                "rejection_reason": None if approved else notes,
            }).eq("id", verification_id)
        )

        user_id = verification.get("user_id")
        users = (await self._execute(self.client.table("users").select("id,email,trust_score").eq("id", user_id))).data
        user = users[0] if users else {}
        if approved and user:
            trust_score = to_amount(user.get("trust_score")) + TRUST_SCORE_VERIFICATION_BONUS
            await self._execute(self.client.table("users").update({"trust_score": trust_score}).eq("id", user_id))

        app_logger.info(
            f"Verification processed: admin={admin_id} verification={verification_id} "
            f"action={action} user={user_id}"
        )
        return {
            "action": action,
            "verificationType": verification.get("type"),
            "targetUserId": user_id,
            "targetUserEmail": user.get("email"),
            "notes": notes,
        }

    async def get_system_analytics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        date_range = self._date_range(start_date, end_date)
        completed = {"status": "COMPLETED"}

        users = await self._rows("users", "created_at", **date_range)
        task_statuses = Counter(task.get("status") for task in await self._rows("tasks", "status", **date_range))
        payments = await self._rows("payments", "amount,created_at", eq=completed, **date_range)

        category_counts = Counter(
            task.get("category_id")
            for task in await self._rows("tasks", "category_id", eq=completed, **date_range)
            if task.get("category_id") is not None
        ).most_common(10)
        category_ids = [category_id for category_id, _ in category_counts]
        category_names = {
            category["id"]: category.get("name")
            for category in await self._related("categories", "id,name", "id", category_ids)
        }

        total_users = await self._count("users")
        active_this_month = await self._count("users", gte={"last_active": utcnow() - INACTIVE_AFTER})

        return {
            "userGrowth": group_time_series(users),
            "taskCompletionRates": [
                {"status": status, "count": count} for status, count in task_statuses.items()
            ],
            "paymentVolume": group_time_series(payments, amount_field="amount"),
            "topCategories": [
                {
                    "categoryId": category_id,
                    "categoryName": category_names.get(category_id) or "Unknown",
                    "completedTasks": count,
                }
                for category_id, count in category_counts
            ],
            "userRetention": {
                "totalUsers": total_users,
                "activeThisMonth": active_this_month,
                "retentionRate": percentage(active_this_month, total_users),
            },
        }

    async def get_dispute_cases(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        eq: Dict[str, Any] = {}
        if status:
            eq["status"] = status
        if priority:
            eq["priority"] = priority

        total = await self._count("disputes", eq=eq)
        offset = (page - 1) * limit
        query = self._select("disputes", eq=eq).order("created_at", desc=True).range(offset, offset + limit - 1)
        disputes = (await self._execute(query)).data or []
        return Page(items=disputes, total=total)

    async def generate_health_report(self) -> Dict[str, Any]:
        now = utcnow()
        day_ago = now - timedelta(hours=24)
        week_ago = now - timedelta(days=7)

        active_users_24h = await self._count("users", eq={"is_active": True}, gte={"last_active": day_ago})
        new_registrations_7d = await self._count("users", gte={"created_at": week_ago})
        completed_tasks_7d = await self._count("tasks", eq={"status": "COMPLETED"}, gte={"completion_date": week_ago})
        total_tasks_7d = await self._count("tasks", gte={"created_at": week_ago})
        successful_payments_7d = await self._count("payments", eq={"status": "COMPLETED"}, gte={"created_at": week_ago})
        total_payments_7d = await self._count("payments", gte={"created_at": week_ago})

        task_completion_rate = percentage(completed_tasks_7d, total_tasks_7d)
        payment_success_rate = percentage(successful_payments_7d, total_payments_7d)

        return {
            "timestamp": now.isoformat(),
            "metrics": {
                "userActivity": {
                    "activeUsers24h": active_users_24h,
                    "newRegistrations7d": new_registrations_7d,
                    "growthRate": 0,
                },
                "taskPerformance": {
                    "completedTasks7d": completed_tasks_7d,
                    "totalTasks7d": total_tasks_7d,
                    "completionRate": round(task_completion_rate, 2),
                },
                "paymentHealth": {
                    "successfulPayments7d": successful_payments_7d,
                    "totalPayments7d": total_payments_7d,
                    "successRate": round(payment_success_rate, 2),
                },
            },
            "alerts": build_health_alerts(task_completion_rate, payment_success_rate, active_users_24h),
        }
