"""Admin moderation request schemas and filter enums."""

from enum import Enum
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, Field, StringConstraints


class UserRole(str, Enum):
    USER = "USER"
    TASKER = "TASKER"
    ADMIN = "ADMIN"


class DisputeStatus(str, Enum):
    OPEN = "OPEN"
    INVESTIGATING = "INVESTIGATING"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class DisputePriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


ModerationReason = Annotated[str, StringConstraints(strip_whitespace=True, min_length=10, max_length=500)]
VerificationNotes = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]


class ModerateUserRequest(BaseModel):
    """Request schema for suspending or reactivating a user."""

    action: Literal["SUSPEND", "REACTIVATE"] = Field(..., description="Moderation action")
    reason: ModerationReason = Field(..., description="Reason for the action (10-500 characters)")

    model_config = {"json_schema_extra": {"example": {
        "action": "SUSPEND",
        "reason": "Repeated no-shows on accepted tasks"
    }}}


class ProcessVerificationRequest(BaseModel):
    """Request schema for approving or rejecting a verification."""

    action: Literal["APPROVE", "REJECT"] = Field(..., description="Verification decision")
    notes: Optional[VerificationNotes] = Field(default=None, description="Reviewer notes (up to 500 characters)")

    model_config = {"json_schema_extra": {"example": {
        "action": "REJECT",
        "notes": "Document photo is unreadable"
    }}}


class UserModerationFilters(BaseModel):
    """Filters accepted by the user moderation listing."""

    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    email_verified: Optional[bool] = None
    flagged_only: bool = False
