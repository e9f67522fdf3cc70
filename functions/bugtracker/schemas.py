"""
Pydantic schemas for the bug tracker API.

Wire names are camelCase to match the web and mobile clients.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

from bugtracker.db import CommentRecord, ReportRecord, UserRecord
from bugtracker.types import ReportStatus, Severity, UserRole


def _to_datetime(epoch_seconds: float) -> datetime:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)


class HealthResponse(BaseModel):
    status: Literal["ok"]
    service: str


class ErrorResponse(BaseModel):
    error: str


class LoginRequest(BaseModel):
    username: str
    password: str


class PublicUser(BaseModel):
    """Public view of a user; has no field that could carry the password hash."""

    id: str
    name: Optional[str] = None
    username: str
    role: UserRole

    @classmethod
    def from_record(cls, user: UserRecord) -> "PublicUser":
        return cls(id=user.id, name=user.name, username=user.username, role=user.role)


class CreateUserRequest(BaseModel):
    name: str = Field(..., max_length=200)
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=72)
    role: UserRole = UserRole.USER


class ResetPasswordResponse(BaseModel):
    success: bool
    message: str


class PushTokenRequest(BaseModel):
    userId: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)


class PushTokenResponse(BaseModel):
    success: bool
    userId: str


class CommentResponse(BaseModel):
    id: str
    authorId: str
    authorName: str
    message: str
    timestamp: datetime

    @classmethod
    def from_record(cls, comment: CommentRecord) -> "CommentResponse":
        return cls(
            id=comment.id,
            authorId=comment.author_id,
            authorName=comment.author_name,
            message=comment.message,
            timestamp=_to_datetime(comment.timestamp),
        )


class ReportResponse(BaseModel):
    id: str
    reporterId: Optional[str] = None
    reporterName: Optional[str] = None
    app: Optional[str] = None
    page: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    screenshots: list[str] = Field(default_factory=list)
    severity: Optional[Severity] = None
    status: ReportStatus
    assignedToId: Optional[str] = None
    assignedToName: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime
    comments: list[CommentResponse] = Field(default_factory=list)

    @classmethod
    def from_record(cls, report: ReportRecord) -> "ReportResponse":
        return cls(
            id=report.id,
            reporterId=report.reporter_id,
            reporterName=report.reporter_name,
            app=report.app,
            page=report.page,
            url=report.url,
            description=report.description,
            screenshots=report.screenshots,
            severity=report.severity,
            status=report.status,
            assignedToId=report.assigned_to_id,
            assignedToName=report.assigned_to_name,
            createdAt=_to_datetime(report.created_at),
            updatedAt=_to_datetime(report.updated_at),
            comments=[CommentResponse.from_record(c) for c in report.comments],
        )


class CreateReportRequest(BaseModel):
    reporterId: Optional[str] = None
    reporterName: Optional[str] = None
    app: Optional[str] = None
    page: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    screenshots: list[str] = Field(default_factory=list)
    severity: Optional[Severity] = None


class UpdateStatusRequest(BaseModel):
    status: ReportStatus
    actorId: Optional[str] = None


class AssignReportRequest(BaseModel):
    assignedToId: str = Field(..., min_length=1)
    assignedToName: Optional[str] = None
    actorId: Optional[str] = None


class CreateCommentRequest(BaseModel):
    authorId: str = Field(..., min_length=1)
    authorName: str = ""
    message: str = Field(..., min_length=1)
