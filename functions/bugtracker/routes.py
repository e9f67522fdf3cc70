"""
HTTP routes for the bug tracker API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from bugtracker.config import Settings, get_settings
from bugtracker.db import CommentRecord, DbClient, ReportDraft, UsernameTakenError
from bugtracker.dependencies import get_db_client, get_dispatcher
from bugtracker.notifications import NotificationDispatcher
from bugtracker.schemas import (
    AssignReportRequest,
    CommentResponse,
    CreateCommentRequest,
    CreateReportRequest,
    CreateUserRequest,
    HealthResponse,
    LoginRequest,
    PublicUser,
    PushTokenRequest,
    PushTokenResponse,
    ReportResponse,
    ResetPasswordResponse,
    UpdateStatusRequest,
)
from bugtracker.security import hash_password, verify_password
from bugtracker.types import NotificationEvent

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_CREDENTIALS = "Invalid credentials"


@router.get("/", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", service="BugTracker API")


# --------------------
# Auth
# --------------------


@router.post("/auth/login", response_model=PublicUser)
def login(payload: LoginRequest, db: DbClient = Depends(get_db_client)):
    """
    Check a username/password pair and return the public profile.

    Unknown usernames and wrong passwords get the same 401 so callers cannot
    probe which accounts exist.
    """
    user = db.get_user_by_username(payload.username)
    if not user or not verify_password(payload.password, user.password_hash):
        logger.warning("Failed login for username %r", payload.username)
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)
    logger.info("User %s logged in", user.id)
    return PublicUser.from_record(user)


# --------------------
# Users
# --------------------


@router.get("/users", response_model=list[PublicUser])
def list_users(db: DbClient = Depends(get_db_client)):
    return [PublicUser.from_record(user) for user in db.list_users()]


@router.post("/users", response_model=PublicUser)
def create_user(payload: CreateUserRequest, db: DbClient = Depends(get_db_client)):
    if db.get_user_by_username(payload.username):
        raise HTTPException(status_code=400, detail="Username taken")
    try:
        user = db.create_user(
            name=payload.name,
            username=payload.username,
            password_hash=hash_password(payload.password),
            role=payload.role,
        )
    except UsernameTakenError:
        raise HTTPException(status_code=400, detail="Username taken")
    logger.info("Created %s user %s (%s)", user.role.value, user.id, user.username)
    return PublicUser.from_record(user)


@router.post("/users/fcm-token", response_model=PushTokenResponse)
def update_push_token(
    payload: PushTokenRequest, db: DbClient = Depends(get_db_client)
):
    user = db.update_push_token(payload.userId, payload.token)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return PushTokenResponse(success=True, userId=user.id)


@router.post("/users/{user_id}/reset-password", response_model=ResetPasswordResponse)
def reset_password(
    user_id: str,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    """
    Reset a user's password to the configured default.

    The request carries no caller identity, so the endpoint can be switched
    off with BUGTRACKER_ALLOW_PASSWORD_RESET=false.
    """
    if not settings.allow_password_reset:
        raise HTTPException(status_code=403, detail="Password reset is disabled")
    updated = db.update_password(user_id, hash_password(settings.default_reset_password))
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    logger.warning("Password for user %s was reset to the default", user_id)
    return ResetPasswordResponse(
        success=True, message="Password reset to the default password"
    )


# --------------------
# Reports
# --------------------


@router.get("/reports", response_model=list[ReportResponse])
def list_reports(db: DbClient = Depends(get_db_client)):
    return [ReportResponse.from_record(report) for report in db.list_reports()]


@router.get("/reports/{report_id}", response_model=ReportResponse)
def get_report(report_id: str, db: DbClient = Depends(get_db_client)):
    report = db.get_report(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return ReportResponse.from_record(report)


@router.post("/reports", response_model=ReportResponse)
def create_report(
    payload: CreateReportRequest,
    background_tasks: BackgroundTasks,
    db: DbClient = Depends(get_db_client),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    report = db.create_report(
        ReportDraft(
            reporter_id=payload.reporterId,
            reporter_name=payload.reporterName,
            app=payload.app,
            page=payload.page,
            url=payload.url,
            description=payload.description,
            screenshots=payload.screenshots,
            severity=payload.severity,
        )
    )
    logger.info("Report %s submitted by %s", report.id, report.reporter_id)
    # The whole developer pool hears about new reports, reporter included.
    background_tasks.add_task(dispatcher.dispatch, NotificationEvent.NEW_REPORT, report)
    return ReportResponse.from_record(report)


@router.put("/reports/{report_id}/status", response_model=ReportResponse)
def update_report_status(
    report_id: str,
    payload: UpdateStatusRequest,
    background_tasks: BackgroundTasks,
    db: DbClient = Depends(get_db_client),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    report = db.update_report_status(report_id, payload.status)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    logger.info("Report %s moved to %s", report.id, report.status.value)
    background_tasks.add_task(
        dispatcher.dispatch,
        NotificationEvent.STATUS_CHANGED,
        report,
        actor_id=payload.actorId,
    )
    return ReportResponse.from_record(report)


@router.put("/reports/{report_id}/assign", response_model=ReportResponse)
def assign_report(
    report_id: str,
    payload: AssignReportRequest,
    background_tasks: BackgroundTasks,
    db: DbClient = Depends(get_db_client),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    report = db.assign_report(report_id, payload.assignedToId, payload.assignedToName)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    logger.info("Report %s assigned to %s", report.id, report.assigned_to_id)
    background_tasks.add_task(
        dispatcher.dispatch,
        NotificationEvent.ASSIGNED,
        report,
        actor_id=payload.actorId,
    )
    return ReportResponse.from_record(report)


@router.post("/reports/{report_id}/comments", response_model=CommentResponse)
def add_comment(
    report_id: str,
    payload: CreateCommentRequest,
    background_tasks: BackgroundTasks,
    db: DbClient = Depends(get_db_client),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    comment = CommentRecord(
        author_id=payload.authorId,
        author_name=payload.authorName,
        message=payload.message,
    )
    report = db.append_comment(report_id, comment)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    background_tasks.add_task(
        dispatcher.dispatch,
        NotificationEvent.COMMENT_ADDED,
        report,
        actor_id=comment.author_id,
        actor_name=comment.author_name,
    )
    return CommentResponse.from_record(comment)
