"""
Database abstraction for Postgres and an in-memory test implementation.

Users and reports are stored as single documents; every operation below
touches exactly one of them, so the backing store's per-row atomicity is
all the coordination the service needs.
"""

from __future__ import annotations

import copy
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

from sqlalchemy import JSON, Column, Float, Integer, String, create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from bugtracker.types import ReportStatus, Severity, UserRole


class UsernameTakenError(ValueError):
    """Raised when a user is created with a username that already exists."""

    def __init__(self, username: str):
        super().__init__(f"Username taken: {username}")
        self.username = username


def new_user_id() -> str:
    return f"u_{uuid.uuid4().hex}"


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class UserRecord:
    id: str
    name: str
    username: str
    password_hash: str
    role: UserRole = UserRole.USER
    push_token: Optional[str] = None


@dataclass
class CommentRecord:
    author_id: str
    author_name: str
    message: str
    id: str = field(default_factory=new_id)
    timestamp: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "message": self.message,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CommentRecord":
        return cls(
            id=data["id"],
            author_id=data.get("author_id") or "",
            author_name=data.get("author_name") or "",
            message=data.get("message") or "",
            timestamp=data.get("timestamp") or 0.0,
        )


@dataclass
class ReportDraft:
    """Caller-supplied fields of a new report."""

    reporter_id: Optional[str] = None
    reporter_name: Optional[str] = None
    app: Optional[str] = None
    page: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    screenshots: list[str] = field(default_factory=list)
    severity: Optional[Severity] = None


@dataclass
class ReportRecord:
    id: str
    reporter_id: Optional[str] = None
    reporter_name: Optional[str] = None
    app: Optional[str] = None
    page: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    screenshots: list[str] = field(default_factory=list)
    severity: Optional[Severity] = None
    status: ReportStatus = ReportStatus.OPEN
    assigned_to_id: Optional[str] = None
    assigned_to_name: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())
    comments: list[CommentRecord] = field(default_factory=list)


class DbClient(Protocol):
    """Interface for database access."""

    def create_user(
        self, *, name: str, username: str, password_hash: str, role: UserRole
    ) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        ...

    def list_users(self, role: Optional[UserRole] = None) -> list[UserRecord]:
        ...

    def update_password(self, user_id: str, password_hash: str) -> bool:
        ...

    def update_push_token(self, user_id: str, token: str) -> Optional[UserRecord]:
        ...

    def create_report(self, draft: ReportDraft) -> ReportRecord:
        ...

    def list_reports(self) -> list[ReportRecord]:
        ...

    def get_report(self, report_id: str) -> Optional[ReportRecord]:
        ...

    def update_report_status(
        self, report_id: str, status: ReportStatus
    ) -> Optional[ReportRecord]:
        ...

    def assign_report(
        self, report_id: str, assignee_id: str, assignee_name: Optional[str]
    ) -> Optional[ReportRecord]:
        ...

    def append_comment(
        self, report_id: str, comment: CommentRecord
    ) -> Optional[ReportRecord]:
        ...


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.reports: Dict[str, ReportRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.reports.clear()

    def create_user(
        self, *, name: str, username: str, password_hash: str, role: UserRole
    ) -> UserRecord:
        if self.get_user_by_username(username):
            raise UsernameTakenError(username)
        record = UserRecord(
            id=new_user_id(),
            name=name,
            username=username,
            password_hash=password_hash,
            role=role,
        )
        self.users[record.id] = record
        return copy.copy(record)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        return copy.copy(user) if user else None

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.username == username:
                return copy.copy(user)
        return None

    def list_users(self, role: Optional[UserRole] = None) -> list[UserRecord]:
        return [
            copy.copy(user)
            for user in self.users.values()
            if role is None or user.role == role
        ]

    def update_password(self, user_id: str, password_hash: str) -> bool:
        user = self.users.get(user_id)
        if not user:
            return False
        user.password_hash = password_hash
        return True

    def update_push_token(self, user_id: str, token: str) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if not user:
            return None
        user.push_token = token
        return copy.copy(user)

    def create_report(self, draft: ReportDraft) -> ReportRecord:
        now = time.time()
        record = ReportRecord(
            id=new_id(),
            reporter_id=draft.reporter_id,
            reporter_name=draft.reporter_name,
            app=draft.app,
            page=draft.page,
            url=draft.url,
            description=draft.description,
            screenshots=list(draft.screenshots),
            severity=draft.severity,
            created_at=now,
            updated_at=now,
        )
        self.reports[record.id] = record
        return copy.deepcopy(record)

    def list_reports(self) -> list[ReportRecord]:
        # Reverse insertion order first so equal timestamps stay newest first.
        newest_first = list(reversed(list(self.reports.values())))
        newest_first.sort(key=lambda report: report.created_at, reverse=True)
        return [copy.deepcopy(report) for report in newest_first]

    def get_report(self, report_id: str) -> Optional[ReportRecord]:
        report = self.reports.get(report_id)
        return copy.deepcopy(report) if report else None

    def update_report_status(
        self, report_id: str, status: ReportStatus
    ) -> Optional[ReportRecord]:
        report = self.reports.get(report_id)
        if not report:
            return None
        report.status = status
        report.updated_at = time.time()
        return copy.deepcopy(report)

    def assign_report(
        self, report_id: str, assignee_id: str, assignee_name: Optional[str]
    ) -> Optional[ReportRecord]:
        report = self.reports.get(report_id)
        if not report:
            return None
        report.assigned_to_id = assignee_id
        report.assigned_to_name = assignee_name
        report.updated_at = time.time()
        return copy.deepcopy(report)

    def append_comment(
        self, report_id: str, comment: CommentRecord
    ) -> Optional[ReportRecord]:
        report = self.reports.get(report_id)
        if not report:
            return None
        report.comments.append(copy.copy(comment))
        report.updated_at = time.time()
        return copy.deepcopy(report)


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            name=row.name,
            username=row.username,
            password_hash=row.password_hash,
            role=UserRole(row.role),
            push_token=row.push_token,
        )

    def _to_report_record(self, row: "ReportRow") -> ReportRecord:
        return ReportRecord(
            id=row.id,
            reporter_id=row.reporter_id,
            reporter_name=row.reporter_name,
            app=row.app,
            page=row.page,
            url=row.url,
            description=row.description,
            screenshots=list(row.screenshots or []),
            severity=Severity(row.severity) if row.severity else None,
            status=ReportStatus(row.status),
            assigned_to_id=row.assigned_to_id,
            assigned_to_name=row.assigned_to_name,
            created_at=row.created_at,
            updated_at=row.updated_at,
            comments=[CommentRecord.from_dict(c) for c in row.comments or []],
        )

    def _lock_report(self, session: Session, report_id: str) -> Optional["ReportRow"]:
        stmt = select(ReportRow).where(ReportRow.id == report_id).with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    def create_user(
        self, *, name: str, username: str, password_hash: str, role: UserRole
    ) -> UserRecord:
        with self.Session() as session:
            exists = session.execute(
                select(UserRow.id).where(UserRow.username == username)
            ).first()
            if exists:
                raise UsernameTakenError(username)
            row = UserRow(
                id=new_user_id(),
                name=name,
                username=username,
                password_hash=password_hash,
                role=UserRole(role).value,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise UsernameTakenError(username) from exc
            return self._to_user_record(row)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.username == username)
            ).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def list_users(self, role: Optional[UserRole] = None) -> list[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow)
            if role is not None:
                stmt = stmt.where(UserRow.role == UserRole(role).value)
            rows = session.execute(stmt).scalars().all()
            return [self._to_user_record(row) for row in rows]

    def update_password(self, user_id: str, password_hash: str) -> bool:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return False
            row.password_hash = password_hash
            session.commit()
            return True

    def update_push_token(self, user_id: str, token: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            row.push_token = token
            session.commit()
            return self._to_user_record(row)

    def create_report(self, draft: ReportDraft) -> ReportRecord:
        now = time.time()
        with self.Session() as session:
            row = ReportRow(
                id=new_id(),
                reporter_id=draft.reporter_id,
                reporter_name=draft.reporter_name,
                app=draft.app,
                page=draft.page,
                url=draft.url,
                description=draft.description,
                screenshots=list(draft.screenshots),
                severity=Severity(draft.severity).value if draft.severity else None,
                status=ReportStatus.OPEN.value,
                created_at=now,
                updated_at=now,
                comments=[],
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_report_record(row)

    def list_reports(self) -> list[ReportRecord]:
        with self.Session() as session:
            rows = (
                session.query(ReportRow)
                .order_by(ReportRow.created_at.desc(), ReportRow.seq.desc())
                .all()
            )
            return [self._to_report_record(row) for row in rows]

    def get_report(self, report_id: str) -> Optional[ReportRecord]:
        with self.Session() as session:
            row = session.execute(
                select(ReportRow).where(ReportRow.id == report_id)
            ).scalar_one_or_none()
            return self._to_report_record(row) if row else None

    def update_report_status(
        self, report_id: str, status: ReportStatus
    ) -> Optional[ReportRecord]:
        with self.Session() as session:
            row = self._lock_report(session, report_id)
            if not row:
                return None
            row.status = ReportStatus(status).value
            row.updated_at = time.time()
            session.commit()
            return self._to_report_record(row)

    def assign_report(
        self, report_id: str, assignee_id: str, assignee_name: Optional[str]
    ) -> Optional[ReportRecord]:
        with self.Session() as session:
            row = self._lock_report(session, report_id)
            if not row:
                return None
            row.assigned_to_id = assignee_id
            row.assigned_to_name = assignee_name
            row.updated_at = time.time()
            session.commit()
            return self._to_report_record(row)

    def append_comment(
        self, report_id: str, comment: CommentRecord
    ) -> Optional[ReportRecord]:
        with self.Session() as session:
            row = self._lock_report(session, report_id)
            if not row:
                return None
            # Reassign so the JSON column is flagged as modified.
            row.comments = [*(row.comments or []), comment.as_dict()]
            row.updated_at = time.time()
            session.commit()
            return self._to_report_record(row)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    username = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default=UserRole.USER.value, index=True)
    push_token = Column(String, nullable=True)


class ReportRow(Base):
    __tablename__ = "reports"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, index=True)
    reporter_id = Column(String, nullable=True, index=True)
    reporter_name = Column(String, nullable=True)
    app = Column(String, nullable=True)
    page = Column(String, nullable=True)
    url = Column(String, nullable=True)
    description = Column(String, nullable=True)
    screenshots = Column(JSON, nullable=False, default=list)
    severity = Column(String, nullable=True)
    status = Column(String, nullable=False, default=ReportStatus.OPEN.value, index=True)
    assigned_to_id = Column(String, nullable=True, index=True)
    assigned_to_name = Column(String, nullable=True)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)
    comments = Column(JSON, nullable=False, default=list)
