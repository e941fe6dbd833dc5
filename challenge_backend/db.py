"""
Database abstraction for users and submissions: Postgres (via SQLAlchemy)
and an in-memory test implementation.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from challenge_backend.ranking import LeaderboardEntry, competition_rank


class DuplicateUserError(Exception):
    """Raised when a username or email is already registered."""

    def __init__(self, field_name: str):
        super().__init__(f"duplicate {field_name}")
        self.field = field_name


class DbClient(Protocol):
    """Interface for database access."""

    def create_user(
        self, username: str, email: str, password_hash: str
    ) -> "UserRecord":
        ...

    def get_user(self, user_id: int) -> Optional["UserRecord"]:
        ...

    def find_user_by_username(self, username: str) -> Optional["UserRecord"]:
        ...

    def find_user_by_email(self, email: str) -> Optional["UserRecord"]:
        ...

    def list_users(self) -> List["UserRecord"]:
        ...

    def update_password(self, user_id: int, password_hash: str) -> None:
        ...

    def set_admin(self, user_id: int, is_admin: bool) -> bool:
        ...

    def find_submission(
        self, creator_id: int, question: str
    ) -> Optional["SubmissionRecord"]:
        ...

    def list_submissions(self, creator_id: int) -> List["SubmissionRecord"]:
        ...

    def find_submission_by_file_key(
        self, file_key: str
    ) -> Optional["SubmissionRecord"]:
        ...

    def upsert_submission(
        self, creator_id: int, question: str, file_key: str, *, max_updates: int
    ) -> Optional["SubmissionRecord"]:
        ...

    def update_submission(
        self,
        submission_id: int,
        creator_id: int,
        question: str,
        file_key: str,
        *,
        max_updates: int,
    ) -> Optional["SubmissionRecord"]:
        ...

    def apply_points(self, rows: Sequence[Tuple[str, int]]) -> int:
        ...

    def rank_users(self, limit: int = 10) -> List[LeaderboardEntry]:
        ...


@dataclass
class UserRecord:
    id: int
    username: str
    email: str
    password_hash: str
    total_points: int = 0
    is_admin: bool = False
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "total_points": self.total_points,
            "is_admin": self.is_admin,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class SubmissionRecord:
    id: int
    creator_id: int
    question: str
    file_key: str
    points: int = 0
    updates: int = 0
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "creator_id": self.creator_id,
            "question": self.question,
            "file_key": self.file_key,
            "points": self.points,
            "updates": self.updates,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class InMemoryDbClient:
    """
    Simple in-memory database for development and tests.

    Mirrors the SQL schema's rules: unique usernames/emails and at most one
    submission per (creator_id, question). Records handed out are copies.
    """

    def __init__(self):
        self.users: Dict[int, UserRecord] = {}
        self.submissions: Dict[int, SubmissionRecord] = {}
        self._user_ids = itertools.count(1)
        self._submission_ids = itertools.count(1)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.submissions.clear()
        self._user_ids = itertools.count(1)
        self._submission_ids = itertools.count(1)

    def create_user(
        self, username: str, email: str, password_hash: str
    ) -> UserRecord:
        if self.find_user_by_username(username):
            raise DuplicateUserError("username")
        if self.find_user_by_email(email):
            raise DuplicateUserError("email")
        record = UserRecord(
            id=next(self._user_ids),
            username=username,
            email=email,
            password_hash=password_hash,
        )
        self.users[record.id] = record
        return replace(record)

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        return replace(user) if user else None

    def find_user_by_username(self, username: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.username == username:
                return replace(user)
        return None

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email:
                return replace(user)
        return None

    def list_users(self) -> List[UserRecord]:
        return [replace(user) for user in self.users.values()]

    def update_password(self, user_id: int, password_hash: str) -> None:
        user = self.users.get(user_id)
        if user:
            user.password_hash = password_hash
            user.updated_at = time.time()

    def set_admin(self, user_id: int, is_admin: bool) -> bool:
        user = self.users.get(user_id)
        if not user:
            return False
        user.is_admin = is_admin
        user.updated_at = time.time()
        return True

    def _find(self, creator_id: int, question: str) -> Optional[SubmissionRecord]:
        for submission in self.submissions.values():
            if submission.creator_id == creator_id and submission.question == question:
                return submission
        return None

    def find_submission(
        self, creator_id: int, question: str
    ) -> Optional[SubmissionRecord]:
        submission = self._find(creator_id, question)
        return replace(submission) if submission else None

    def list_submissions(self, creator_id: int) -> List[SubmissionRecord]:
        return [
            replace(submission)
            for submission in self.submissions.values()
            if submission.creator_id == creator_id
        ]

    def find_submission_by_file_key(self, file_key: str) -> Optional[SubmissionRecord]:
        for submission in self.submissions.values():
            if submission.file_key == file_key:
                return replace(submission)
        return None

    def _bump(
        self, submission: SubmissionRecord, file_key: str, max_updates: int
    ) -> Optional[SubmissionRecord]:
        if submission.updates >= max_updates:
            return None
        submission.file_key = file_key
        submission.updates += 1
        submission.updated_at = time.time()
        return replace(submission)

    def upsert_submission(
        self, creator_id: int, question: str, file_key: str, *, max_updates: int
    ) -> Optional[SubmissionRecord]:
        existing = self._find(creator_id, question)
        if existing:
            return self._bump(existing, file_key, max_updates)
        record = SubmissionRecord(
            id=next(self._submission_ids),
            creator_id=creator_id,
            question=question,
            file_key=file_key,
        )
        self.submissions[record.id] = record
        return replace(record)

    def update_submission(
        self,
        submission_id: int,
        creator_id: int,
        question: str,
        file_key: str,
        *,
        max_updates: int,
    ) -> Optional[SubmissionRecord]:
        submission = self.submissions.get(submission_id)
        if (
            not submission
            or submission.creator_id != creator_id
            or submission.question != question
        ):
            return None
        return self._bump(submission, file_key, max_updates)

    def apply_points(self, rows: Sequence[Tuple[str, int]]) -> int:
        now = time.time()
        affected = 0
        for fragment, points in rows:
            for submission in self.submissions.values():
                if fragment in submission.file_key:
                    submission.points = points
                    submission.updated_at = now
                    affected += 1
        for user in self.users.values():
            user.total_points = sum(
                submission.points
                for submission in self.submissions.values()
                if submission.creator_id == user.id
            )
        return affected

    def rank_users(self, limit: int = 10) -> List[LeaderboardEntry]:
        ranked = competition_rank(
            (user.username, user.total_points) for user in self.users.values()
        )
        return ranked[:limit]


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
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
            username=row.username,
            email=row.email,
            password_hash=row.password_hash,
            total_points=row.total_points,
            is_admin=row.is_admin,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_submission_record(self, row: "SubmissionRow") -> SubmissionRecord:
        return SubmissionRecord(
            id=row.id,
            creator_id=row.creator_id,
            question=row.question,
            file_key=row.file_key,
            points=row.points,
            updates=row.updates,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def create_user(
        self, username: str, email: str, password_hash: str
    ) -> UserRecord:
        now = time.time()
        with self.Session() as session:
            row = UserRow(
                username=username,
                email=email,
                password_hash=password_hash,
                total_points=0,
                is_admin=False,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                # Only unique-column collisions become DuplicateUserError.
                if self.find_user_by_username(username):
                    raise DuplicateUserError("username") from exc
                if self.find_user_by_email(email):
                    raise DuplicateUserError("email") from exc
                raise
            session.refresh(row)
            return self._to_user_record(row)

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def _find_user(self, criterion) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.execute(select(UserRow).where(criterion)).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def find_user_by_username(self, username: str) -> Optional[UserRecord]:
        return self._find_user(UserRow.username == username)

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        return self._find_user(UserRow.email == email)

    def list_users(self) -> List[UserRecord]:
        with self.Session() as session:
            rows = session.execute(select(UserRow).order_by(UserRow.id.asc())).scalars()
            return [self._to_user_record(row) for row in rows]

    def update_password(self, user_id: int, password_hash: str) -> None:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return
            row.password_hash = password_hash
            row.updated_at = time.time()
            session.commit()

    def set_admin(self, user_id: int, is_admin: bool) -> bool:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return False
            row.is_admin = is_admin
            row.updated_at = time.time()
            session.commit()
            return True

    def find_submission(
        self, creator_id: int, question: str
    ) -> Optional[SubmissionRecord]:
        with self.Session() as session:
            stmt = select(SubmissionRow).where(
                SubmissionRow.creator_id == creator_id,
                SubmissionRow.question == question,
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_submission_record(row) if row else None

    def list_submissions(self, creator_id: int) -> List[SubmissionRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(SubmissionRow)
                .where(SubmissionRow.creator_id == creator_id)
                .order_by(SubmissionRow.id.asc())
            ).scalars()
            return [self._to_submission_record(row) for row in rows]

    def find_submission_by_file_key(self, file_key: str) -> Optional[SubmissionRecord]:
        with self.Session() as session:
            row = session.execute(
                select(SubmissionRow).where(SubmissionRow.file_key == file_key).limit(1)
            ).scalar_one_or_none()
            return self._to_submission_record(row) if row else None

    def _bump_submission(
        self, session: Session, criteria: tuple, file_key: str, max_updates: int
    ) -> Optional[SubmissionRecord]:
        """Conditionally move a submission to a new file, counting the update."""
        result = session.execute(
            update(SubmissionRow)
            .where(*criteria, SubmissionRow.updates < max_updates)
            .values(
                file_key=file_key,
                updates=SubmissionRow.updates + 1,
                updated_at=time.time(),
            )
            .execution_options(synchronize_session=False)
        )
        session.commit()
        if not result.rowcount:
            return None
        row = session.execute(
            select(SubmissionRow)
            .where(*criteria)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return self._to_submission_record(row)

    def upsert_submission(
        self, creator_id: int, question: str, file_key: str, *, max_updates: int
    ) -> Optional[SubmissionRecord]:
        """
        Insert a fresh submission, or count an update on the existing one.

        The (creator_id, question) unique constraint arbitrates concurrent
        inserts: the loser falls through to the guarded update instead of
        creating a second row. Returns None when the existing row is capped.
        """
        now = time.time()
        with self.Session() as session:
            row = SubmissionRow(
                creator_id=creator_id,
                question=question,
                file_key=file_key,
                points=0,
                updates=0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
            else:
                return self._to_submission_record(row)

            criteria = (
                SubmissionRow.creator_id == creator_id,
                SubmissionRow.question == question,
            )
            return self._bump_submission(session, criteria, file_key, max_updates)

    def update_submission(
        self,
        submission_id: int,
        creator_id: int,
        question: str,
        file_key: str,
        *,
        max_updates: int,
    ) -> Optional[SubmissionRecord]:
        criteria = (
            SubmissionRow.id == submission_id,
            SubmissionRow.creator_id == creator_id,
            SubmissionRow.question == question,
        )
        with self.Session() as session:
            return self._bump_submission(session, criteria, file_key, max_updates)

    def apply_points(self, rows: Sequence[Tuple[str, int]]) -> int:
        """
        Set points on every submission whose file_key contains each fragment,
        then recompute user totals. One transaction for the whole batch.
        """
        now = time.time()
        affected = 0
        with self.Session() as session:
            for fragment, points in rows:
                result = session.execute(
                    update(SubmissionRow)
                    .where(SubmissionRow.file_key.contains(fragment, autoescape=True))
                    .values(points=points, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                affected += result.rowcount or 0

            subtotal = (
                select(func.coalesce(func.sum(SubmissionRow.points), 0))
                .where(SubmissionRow.creator_id == UserRow.id)
                .scalar_subquery()
            )
            session.execute(
                update(UserRow)
                .values(total_points=subtotal)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        return affected

    def rank_users(self, limit: int = 10) -> List[LeaderboardEntry]:
        rank = func.rank().over(order_by=UserRow.total_points.desc()).label("rank")
        stmt = (
            select(UserRow.username, UserRow.total_points, rank)
            .order_by(UserRow.total_points.desc(), UserRow.username.asc())
            .limit(limit)
        )
        with self.Session() as session:
            return [
                LeaderboardEntry(username=username, points=points, rank=position)
                for username, points, position in session.execute(stmt)
            ]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, nullable=False, unique=True)
    email = Column(Text, nullable=False, unique=True)
    password_hash = Column("password", Text, nullable=False)
    total_points = Column(Integer, nullable=False, default=0)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class SubmissionRow(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        UniqueConstraint(
            "creator_id", "question", name="uq_submissions_creator_question"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    question = Column(Text, nullable=False)
    file_key = Column(Text, nullable=False)
    points = Column(Integer, nullable=False, default=0)
    updates = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
