"""
Pydantic schemas for the challenge backend API.

These are kept apart from the SQLAlchemy rows in `db.py`; the functions at
the bottom map service records onto them.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from pydantic import BaseModel, Field, model_validator

from challenge_backend.db import SubmissionRecord, UserRecord
from challenge_backend.ledger import ExistingSubmission, SubmissionOutcome
from challenge_backend.ranking import LeaderboardEntry
from challenge_backend.types import FieldError, Messages
from challenge_backend.uploads import SignedUrlResult


class MessageField(BaseModel):
    field: str
    message: str


class UserInfo(BaseModel):
    id: int
    username: str
    email: str
    total_points: int
    is_admin: bool
    created_at: float
    updated_at: float


class SubmissionInfo(BaseModel):
    id: int
    creator_id: int
    question: str
    file_key: str
    points: int
    updates: int
    created_at: float
    updated_at: float


class LeaderboardRow(BaseModel):
    username: str
    points: int
    rank: int


class RegisterRequest(BaseModel):
    username: str = Field(..., max_length=64)
    email: str = Field(..., max_length=254)
    password: str = Field(..., max_length=256)


class LoginRequest(BaseModel):
    username_or_email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ChangePasswordRequest(BaseModel):
    token: str
    new_password: str


class UserResponse(BaseModel):
    errors: Optional[List[MessageField]] = None
    success: Optional[List[MessageField]] = None
    user: Optional[UserInfo] = None


class LogoutResponse(BaseModel):
    ok: bool


class UploadUrlRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    path: str = "/"
    file_type: Optional[str] = None
    metadata: Optional[dict[str, str]] = None


class ViewUrlRequest(BaseModel):
    file_key: Optional[str] = None
    question: Optional[str] = None

    @model_validator(mode="after")
    def _needs_key_or_question(self):
        if not self.file_key and not self.question:
            raise ValueError("file_key or question is required")
        return self


class SignedUrlData(BaseModel):
    signed_url: str
    file_key: str


class SignedUrlResponse(BaseModel):
    errors: Optional[List[MessageField]] = None
    upload_data: Optional[SignedUrlData] = None


class CheckExistingRequest(BaseModel):
    question: str


class ExistingSubmissionResponse(BaseModel):
    existing: bool
    id: Optional[int] = None
    creator_id: Optional[int] = None
    updates: Optional[int] = None
    file_key: Optional[str] = None
    errors: Optional[List[MessageField]] = None


class CreateSubmissionRequest(BaseModel):
    question: str = Field(..., min_length=1)
    file_key: str = Field(..., min_length=1)
    existing: bool = False
    id: Optional[int] = None
    creator_id: Optional[int] = None
    updates: Optional[int] = Field(default=None, ge=0)


class SubmissionResponse(BaseModel):
    submission: Optional[SubmissionInfo] = None
    success: Optional[List[MessageField]] = None
    errors: Optional[List[MessageField]] = None


class UpdatePointsRow(BaseModel):
    file_key_fragment: str = Field(..., min_length=1)
    points: int


class UpdatePointsRequest(BaseModel):
    rows: List[UpdatePointsRow]


class DeleteFileRequest(BaseModel):
    file_key: str = Field(..., min_length=1)


class MessagesResponse(BaseModel):
    success: Optional[List[MessageField]] = None
    errors: Optional[List[MessageField]] = None


def message_fields(items: Iterable[FieldError]) -> Optional[List[MessageField]]:
    fields = [MessageField(field=item.field, message=item.message) for item in items]
    return fields or None


def user_info(record: UserRecord) -> UserInfo:
    return UserInfo(**record.as_dict())


def submission_info(record: SubmissionRecord) -> SubmissionInfo:
    return SubmissionInfo(**record.as_dict())


def leaderboard_row(entry: LeaderboardEntry) -> LeaderboardRow:
    return LeaderboardRow(**entry.as_dict())


def signed_url_response(result: SignedUrlResult) -> SignedUrlResponse:
    if result.errors:
        return SignedUrlResponse(errors=message_fields(result.errors))
    return SignedUrlResponse(
        upload_data=SignedUrlData(signed_url=result.signed_url, file_key=result.file_key)
    )


def existing_submission_response(result: ExistingSubmission) -> ExistingSubmissionResponse:
    return ExistingSubmissionResponse(
        existing=result.existing,
        id=result.id,
        creator_id=result.creator_id,
        updates=result.updates,
        file_key=result.file_key,
        errors=message_fields(result.errors),
    )


def submission_response(outcome: SubmissionOutcome) -> SubmissionResponse:
    return SubmissionResponse(
        submission=submission_info(outcome.submission) if outcome.submission else None,
        success=message_fields(outcome.success),
        errors=message_fields(outcome.errors),
    )


def messages_response(messages: Messages) -> MessagesResponse:
    return MessagesResponse(
        success=message_fields(messages.success),
        errors=message_fields(messages.errors),
    )
