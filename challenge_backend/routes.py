"""
HTTP routes for the challenge backend API.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from challenge_backend.accounts import AccountResult, AccountService
from challenge_backend.config import get_settings
from challenge_backend.db import DbClient
from challenge_backend.dependencies import (
    admin_user_id,
    authenticated_user_id,
    get_account_service,
    get_current_user_id,
    get_db_client,
    get_ledger,
    get_ranking_engine,
    get_session_token,
    get_storage_gateway,
)
from challenge_backend.ledger import SubmissionLedger, SubmissionOptions
from challenge_backend.ranking import DEFAULT_LIMIT, RankingEngine
from challenge_backend.schemas import (
    ChangePasswordRequest,
    CheckExistingRequest,
    CreateSubmissionRequest,
    DeleteFileRequest,
    ExistingSubmissionResponse,
    ForgotPasswordRequest,
    LeaderboardRow,
    LoginRequest,
    LogoutResponse,
    MessageField,
    MessagesResponse,
    RegisterRequest,
    SignedUrlResponse,
    SubmissionInfo,
    SubmissionResponse,
    UpdatePointsRequest,
    UploadUrlRequest,
    UserInfo,
    UserResponse,
    ViewUrlRequest,
    existing_submission_response,
    leaderboard_row,
    message_fields,
    messages_response,
    signed_url_response,
    submission_info,
    submission_response,
    user_info,
)
from challenge_backend.types import FieldError
from challenge_backend.uploads import ObjectStorageGateway

logger = logging.getLogger(__name__)

router = APIRouter()


def _start_session(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


def _account_response(result: AccountResult, response: Response) -> UserResponse:
    if result.session_token:
        _start_session(response, result.session_token)
    return UserResponse(
        errors=message_fields(result.errors),
        success=message_fields(result.success),
        user=user_info(result.user) if result.user else None,
    )


@router.get("/me", response_model=Optional[UserInfo])
def me(
    user_id: Optional[int] = Depends(get_current_user_id),
    accounts: AccountService = Depends(get_account_service),
):
    user = accounts.me(user_id)
    return user_info(user) if user else None


@router.get("/users", response_model=List[UserInfo])
def list_users(
    _admin_id: int = Depends(admin_user_id),
    accounts: AccountService = Depends(get_account_service),
):
    return [user_info(user) for user in accounts.list_users()]


@router.post("/register", response_model=UserResponse)
def register(
    payload: RegisterRequest,
    response: Response,
    accounts: AccountService = Depends(get_account_service),
):
    result = accounts.register(payload.username, payload.email, payload.password)
    return _account_response(result, response)


@router.post("/login", response_model=UserResponse)
def login(
    payload: LoginRequest,
    response: Response,
    accounts: AccountService = Depends(get_account_service),
):
    result = accounts.login(payload.username_or_email, payload.password)
    return _account_response(result, response)


@router.post("/logout", response_model=LogoutResponse)
def logout(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    accounts: AccountService = Depends(get_account_service),
):
    ok = accounts.logout(token)
    response.delete_cookie(get_settings().session_cookie_name)
    return LogoutResponse(ok=ok)


@router.post("/forgot-password", response_model=UserResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    response: Response,
    accounts: AccountService = Depends(get_account_service),
):
    return _account_response(accounts.forgot_password(payload.email), response)


@router.post("/change-password", response_model=UserResponse)
def change_password(
    payload: ChangePasswordRequest,
    response: Response,
    accounts: AccountService = Depends(get_account_service),
):
    result = accounts.change_password(payload.token, payload.new_password)
    return _account_response(result, response)


@router.get("/user-points", response_model=List[SubmissionInfo])
def user_points(
    user_id: int = Depends(authenticated_user_id),
    ledger: SubmissionLedger = Depends(get_ledger),
):
    return [submission_info(record) for record in ledger.list_for_user(user_id)]


@router.get("/top-scores", response_model=Optional[List[LeaderboardRow]])
def top_scores(
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=100),
    ranking: RankingEngine = Depends(get_ranking_engine),
):
    entries = ranking.top_scores(limit)
    if entries is None:
        return None
    return [leaderboard_row(entry) for entry in entries]


@router.post("/upload-url", response_model=SignedUrlResponse)
def upload_url(
    payload: UploadUrlRequest,
    user_id: int = Depends(authenticated_user_id),
    gateway: ObjectStorageGateway = Depends(get_storage_gateway),
):
    result = gateway.get_upload_url(
        payload.file_name,
        payload.path,
        metadata=payload.metadata,
        file_type=payload.file_type,
    )
    if result.file_key:
        logger.info("Issued upload URL for %s to user %s", result.file_key, user_id)
    return signed_url_response(result)


@router.post("/view-url", response_model=SignedUrlResponse)
def view_url(
    payload: ViewUrlRequest,
    user_id: int = Depends(authenticated_user_id),
    ledger: SubmissionLedger = Depends(get_ledger),
    gateway: ObjectStorageGateway = Depends(get_storage_gateway),
    db: DbClient = Depends(get_db_client),
):
    missing = SignedUrlResponse(
        errors=[
            MessageField(
                field="signedUrl",
                message="Error: could not find file for this submission",
            )
        ]
    )
    if payload.question:
        submission = ledger.find_for_user(user_id, payload.question)
        if submission is None:
            return missing
        file_key = submission.file_key
    else:
        # Only the owner (or an admin) may look at a stored file.
        file_key = payload.file_key
        owned = any(s.file_key == file_key for s in ledger.list_for_user(user_id))
        user = db.get_user(user_id)
        if not owned and not (user and user.is_admin):
            return missing
    return signed_url_response(gateway.get_view_url(file_key))


@router.post("/check-existing-submission", response_model=ExistingSubmissionResponse)
def check_existing_submission(
    payload: CheckExistingRequest,
    user_id: int = Depends(authenticated_user_id),
    ledger: SubmissionLedger = Depends(get_ledger),
):
    return existing_submission_response(ledger.check_existing(user_id, payload.question))


@router.post("/submissions", response_model=SubmissionResponse)
def create_or_update_submission(
    payload: CreateSubmissionRequest,
    user_id: int = Depends(authenticated_user_id),
    ledger: SubmissionLedger = Depends(get_ledger),
):
    options = SubmissionOptions(
        question=payload.question,
        file_key=payload.file_key,
        existing=payload.existing,
        id=payload.id,
        creator_id=payload.creator_id,
        updates=payload.updates,
    )
    return submission_response(ledger.record_or_update(user_id, options))


@router.post("/update-points", response_model=MessageField)
def update_points(
    payload: UpdatePointsRequest,
    admin_id: int = Depends(admin_user_id),
    ledger: SubmissionLedger = Depends(get_ledger),
):
    logger.info("Admin %s applying %s point rows", admin_id, len(payload.rows))
    outcome: FieldError = ledger.bulk_update_points(
        [(row.file_key_fragment, row.points) for row in payload.rows]
    )
    return MessageField(field=outcome.field, message=outcome.message)


@router.post("/delete-file", response_model=MessagesResponse)
def delete_file(
    payload: DeleteFileRequest,
    user_id: int = Depends(authenticated_user_id),
    ledger: SubmissionLedger = Depends(get_ledger),
    gateway: ObjectStorageGateway = Depends(get_storage_gateway),
    db: DbClient = Depends(get_db_client),
):
    # Files a submission still links to can only be removed by an admin.
    if ledger.is_linked(payload.file_key):
        user = db.get_user(user_id)
        if not (user and user.is_admin):
            logger.warning(
                "User %s tried to delete linked file %s", user_id, payload.file_key
            )
            return MessagesResponse(
                errors=[
                    MessageField(
                        field="Delete File",
                        message="File is still linked to a submission.",
                    )
                ]
            )
    logger.info("User %s deleting %s", user_id, payload.file_key)
    return messages_response(gateway.delete_object(payload.file_key))
