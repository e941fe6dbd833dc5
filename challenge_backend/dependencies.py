"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request

from challenge_backend.accounts import AccountService
from challenge_backend.auth import Forbidden, Unauthorized, require_admin, require_authenticated
from challenge_backend.config import get_settings
from challenge_backend.db import DbClient, InMemoryDbClient, PostgresDbClient
from challenge_backend.ledger import SubmissionLedger
from challenge_backend.mailer import EmailClient, InMemoryEmailClient, SmtpEmailClient
from challenge_backend.ranking import RankingEngine
from challenge_backend.sessions import (
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    SessionManager,
)
from challenge_backend.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from challenge_backend.uploads import ObjectStorageGateway

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_kv_store: KeyValueStore | None = None
_email_client: EmailClient | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so users and submissions persist across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_kv_store() -> KeyValueStore:
    """
    Return a singleton key-value store backing sessions and reset tokens.
    """
    global _kv_store
    if _kv_store:
        return _kv_store

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _kv_store = RedisKeyValueStore(url=settings.redis_url)
    else:
        _kv_store = InMemoryKeyValueStore()
    return _kv_store


def get_email_client() -> EmailClient:
    global _email_client
    if _email_client:
        return _email_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.smtp_host:
        _email_client = InMemoryEmailClient()
    else:
        _email_client = SmtpEmailClient(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.mail_from,
            user=settings.smtp_user,
            password=settings.smtp_password,
            use_ssl=settings.smtp_use_ssl,
        )
    return _email_client


def get_session_manager(store: KeyValueStore = Depends(get_kv_store)) -> SessionManager:
    return SessionManager(store, max_age_seconds=get_settings().session_max_age_seconds)


def get_ledger(db: DbClient = Depends(get_db_client)) -> SubmissionLedger:
    return SubmissionLedger(db)


def get_ranking_engine(db: DbClient = Depends(get_db_client)) -> RankingEngine:
    return RankingEngine(db)


def get_storage_gateway(
    storage: StorageClient = Depends(get_storage_client),
) -> ObjectStorageGateway:
    return ObjectStorageGateway(storage)


def get_account_service(
    db: DbClient = Depends(get_db_client),
    sessions: SessionManager = Depends(get_session_manager),
    mailer: EmailClient = Depends(get_email_client),
) -> AccountService:
    return AccountService(db, sessions, mailer, frontend_url=get_settings().frontend_url)


def get_session_token(request: Request) -> Optional[str]:
    return request.cookies.get(get_settings().session_cookie_name)


def get_current_user_id(
    token: Optional[str] = Depends(get_session_token),
    sessions: SessionManager = Depends(get_session_manager),
) -> Optional[int]:
    return sessions.resolve(token)


def authenticated_user_id(
    user_id: Optional[int] = Depends(get_current_user_id),
) -> int:
    try:
        return require_authenticated(user_id)
    except Unauthorized as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def admin_user_id(
    user_id: Optional[int] = Depends(get_current_user_id),
    db: DbClient = Depends(get_db_client),
) -> int:
    try:
        return require_admin(db, user_id)
    except Unauthorized as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except Forbidden as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
