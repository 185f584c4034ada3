"""
HTTP routes for the FamHub API.

Every handler catches store failures at its own boundary and answers with the
`{"success": ...}` envelope from `famhub.errors`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from famhub.config import Settings, get_settings
from famhub.dependencies import (
    get_relational_client,
    get_tabular_client,
    get_upload_storage,
)
from famhub.errors import (
    AdapterError,
    ConfigurationError,
    FamhubError,
    NotFoundError,
    ValidationError,
    error_response,
    success_response,
)
from famhub.likes import like_question as increment_like
from famhub.relational import USERS_TABLE, RelationalClient
from famhub.schemas import (
    ConnectionTestResponse,
    CreateMemoryRequest,
    CreateProfileRequest,
    CreateQuestionRequest,
    EnvCheckResponse,
    LikeResponse,
    MemoryResponse,
    ProfileResponse,
    QuestionResponse,
    RecordsResponse,
    UploadResponse,
    UserLookupResponse,
    UsersResponse,
)
from famhub.storage import UploadStorage, normalize_folder
from famhub.tabular import (
    MEMORIES_TABLE,
    QUESTIONS_TABLE,
    USER_TABLE,
    USERS_BY_EMAIL_TABLE,
    ListOptions,
    TabularClient,
)

logger = logging.getLogger(__name__)

router = APIRouter()

GRID_VIEW = "Grid view"
NEWEST_FIRST = [("Timestamp", "desc")]
MEMORY_REQUIRED_FIELDS = ("title", "content", "user_id", "Timestamp")


def _require_tabular(tabular: Optional[TabularClient]) -> TabularClient:
    if tabular is None:
        raise ConfigurationError("Airtable is not configured")
    return tabular


def _fail(exc: Exception, action: str, status_code: Optional[int] = None):
    """Log a handler failure and turn it into the error envelope."""
    if isinstance(exc, (ConfigurationError, ValidationError)):
        logger.warning("%s: %s", action, exc)
        return error_response(exc, status_code)
    if isinstance(exc, FamhubError):
        logger.error("%s: %s", action, exc.message)
        return error_response(exc, status_code)
    logger.exception("%s", action)
    return error_response(AdapterError(str(exc) or action), status_code)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@router.get("/records", response_model=RecordsResponse)
def list_records(
    settings: Settings = Depends(get_settings),
    tabular: Optional[TabularClient] = Depends(get_tabular_client),
):
    """List a few records from the table named by AIRTABLE_TABLE_NAME."""
    try:
        records = _require_tabular(tabular).list_records(
            settings.records_table_name, ListOptions(max_records=3, view=GRID_VIEW)
        )
    except Exception as exc:
        return _fail(exc, "Failed to fetch records")
    return success_response(records=[record.as_dict() for record in records])


@router.get("/users", response_model=UsersResponse)
def list_users(tabular: Optional[TabularClient] = Depends(get_tabular_client)):
    try:
        records = _require_tabular(tabular).list_records(
            USER_TABLE, ListOptions(max_records=10, view=GRID_VIEW)
        )
    except Exception as exc:
        return _fail(exc, "Failed to fetch users")
    return success_response(users=[record.as_dict() for record in records])


@router.get("/connection-test", response_model=ConnectionTestResponse)
def connection_test(tabular: Optional[TabularClient] = Depends(get_tabular_client)):
    try:
        records = _require_tabular(tabular).list_records(
            USER_TABLE, ListOptions(max_records=1, view=GRID_VIEW)
        )
    except Exception as exc:
        return _fail(exc, "Failed to connect to Airtable")
    return success_response(
        connectionTest="Airtable connection successful!",
        recordCount=len(records),
        sampleRecord=records[0].as_dict() if records else None,
    )


@router.get("/questions", response_model=RecordsResponse)
def list_questions(tabular: Optional[TabularClient] = Depends(get_tabular_client)):
    """List all questions, newest first."""
    try:
        records = _require_tabular(tabular).list_records(
            QUESTIONS_TABLE, ListOptions(sort=NEWEST_FIRST)
        )
    except Exception as exc:
        return _fail(exc, "Failed to fetch questions")
    return success_response(records=[record.as_dict() for record in records])


@router.post("/questions", response_model=QuestionResponse)
def create_question(
    payload: CreateQuestionRequest,
    tabular: Optional[TabularClient] = Depends(get_tabular_client),
):
    fields = {
        "user_id": payload.user_id,
        "questions": payload.question,
        "file_url": payload.file_url,
        "mediaType": payload.mediaType,
        "folder_path": payload.folder_path,
        "like_count": 0,
        "comment_count": 0,
        "Timestamp": _now_iso(),
    }
    # Airtable rejects explicit nulls on some field types.
    fields = {key: value for key, value in fields.items() if value is not None}
    try:
        record = _require_tabular(tabular).create(QUESTIONS_TABLE, fields)
    except Exception as exc:
        return _fail(exc, "Failed to create question")
    return success_response(question=record.as_dict())


@router.post("/questions/{question_id}/like", response_model=LikeResponse)
def like_question(
    question_id: str,
    settings: Settings = Depends(get_settings),
    db: RelationalClient = Depends(get_relational_client),
):
    """Add one like to a question and return it with its author embedded."""
    try:
        record = increment_like(db, question_id, atomic=settings.atomic_like_increment)
    except Exception as exc:
        # Unknown ids stay in the 500 class alongside other store failures.
        return _fail(exc, f"Failed to like question {question_id}", status_code=500)
    return success_response(record=record)


@router.get("/memories", response_model=RecordsResponse)
def list_memories(tabular: Optional[TabularClient] = Depends(get_tabular_client)):
    try:
        records = _require_tabular(tabular).list_records(
            MEMORIES_TABLE, ListOptions(sort=NEWEST_FIRST)
        )
    except Exception as exc:
        return _fail(exc, "Failed to fetch memories")

    memories = []
    for record in records:
        if any(not record.fields.get(name) for name in MEMORY_REQUIRED_FIELDS):
            logger.warning("Memory record missing required fields: %s", record.id)
            continue
        memories.append(record.as_dict())
    return success_response(records=memories)


@router.post("/memories", response_model=MemoryResponse)
def create_memory(
    payload: CreateMemoryRequest,
    tabular: Optional[TabularClient] = Depends(get_tabular_client),
):
    try:
        client = _require_tabular(tabular)
        if not (payload.title and payload.content and payload.user_id):
            raise ValidationError("Missing required fields")
        fields = {
            "title": payload.title,
            "content": payload.content,
            "user_id": payload.user_id,
            "Timestamp": _now_iso(),
        }
        if payload.file_url:
            fields["file_url"] = payload.file_url
        record = client.create(MEMORIES_TABLE, fields)
    except Exception as exc:
        return _fail(exc, "Failed to create memory")
    return success_response(record=record.as_dict())


@router.get("/users/{email}", response_model=UserLookupResponse)
def get_user_by_email(
    email: str, tabular: Optional[TabularClient] = Depends(get_tabular_client)
):
    formula = "{Email} = '%s'" % email.replace("\\", "\\\\").replace("'", "\\'")
    try:
        records = _require_tabular(tabular).list_records(
            USERS_BY_EMAIL_TABLE, ListOptions(max_records=1, filter_by_formula=formula)
        )
        if not records:
            raise NotFoundError("User not found")
    except NotFoundError as exc:
        return _fail(exc, f"Failed to fetch user {email}", status_code=404)
    except Exception as exc:
        return _fail(exc, f"Failed to fetch user {email}")

    user = records[0]
    return success_response(
        user={
            "id": user.id,
            "email": user.fields.get("Email"),
            "first_name": user.fields.get("first_name"),
            "last_name": user.fields.get("last_name"),
            "role": user.fields.get("role"),
            "persona": user.fields.get("persona"),
        }
    )


@router.post("/profile", response_model=ProfileResponse)
def create_profile(
    payload: CreateProfileRequest,
    db: RelationalClient = Depends(get_relational_client),
):
    """Insert the users row for a freshly registered account."""
    try:
        db.insert(USERS_TABLE, payload.model_dump())
    except Exception as exc:
        return _fail(exc, "Error creating user profile")
    return success_response()


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    folderPath: Optional[str] = Form(None),
    storage: UploadStorage = Depends(get_upload_storage),
):
    try:
        if file is None:
            raise ValidationError("No file provided")
        folder = normalize_folder(folderPath)
        data = await file.read()
        url = storage.save(folder, file.filename or "", data)
    except Exception as exc:
        return _fail(exc, "Error uploading file")
    return success_response(url=url, folderPath=folder)


@router.get("/env-check", response_model=EnvCheckResponse)
def env_check(settings: Settings = Depends(get_settings)):
    return EnvCheckResponse(
        hasSupabaseUrl=bool(settings.supabase_url),
        hasSupabaseKey=bool(settings.supabase_anon_key),
        hasServiceRoleKey=bool(settings.supabase_service_role_key),
    )
