"""
Pydantic schemas for the FamHub API.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, Field

UserStatus = Literal["Active", "Validating", "Not Active"]
Persona = Literal["Parent", "Children"]
FamilyRole = Literal[
    "Father",
    "Mother",
    "Grandfather",
    "Grandmother",
    "Older Brother",
    "Older Sister",
    "Middle Brother",
    "Middle Sister",
    "Youngest Brother",
    "Youngest Sister",
]
MediaType = Literal["image", "video", "audio"]


def _check_email(value: str) -> str:
    """Reject malformed addresses but keep the value exactly as submitted."""
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError(str(exc)) from exc
    return value


Email = Annotated[str, AfterValidator(_check_email)]


class CreateProfileRequest(BaseModel):
    id: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: Email
    role: FamilyRole
    persona: Persona
    status: UserStatus = "Validating"


class CreateQuestionRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1)
    file_url: Optional[str] = None
    mediaType: Optional[MediaType] = None
    folder_path: Optional[str] = None


class CreateMemoryRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    user_id: Optional[str] = None
    file_url: Optional[str] = None


class RecordPayload(BaseModel):
    id: str
    fields: dict[str, Any]


class RecordsResponse(BaseModel):
    success: Literal[True] = True
    records: list[RecordPayload]


class UsersResponse(BaseModel):
    success: Literal[True] = True
    users: list[RecordPayload]


class ConnectionTestResponse(BaseModel):
    success: Literal[True] = True
    connectionTest: str
    recordCount: int
    sampleRecord: Optional[RecordPayload] = None


class QuestionAuthor(BaseModel):
    id: str
    first_name: str
    last_name: str


class QuestionWithUser(BaseModel):
    id: str
    user_id: str
    question: str
    file_url: Optional[str] = None
    like_count: int = 0
    comment_count: Optional[int] = 0
    media_type: Optional[str] = None
    folder_path: Optional[str] = None
    created_at: str
    user: Optional[QuestionAuthor] = None


class LikeResponse(BaseModel):
    success: Literal[True] = True
    record: QuestionWithUser


class QuestionResponse(BaseModel):
    success: Literal[True] = True
    question: RecordPayload


class MemoryResponse(BaseModel):
    success: Literal[True] = True
    record: RecordPayload


class UserSummary(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None
    persona: Optional[str] = None


class UserLookupResponse(BaseModel):
    success: Literal[True] = True
    user: UserSummary


class ProfileResponse(BaseModel):
    success: Literal[True] = True


class UploadResponse(BaseModel):
    success: Literal[True] = True
    url: str
    folderPath: str


class EnvCheckResponse(BaseModel):
    hasSupabaseUrl: bool
    hasSupabaseKey: bool
    hasServiceRoleKey: bool
