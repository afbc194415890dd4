"""
Request and response models for the HTTP surface.
Every response is an envelope: {success, data} or {success: false, error}.
"""

from pydantic import BaseModel, field_validator, ConfigDict, Field, AliasChoices
from typing import Optional, List, Dict, Any


class MemoryCreateRequest(BaseModel):
    content: str

    @field_validator('content')
    @classmethod
    def content_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('content cannot be empty')
        return v.strip()


class MemoryUpdateRequest(BaseModel):
    content: str

    @field_validator('content')
    @classmethod
    def content_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('content cannot be empty')
        return v.strip()


class EmailCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject: str
    body: str
    sender: str
    recipients: List[str] = Field(default_factory=list)
    date: Optional[str] = None
    company: Optional[str] = None
    message_id: Optional[str] = Field(default=None, validation_alias=AliasChoices('message_id', 'messageId'))
    in_reply_to: Optional[str] = Field(default=None, validation_alias=AliasChoices('in_reply_to', 'inReplyTo'))

    @field_validator('subject', 'body', 'sender')
    @classmethod
    def required_fields_must_not_be_empty(cls, v, info):
        if not v.strip():
            raise ValueError(f'{info.field_name} cannot be empty')
        return v


class MemoryOut(BaseModel):
    id: str
    content: str
    created_at: str


class MemorySearchHitOut(MemoryOut):
    score: float


class EmailOut(BaseModel):
    id: str
    sender: str
    recipients: List[str]
    subject: str
    date: str
    company: Optional[str] = None
    message_id: str
    in_reply_to: str
    created_at: str
    content: Optional[str] = None


class EmailSearchHitOut(EmailOut):
    score: float


class CreatedData(BaseModel):
    id: str


class CreatedResponse(BaseModel):
    success: bool = True
    data: CreatedData


class SuccessResponse(BaseModel):
    success: bool = True
    data: Optional[Dict[str, Any]] = None


class MemoryResponse(BaseModel):
    success: bool = True
    data: MemoryOut


class MemoryListResponse(BaseModel):
    success: bool = True
    data: List[MemoryOut]


class MemorySearchResponse(BaseModel):
    success: bool = True
    data: List[MemorySearchHitOut]


class EmailResponse(BaseModel):
    success: bool = True
    data: EmailOut


class EmailListResponse(BaseModel):
    success: bool = True
    data: List[EmailOut]


class EmailSearchResponse(BaseModel):
    success: bool = True
    data: List[EmailSearchHitOut]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    id: Optional[str] = None
    content_persisted: Optional[bool] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    schema_ready: bool
    vector_provider: str
    embedding_provider: str
