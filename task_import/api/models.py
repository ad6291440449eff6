"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from enum import Enum
from datetime import datetime


class JobStatusEnum(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


# Request Models
class TransformModel(BaseModel):
    type: str = "direct"
    config: Dict[str, Any] = Field(default_factory=dict)


class MappingRuleModel(BaseModel):
    source_field: str
    target_field: str
    required: bool = False
    transform: Optional[TransformModel] = None
    notes: str = ""


class ValidateRequest(BaseModel):
    credential: str = ""
    options: Dict[str, Any] = Field(default_factory=dict)


class ImportCreate(BaseModel):
    provider: str
    credential: str = ""
    mapping: Optional[List[MappingRuleModel]] = None
    options: Dict[str, Any] = Field(default_factory=dict)


# Response Models
class ProviderResponse(BaseModel):
    id: str
    display_name: str
    auth_method: str
    capabilities: List[str]
    doc_url: str


class ProviderListResponse(BaseModel):
    providers: List[ProviderResponse]
    total: int


class MappingResponse(BaseModel):
    provider: str
    rules: List[MappingRuleModel]


class AccountResponse(BaseModel):
    account_id: Optional[str] = None
    display_name: Optional[str] = None


class ValidateResponse(BaseModel):
    provider: str
    valid: bool
    credential: str  # Masked preview only
    account: AccountResponse


class JobErrorResponse(BaseModel):
    item_id: Optional[str] = None
    reason: str
    code: str
    timestamp: datetime


class ImportJobResponse(BaseModel):
    id: str
    source_id: str
    status: JobStatusEnum
    started_at: datetime
    finished_at: Optional[datetime] = None
    total: Optional[int] = None
    processed: int = 0
    committed: int = 0
    errors: List[JobErrorResponse] = Field(default_factory=list)
    terminal_error: Optional[JobErrorResponse] = None
    cancelled: bool = False
    summary: str = ""


class TaskResponse(BaseModel):
    source_id: str
    external_id: str
    title: Optional[str] = None
    status: Optional[str] = None
    assignee: Optional[str] = None
    due_date: Optional[str] = None
    priority: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    total: int
