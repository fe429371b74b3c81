from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import ArtifactType


# ----- Form -----

class ApplicationForm(BaseModel):
    """Residency form as posted by the client. Loosely shaped: unknown fields are kept for the templates."""

    nombre_proyecto: str = Field(..., min_length=1, max_length=255)
    empresa_id: Optional[int] = Field(None, description="Company id; part of the duplicate-submission key")
    num_control: Optional[str] = Field(None, max_length=50, description="Ignored for students; reviewers may submit on behalf")

    model_config = ConfigDict(extra="allow")


class ApproveRequest(BaseModel):
    remarks: Optional[str] = Field(None, max_length=2000)


class RejectRequest(BaseModel):
    comment: Optional[str] = Field(None, max_length=2000, description="Shown to the student; a default message is used when empty")


class CommentCreate(BaseModel):
    comment: str = Field(..., min_length=1, max_length=2000)


class AggregateStatusUpdate(BaseModel):
    student_key: str = Field(..., min_length=1, max_length=50)
    status: str = Field(..., description="pending | approved | rejected")
    comment: Optional[str] = Field(None, max_length=2000)


class ArtifactUpload(BaseModel):
    data_uri: str = Field(..., description="data:<mime>;base64,<content>")
    filename: Optional[str] = Field(None, max_length=200)


# ----- Responses -----

class ApplicationResponse(BaseModel):
    id: int
    student_key: str
    project_name: str
    company_id: Optional[int] = None
    submitted_at: datetime
    period: Optional[str] = None
    year: Optional[int] = None
    status: str
    external_advisor_name: Optional[str] = None
    external_advisor_position: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None
    career_coordination: Optional[str] = None
    residents_count: int = 1
    chosen_option: Optional[str] = None
    remarks: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubmitResponse(BaseModel):
    application: ApplicationResponse
    created: bool


class ArtifactResponse(BaseModel):
    id: int
    application_id: int
    filename: str
    artifact_type: ArtifactType
    uploaded_by: Optional[str] = None
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ArchivedArtifactResponse(BaseModel):
    id: int
    application_id: int
    original_artifact_id: Optional[int] = None
    filename: str
    artifact_type: ArtifactType
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    archived_by: Optional[str] = None
    archived_at: datetime
    reason: str

    model_config = ConfigDict(from_attributes=True)


class CommentResponse(BaseModel):
    id: int
    application_id: int
    comment: str
    author: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ApplicationSummary(BaseModel):
    application: ApplicationResponse
    aggregate_status: Optional[str] = None
    artifacts: List[ArtifactResponse] = []
    comments_count: int = 0


class ApplicationDetailResponse(BaseModel):
    application: ApplicationResponse
    aggregate_status: Optional[str] = None
    artifacts: List[ArtifactResponse] = []
    archived: List[ArchivedArtifactResponse] = []
    comments: List[CommentResponse] = []
    resubmission_count: int = 0


class TemplateResultResponse(BaseModel):
    template: str
    ok: bool
    filename: Optional[str] = None
    method: Optional[str] = None
    error: Optional[str] = None


class GenerationResponse(BaseModel):
    ok: bool
    application_id: Optional[int] = None
    artifacts: List[ArtifactResponse] = []
    results: List[TemplateResultResponse] = []
    error: Optional[str] = None


class AggregateStatusResponse(BaseModel):
    student_key: str
    status: str
    updated_by: Optional[str] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ----- Prefill and advisor assignment -----

class PrefillResponse(BaseModel):
    student_key: str
    document: ArtifactType
    status: Optional[str] = None
    form: Dict[str, Any] = {}


class AdvisorResponse(BaseModel):
    rfc: str
    name: str
    career: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AssignmentContextResponse(BaseModel):
    application: ApplicationResponse
    student_name: str
    student_career: str
    company_name: str
    period_label: str
    ready: bool
    advisors: List[AdvisorResponse] = []


class AdvisorAssignmentRequest(BaseModel):
    departamento: str = Field(..., min_length=1, max_length=255)
    num_oficio: str = Field(..., min_length=1, max_length=100)
    fecha: str = Field(..., min_length=1, max_length=50, description="Letter date, e.g. 2024-03-05")
    nombre_jefe_departamento: str = Field(..., min_length=1, max_length=255)
    asesor_rfc: str = Field(..., min_length=1, max_length=20)
