import mimetypes
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import require_reviewer, require_student
from app.auth.schemas import CurrentUser
from app.core.enums import ArtifactType
from app.core.exceptions import RegenerationDenied, ServiceError
from app.core.metrics import NoOpMetricsSink
from app.db.session import get_db
from app.documents.converter import ConverterChain, cleanup_temp_file
from app.documents.field_schema import schema_as_dict

from .schemas import (
    AdvisorAssignmentRequest,
    AdvisorResponse,
    AggregateStatusResponse,
    AggregateStatusUpdate,
    ApplicationDetailResponse,
    ApplicationForm,
    ApplicationResponse,
    ApplicationSummary,
    ApproveRequest,
    ArchivedArtifactResponse,
    ArtifactResponse,
    ArtifactUpload,
    AssignmentContextResponse,
    CommentCreate,
    CommentResponse,
    GenerationResponse,
    PrefillResponse,
    RejectRequest,
    SubmitResponse,
    TemplateResultResponse,
)
from . import assignment_service, service

router = APIRouter(prefix="/api/v1/applications", tags=["applications"])
files_router = APIRouter(prefix="/api/v1", tags=["artifacts"])


def get_converter_chain(request: Request) -> ConverterChain:
    return ConverterChain(metrics=getattr(request.app.state, "metrics", None) or NoOpMetricsSink())


def _student_key_for(current_user: CurrentUser, num_control: Optional[str]) -> str:
    """Students always act on their own key; reviewers name the student."""
    if current_user.is_reviewer:
        if not num_control or not num_control.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="num_control is required")
        return num_control.strip()
    if not current_user.student_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No student key on this account")
    return current_user.student_key


def _form_data(form: ApplicationForm) -> Dict[str, Any]:
    return form.model_dump()


# ----- Submission and generation -----

@router.post("", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_application(
    form: ApplicationForm,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> SubmitResponse:
    """Store the residency form. Re-posting the same project/company while pending returns the same record."""
    student_key = _student_key_for(current_user, form.num_control)
    try:
        record, created = await service.submit_application(db, student_key, _form_data(form), current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return SubmitResponse(application=ApplicationResponse.model_validate(record), created=created)


@router.post("/generate", response_model=GenerationResponse, status_code=status.HTTP_201_CREATED)
async def generate_documents(
    form: ApplicationForm,
    db: AsyncSession = Depends(get_db),
    chain: ConverterChain = Depends(get_converter_chain),
    current_user: CurrentUser = Depends(get_current_user),
) -> GenerationResponse:
    """Generate the request and preliminary report documents. 403 while a previous one is pending or approved."""
    student_key = _student_key_for(current_user, form.num_control)
    try:
        outcome = await service.generate_application_documents(
            db, student_key, _form_data(form), current_user, chain
        )
    except RegenerationDenied as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={"error": e.message, "current_status": e.current_status},
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    response = GenerationResponse(
        ok=outcome.ok,
        application_id=outcome.application_id,
        artifacts=[ArtifactResponse.model_validate(a) for a in outcome.artifacts],
        results=[
            TemplateResultResponse(
                template=r.spec.suffix,
                ok=r.ok,
                filename=r.filename,
                method=r.method.value if r.method else None,
                error=r.error,
            )
            for r in outcome.results
        ],
        error=outcome.error,
    )
    if not outcome.ok:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=response.model_dump())
    return response


@router.get("", response_model=List[ApplicationSummary])
async def list_applications(
    status_filter: Optional[str] = Query(None, alias="status", description="pending | approved | rejected"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ApplicationSummary]:
    """Reviewers see every record; students only their own."""
    student_key = None if current_user.is_reviewer else current_user.student_key
    rows = await service.list_applications(db, status_filter=status_filter, student_key=student_key)
    return [
        ApplicationSummary(
            application=ApplicationResponse.model_validate(record),
            aggregate_status=aggregate_status,
            artifacts=[ArtifactResponse.model_validate(a) for a in artifacts],
            comments_count=comments_count,
        )
        for record, aggregate_status, artifacts, comments_count in rows
    ]


@router.get("/form-schema")
async def get_form_schema() -> Dict[str, Any]:
    return schema_as_dict()


@router.get("/prefill", response_model=PrefillResponse)
async def get_prefill(
    document: ArtifactType = Query(ArtifactType.REQUEST, description="request | preliminary_report"),
    num_control: Optional[str] = Query(None, description="Student to read; reviewers only"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PrefillResponse:
    """The last form the student generated documents from, to fill the form again."""
    student_key = _student_key_for(current_user, num_control)
    prefill = await service.get_prefill(db, student_key, document)
    return PrefillResponse(
        student_key=prefill.student_key,
        document=prefill.document,
        status=prefill.status,
        form=prefill.form,
    )


@router.get("/{application_id}", response_model=ApplicationDetailResponse)
async def get_application(
    application_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ApplicationDetailResponse:
    try:
        detail = await service.get_application_detail(db, application_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ApplicationDetailResponse(
        application=ApplicationResponse.model_validate(detail.application),
        aggregate_status=detail.aggregate_status,
        artifacts=[ArtifactResponse.model_validate(a) for a in detail.artifacts],
        archived=[ArchivedArtifactResponse.model_validate(a) for a in detail.archived],
        comments=[CommentResponse.model_validate(c) for c in detail.comments],
        resubmission_count=detail.resubmission_count,
    )


# ----- Review -----

@router.post("/{application_id}/approve", response_model=ApplicationResponse)
async def approve_application(
    application_id: int,
    payload: Optional[ApproveRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_reviewer),
) -> ApplicationResponse:
    try:
        record = await service.approve_application(
            db, application_id, current_user, remarks=payload.remarks if payload else None
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ApplicationResponse.model_validate(record)


@router.post("/{application_id}/reject", response_model=ApplicationResponse)
async def reject_application(
    application_id: int,
    payload: Optional[RejectRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_reviewer),
) -> ApplicationResponse:
    try:
        record = await service.reject_application(
            db, application_id, current_user, comment=payload.comment if payload else None
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ApplicationResponse.model_validate(record)


@router.post("/{application_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    application_id: int,
    payload: CommentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_reviewer),
) -> CommentResponse:
    try:
        entry = await service.add_comment(db, application_id, payload.comment, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return CommentResponse.model_validate(entry)


@router.post("/{application_id}/artifacts", response_model=ArtifactResponse, status_code=status.HTTP_201_CREATED)
async def replace_artifact(
    application_id: int,
    payload: ArtifactUpload,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_reviewer),
) -> ArtifactResponse:
    """Upload a corrected document (data URI). Current artifacts are archived with reason admin_replace."""
    try:
        artifact = await service.replace_artifact(
            db, application_id, payload.data_uri, current_user, filename=payload.filename
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ArtifactResponse.model_validate(artifact)


@router.post("/{application_id}/upload", response_model=ArtifactResponse, status_code=status.HTTP_201_CREATED)
async def upload_own_artifact(
    application_id: int,
    payload: ArtifactUpload,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
) -> ArtifactResponse:
    """The owning student uploads their signed document. 403 for someone else's record, 409 once approved."""
    try:
        artifact = await service.upload_own_artifact(
            db, application_id, payload.data_uri, current_user, filename=payload.filename
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ArtifactResponse.model_validate(artifact)


# ----- Advisor assignment -----

@router.get("/{application_id}/advisor-assignment", response_model=AssignmentContextResponse)
async def get_advisor_assignment(
    application_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_reviewer),
) -> AssignmentContextResponse:
    try:
        context = await assignment_service.get_assignment_context(db, application_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return AssignmentContextResponse(
        application=ApplicationResponse.model_validate(context.application),
        student_name=context.student_name,
        student_career=context.student_career,
        company_name=context.company_name,
        period_label=context.period_label,
        ready=context.ready,
        advisors=[AdvisorResponse.model_validate(a) for a in context.advisors],
    )


@router.post("/{application_id}/advisor-assignment")
async def generate_advisor_assignment(
    application_id: int,
    payload: AdvisorAssignmentRequest,
    db: AsyncSession = Depends(get_db),
    chain: ConverterChain = Depends(get_converter_chain),
    current_user: CurrentUser = Depends(require_reviewer),
) -> FileResponse:
    """Download the advisor assignment letter. The file is deleted once sent."""
    try:
        document = await assignment_service.generate_advisor_assignment(
            db, application_id, payload.model_dump(), current_user, chain
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    media_type = mimetypes.guess_type(document.filename)[0] or "application/octet-stream"
    return FileResponse(
        document.path,
        media_type=media_type,
        filename=document.filename,
        background=BackgroundTask(cleanup_temp_file, document.path),
    )


# ----- Files and aggregate status -----

def _file_response(path, filename: str) -> FileResponse:
    media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return FileResponse(
        path,
        media_type=media_type,
        filename=filename,
        content_disposition_type="inline",
    )


@files_router.delete("/artifacts/{artifact_id}", response_model=ArchivedArtifactResponse)
async def delete_artifact(
    artifact_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_reviewer),
) -> ArchivedArtifactResponse:
    try:
        archived = await service.delete_artifact(db, artifact_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return ArchivedArtifactResponse.model_validate(archived)


@files_router.get("/artifacts/{artifact_id}/stream")
async def stream_artifact(
    artifact_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> FileResponse:
    try:
        path, filename = await service.resolve_artifact_file(db, artifact_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _file_response(path, filename)


@files_router.get("/archive/{archived_id}/stream")
async def stream_archived_artifact(
    archived_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_reviewer),
) -> FileResponse:
    try:
        path, filename = await service.resolve_archived_file(db, archived_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _file_response(path, filename)


@files_router.post("/pdf-info/status", response_model=AggregateStatusResponse)
async def set_aggregate_status(
    payload: AggregateStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_reviewer),
) -> AggregateStatusResponse:
    """Set a student's rollup status directly, e.g. to reopen generation after an approval."""
    try:
        aggregate = await service.set_aggregate_status(
            db, payload.student_key, payload.status, current_user, comment=payload.comment
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return AggregateStatusResponse.model_validate(aggregate)
