"""
Residency applications: submission, document generation, review and artifact administration.
Status changes go through state.ensure_transition and are audited; retired artifacts go to the archive.
"""

import base64
import binascii
import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiofiles
import aiofiles.os
from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.notifications import service as notification_service
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import ApplicationStatus, ArchiveReason, ArtifactType, NotificationType
from app.core.exceptions import ServiceError
from app.core.models import (
    AggregateStatus,
    ApplicationComment,
    ApplicationRecord,
    ArchivedArtifact,
    Artifact,
)
from app.documents.catalogs import normalize_option, normalize_period
from app.documents.converter import CONVERSION_FAILED, ConverterChain
from app.documents.normalizer import build_template_payload
from app.documents.pipeline import TemplateResult, TemplateSpec, generate_documents, safe_filename
from app.documents.sanitize import sanitize_data

from . import audit_service, catalog_service, state
from .archive_service import (
    archive_application_artifacts,
    archive_artifact,
    archive_student_artifacts,
    archive_transaction,
)

logger = logging.getLogger(__name__)

DATA_URI_RE = re.compile(r"^data:([\w\-/]+);base64,(.*)$", re.DOTALL)
UPLOAD_EXTENSIONS = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
}

APPROVAL_MESSAGE = "Tu solicitud ha sido aprobada. Puedes descargar el documento."
REJECTION_MESSAGE = "Tu solicitud fue denegada. Por favor revisa los comentarios y reenvía."
ADMIN_REJECTION_MESSAGE = (
    "Su documento ha sido rechazado por el jefe de departamento. Revise y reenvíe con correcciones."
)
REVIEW_REQUEST_MESSAGE = "El usuario {student_key} envió documentos, revísalo en solicitudes."


@dataclass
class GenerationOutcome:
    ok: bool
    application_id: Optional[int] = None
    artifacts: List[Artifact] = field(default_factory=list)
    results: List[TemplateResult] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ApplicationDetail:
    application: ApplicationRecord
    aggregate_status: Optional[str]
    artifacts: List[Artifact]
    archived: List[ArchivedArtifact]
    comments: List[ApplicationComment]
    resubmission_count: int


# ----- Helpers -----

def _to_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _record_fields(form: Dict[str, Any]) -> Dict[str, Any]:
    """Map the (sanitized) form onto ApplicationRecord columns."""
    return {
        "project_name": form.get("nombre_proyecto") or "",
        "company_id": _to_int(form.get("empresa_id")),
        "period": normalize_period(form.get("periodo")) or None,
        "year": _to_int(form.get("anio")),
        "external_advisor_name": form.get("nombre_asesor_externo") or form.get("asesor_empresa") or None,
        "external_advisor_position": form.get("puesto_asesor_externo") or form.get("puesto_asesor_empresa") or None,
        "address": form.get("domicilio") or None,
        "email": form.get("email") or None,
        "city": form.get("ciudad") or None,
        "phone": form.get("telefono_fijo") or form.get("telefono") or None,
        "career_coordination": form.get("coord_carrera") or None,
        "residents_count": _to_int(form.get("numero_residentes"), 1) or 1,
        "chosen_option": normalize_option(form.get("opcion_elegida")) or None,
    }


def _is_reviewer(user: CurrentUser) -> bool:
    return user.is_reviewer


async def get_application(db: AsyncSession, application_id: int) -> ApplicationRecord:
    record = await db.get(ApplicationRecord, application_id)
    if not record:
        raise ServiceError("Application not found", status.HTTP_404_NOT_FOUND)
    return record


def _ensure_can_view(record: ApplicationRecord, user: CurrentUser) -> None:
    if _is_reviewer(user):
        return
    if user.student_key != record.student_key:
        raise ServiceError("Application not found", status.HTTP_404_NOT_FOUND)


async def _find_pending(
    db: AsyncSession, student_key: str, project_name: str, company_id: Optional[int]
) -> Optional[ApplicationRecord]:
    stmt = select(ApplicationRecord).where(
        ApplicationRecord.student_key == student_key,
        ApplicationRecord.project_name == project_name,
        ApplicationRecord.status == ApplicationStatus.PENDING.value,
    )
    if company_id is None:
        stmt = stmt.where(ApplicationRecord.company_id.is_(None))
    else:
        stmt = stmt.where(ApplicationRecord.company_id == company_id)
    result = await db.execute(stmt.order_by(ApplicationRecord.id.desc()).limit(1))
    return result.scalar_one_or_none()


async def _resolve_record(
    db: AsyncSession,
    student_key: str,
    form: Dict[str, Any],
    actor: CurrentUser,
) -> Tuple[ApplicationRecord, bool]:
    """Reuse the pending record for the same (student, project, company) or create a new one. Flushes only."""
    fields = _record_fields(form)
    if not fields["project_name"]:
        raise ServiceError("Project name is required", status.HTTP_400_BAD_REQUEST)

    existing = await _find_pending(db, student_key, fields["project_name"], fields["company_id"])
    if existing:
        for key, value in fields.items():
            setattr(existing, key, value)
        await db.flush()
        return existing, False

    record = ApplicationRecord(
        student_key=student_key,
        status=ApplicationStatus.PENDING.value,
        submitted_at=datetime.utcnow(),
        **fields,
    )
    db.add(record)
    await db.flush()
    await audit_service.log_audit(
        db,
        student_key,
        record.id,
        "application_submitted",
        to_status=ApplicationStatus.PENDING.value,
        performed_by=actor.user_key,
        performed_by_role=actor.role.value,
    )
    return record, True


async def _upsert_aggregate(
    db: AsyncSession,
    student_key: str,
    new_status: ApplicationStatus,
    actor: Optional[str],
    solicitud_payload: Optional[str] = None,
    preliminary_payload: Optional[str] = None,
) -> AggregateStatus:
    """Insert or update the student's rollup. Payloads not supplied keep their previous value."""
    aggregate = await state.get_aggregate_status(db, student_key)
    if aggregate is None:
        aggregate = AggregateStatus(student_key=student_key)
        db.add(aggregate)
    if solicitud_payload is not None:
        aggregate.solicitud_payload = solicitud_payload
    if preliminary_payload is not None:
        aggregate.preliminary_payload = preliminary_payload
    aggregate.status = new_status.value
    aggregate.updated_by = actor
    aggregate.updated_at = datetime.utcnow()
    await db.flush()
    return aggregate


async def _latest_record(db: AsyncSession, student_key: str) -> Optional[ApplicationRecord]:
    result = await db.execute(
        select(ApplicationRecord)
        .where(ApplicationRecord.student_key == student_key)
        .order_by(ApplicationRecord.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _active_artifacts(db: AsyncSession, application_id: int) -> List[Artifact]:
    result = await db.execute(
        select(Artifact).where(Artifact.application_id == application_id).order_by(Artifact.id)
    )
    return list(result.scalars().all())


# ----- Submission and generation -----

async def submit_application(
    db: AsyncSession,
    student_key: str,
    form: Dict[str, Any],
    actor: CurrentUser,
) -> Tuple[ApplicationRecord, bool]:
    """Store the form as an application record. A duplicate pending submission returns the existing record."""
    record, created = await _resolve_record(db, student_key, sanitize_data(form), actor)
    await db.commit()
    await db.refresh(record)
    if not created:
        logger.info("Coalesced submission of %s into pending application %s", student_key, record.id)
    return record, created


async def generate_application_documents(
    db: AsyncSession,
    student_key: str,
    form: Dict[str, Any],
    actor: CurrentUser,
    chain: ConverterChain,
    templates: Optional[Sequence[TemplateSpec]] = None,
    output_dir: Optional[Path] = None,
) -> GenerationOutcome:
    """
    Guard -> resolve record -> normalize -> render/convert -> archive previous generation ->
    register new artifacts -> aggregate status pending -> notify reviewers.
    Raises RegenerationDenied (no writes) while a previous generation is pending or approved.
    """
    await state.ensure_regeneration_allowed(db, student_key)

    clean = await catalog_service.enrich_form(db, sanitize_data(form), student_key)
    record, _ = await _resolve_record(db, student_key, clean, actor)
    payload = build_template_payload({**clean, "num_control": student_key})

    results = await generate_documents(payload, student_key, chain, templates=templates, output_dir=output_dir)
    produced = [r for r in results if r.ok]
    if not produced:
        await db.rollback()
        error = next((r.error for r in results if r.error), CONVERSION_FAILED)
        logger.error("No documents produced for %s: %s", student_key, error)
        return GenerationOutcome(ok=False, results=results, error=error)

    artifacts: List[Artifact] = []
    payload_json = json.dumps(payload, ensure_ascii=False, default=str)
    produced_types = {r.spec.artifact_type for r in produced}
    async with archive_transaction(db):
        await archive_student_artifacts(db, student_key, ArchiveReason.RESUBMISSION, actor.user_key)

        for result in produced:
            artifact = Artifact(
                application_id=record.id,
                filename=result.filename,
                filepath=result.path,
                uploaded_by=actor.user_key,
                uploaded_at=datetime.utcnow(),
            )
            db.add(artifact)
            artifacts.append(artifact)

        await _upsert_aggregate(
            db,
            student_key,
            ApplicationStatus.PENDING,
            actor.user_key,
            solicitud_payload=payload_json if ArtifactType.REQUEST in produced_types else None,
            preliminary_payload=payload_json if ArtifactType.PRELIMINARY_REPORT in produced_types else None,
        )
        await audit_service.log_audit(
            db,
            student_key,
            record.id,
            "documents_generated",
            to_status=ApplicationStatus.PENDING.value,
            performed_by=actor.user_key,
            performed_by_role=actor.role.value,
            remarks=", ".join(a.filename for a in artifacts),
        )
        await notification_service.notify_reviewers(
            db, REVIEW_REQUEST_MESSAGE.format(student_key=student_key), record.id
        )
    for artifact in artifacts:
        await db.refresh(artifact)
    return GenerationOutcome(ok=True, application_id=record.id, artifacts=artifacts, results=results)


@dataclass
class PrefillData:
    student_key: str
    document: ArtifactType
    status: Optional[str]
    form: Dict[str, Any]


async def get_prefill(
    db: AsyncSession,
    student_key: str,
    document: ArtifactType = ArtifactType.REQUEST,
) -> PrefillData:
    """
    The payload of the student's last generation, so the form can be filled again after a rejection.
    The preliminary report falls back to the request payload when it has none of its own.
    """
    aggregate = await state.get_aggregate_status(db, student_key)
    if aggregate is None:
        return PrefillData(student_key=student_key, document=document, status=None, form={})

    raw = aggregate.solicitud_payload
    if document == ArtifactType.PRELIMINARY_REPORT:
        raw = aggregate.preliminary_payload or aggregate.solicitud_payload
    form: Dict[str, Any] = {}
    if raw:
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("Stored %s payload of %s is not valid JSON", document.value, student_key)
        else:
            if isinstance(parsed, dict):
                form = parsed
    return PrefillData(student_key=student_key, document=document, status=aggregate.status, form=form)


# ----- Review -----

async def approve_application(
    db: AsyncSession,
    application_id: int,
    actor: CurrentUser,
    remarks: Optional[str] = None,
) -> ApplicationRecord:
    record = await get_application(db, application_id)
    from_status = record.status
    state.ensure_transition(from_status, ApplicationStatus.APPROVED)

    record.status = ApplicationStatus.APPROVED.value
    if remarks:
        record.remarks = remarks.strip()
    await _upsert_aggregate(db, record.student_key, ApplicationStatus.APPROVED, actor.user_key)
    await audit_service.log_audit(
        db,
        record.student_key,
        record.id,
        "application_approved",
        from_status=from_status,
        to_status=ApplicationStatus.APPROVED.value,
        performed_by=actor.user_key,
        performed_by_role=actor.role.value,
        remarks=remarks,
    )
    await notification_service.insert_notification(
        db, record.student_key, APPROVAL_MESSAGE, NotificationType.APPROVAL, record.id
    )
    await db.commit()
    await db.refresh(record)
    return record


async def reject_application(
    db: AsyncSession,
    application_id: int,
    actor: CurrentUser,
    comment: Optional[str] = None,
) -> ApplicationRecord:
    """Reject a pending record: its artifacts are archived with reason rejection and the student is told why."""
    record = await get_application(db, application_id)
    from_status = record.status
    state.ensure_transition(from_status, ApplicationStatus.REJECTED)
    comment = (comment or "").strip() or None

    async with archive_transaction(db):
        await archive_application_artifacts(db, record, ArchiveReason.REJECTION, actor.user_key)
        record.status = ApplicationStatus.REJECTED.value
        if comment:
            db.add(ApplicationComment(application_id=record.id, comment=comment, author=actor.user_key))
        await _upsert_aggregate(db, record.student_key, ApplicationStatus.REJECTED, actor.user_key)
        await audit_service.log_audit(
            db,
            record.student_key,
            record.id,
            "application_rejected",
            from_status=from_status,
            to_status=ApplicationStatus.REJECTED.value,
            performed_by=actor.user_key,
            performed_by_role=actor.role.value,
            remarks=comment,
        )
        await notification_service.insert_notification(
            db, record.student_key, comment or REJECTION_MESSAGE, NotificationType.REJECTION, record.id
        )
    await db.refresh(record)
    return record


async def set_aggregate_status(
    db: AsyncSession,
    student_key: str,
    new_status: str,
    actor: CurrentUser,
    comment: Optional[str] = None,
) -> AggregateStatus:
    """
    Administrative override of the student's rollup status. This is the only way to reopen
    generation after an approval.
    """
    try:
        target = ApplicationStatus(new_status)
    except ValueError:
        raise ServiceError(f"Unknown status '{new_status}'", status.HTTP_400_BAD_REQUEST)

    previous = await state.get_aggregate_status(db, student_key)
    from_status = previous.status if previous else None
    aggregate = await _upsert_aggregate(db, student_key, target, actor.user_key)

    latest = await _latest_record(db, student_key)
    application_id = latest.id if latest else None
    comment = (comment or "").strip() or None
    if comment and latest:
        db.add(ApplicationComment(application_id=latest.id, comment=comment, author=actor.user_key))

    if target == ApplicationStatus.REJECTED:
        await notification_service.insert_notification(
            db, student_key, comment or ADMIN_REJECTION_MESSAGE, NotificationType.REJECTION, application_id
        )
    elif target == ApplicationStatus.APPROVED:
        await notification_service.insert_notification(
            db, student_key, APPROVAL_MESSAGE, NotificationType.APPROVAL, application_id
        )

    await audit_service.log_audit(
        db,
        student_key,
        application_id,
        "aggregate_status_set",
        from_status=from_status,
        to_status=target.value,
        performed_by=actor.user_key,
        performed_by_role=actor.role.value,
        remarks=comment,
    )
    await db.commit()
    await db.refresh(aggregate)
    return aggregate


async def add_comment(
    db: AsyncSession,
    application_id: int,
    comment: str,
    actor: CurrentUser,
) -> ApplicationComment:
    record = await get_application(db, application_id)
    text = (comment or "").strip()
    if not text:
        raise ServiceError("Comment is required", status.HTTP_400_BAD_REQUEST)
    entry = ApplicationComment(application_id=record.id, comment=text, author=actor.user_key)
    db.add(entry)
    await notification_service.insert_notification(
        db, record.student_key, text, NotificationType.COMMENT, record.id
    )
    await db.commit()
    await db.refresh(entry)
    return entry


# ----- Listing -----

async def list_applications(
    db: AsyncSession,
    status_filter: Optional[str] = None,
    student_key: Optional[str] = None,
) -> List[Tuple[ApplicationRecord, Optional[str], List[Artifact], int]]:
    """Records newest first, each with its aggregate status, active artifacts and comment count."""
    stmt = select(ApplicationRecord)
    if status_filter:
        stmt = stmt.where(ApplicationRecord.status == status_filter)
    if student_key:
        stmt = stmt.where(ApplicationRecord.student_key == student_key)
    records = list((await db.execute(stmt.order_by(ApplicationRecord.id.desc()))).scalars().all())
    if not records:
        return []

    ids = [r.id for r in records]
    keys = {r.student_key for r in records}
    artifact_rows = (
        await db.execute(select(Artifact).where(Artifact.application_id.in_(ids)).order_by(Artifact.id))
    ).scalars().all()
    by_record: Dict[int, List[Artifact]] = {}
    for artifact in artifact_rows:
        by_record.setdefault(artifact.application_id, []).append(artifact)

    aggregates = (
        await db.execute(select(AggregateStatus).where(AggregateStatus.student_key.in_(keys)))
    ).scalars().all()
    status_by_key = {a.student_key: a.status for a in aggregates}

    counts = (
        await db.execute(
            select(ApplicationComment.application_id, func.count(ApplicationComment.id))
            .where(ApplicationComment.application_id.in_(ids))
            .group_by(ApplicationComment.application_id)
        )
    ).all()
    count_by_record = {row[0]: row[1] for row in counts}

    return [
        (r, status_by_key.get(r.student_key), by_record.get(r.id, []), count_by_record.get(r.id, 0))
        for r in records
    ]


async def get_application_detail(
    db: AsyncSession,
    application_id: int,
    user: CurrentUser,
) -> ApplicationDetail:
    record = await get_application(db, application_id)
    _ensure_can_view(record, user)

    archived = list(
        (
            await db.execute(
                select(ArchivedArtifact)
                .where(ArchivedArtifact.application_id == record.id)
                .order_by(ArchivedArtifact.archived_at.desc(), ArchivedArtifact.id.desc())
            )
        ).scalars().all()
    )
    comments = list(
        (
            await db.execute(
                select(ApplicationComment)
                .where(ApplicationComment.application_id == record.id)
                .order_by(ApplicationComment.created_at.desc(), ApplicationComment.id.desc())
            )
        ).scalars().all()
    )
    aggregate = await state.get_aggregate_status(db, record.student_key)
    resubmissions = sum(
        1 for a in archived if a.reason in (ArchiveReason.REJECTION.value, ArchiveReason.RESUBMISSION.value)
    )
    return ApplicationDetail(
        application=record,
        aggregate_status=aggregate.status if aggregate else None,
        artifacts=await _active_artifacts(db, record.id),
        archived=archived,
        comments=comments,
        resubmission_count=resubmissions,
    )


# ----- Artifact administration -----

async def delete_artifact(db: AsyncSession, artifact_id: int, actor: CurrentUser) -> ArchivedArtifact:
    """Administrative delete: the artifact is archived with reason admin_delete, never destroyed."""
    artifact = await db.get(Artifact, artifact_id)
    if not artifact:
        raise ServiceError("Artifact not found", status.HTTP_404_NOT_FOUND)
    record = await get_application(db, artifact.application_id)
    async with archive_transaction(db):
        archived = await archive_artifact(
            db, artifact, record.student_key, ArchiveReason.ADMIN_DELETE, actor.user_key
        )
    await db.refresh(archived)
    return archived


def _decode_data_uri(data_uri: str) -> Tuple[str, bytes]:
    match = DATA_URI_RE.match((data_uri or "").strip())
    if not match:
        raise ServiceError("Invalid data URI", status.HTTP_400_BAD_REQUEST)
    try:
        content = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError):
        raise ServiceError("Invalid base64 content", status.HTTP_400_BAD_REQUEST)
    if not content:
        raise ServiceError("Empty upload", status.HTTP_400_BAD_REQUEST)
    return match.group(1).lower(), content


async def _write_upload(record: ApplicationRecord, data_uri: str, filename: Optional[str]) -> Tuple[Path, str]:
    """Decode a data URI into STORAGE_DIR. Returns the stored path and the display filename."""
    mime, content = _decode_data_uri(data_uri)
    extension = UPLOAD_EXTENSIONS.get(mime)
    if extension is None:
        raise ServiceError(f"Unsupported file type '{mime}'", status.HTTP_400_BAD_REQUEST)

    base_name = safe_filename(filename) if filename else f"{safe_filename(record.student_key)}_solicitud"
    if not base_name.lower().endswith(extension):
        base_name += extension
    stored_name = f"{int(time.time() * 1000)}_{base_name}"
    storage_dir = Path(settings.storage_dir)
    await aiofiles.os.makedirs(str(storage_dir), exist_ok=True)
    target = storage_dir / stored_name
    async with aiofiles.open(target, "wb") as f:
        await f.write(content)
    return target, base_name


async def _store_upload(
    db: AsyncSession,
    record: ApplicationRecord,
    target: Path,
    base_name: str,
    reason: ArchiveReason,
    actor: CurrentUser,
    action: str,
) -> Artifact:
    """Archive the record's active artifacts and register the stored upload in their place."""
    try:
        async with archive_transaction(db):
            await archive_application_artifacts(db, record, reason, actor.user_key)
            artifact = Artifact(
                application_id=record.id,
                filename=base_name,
                filepath=str(target),
                uploaded_by=actor.user_key,
                uploaded_at=datetime.utcnow(),
            )
            db.add(artifact)
            await audit_service.log_audit(
                db,
                record.student_key,
                record.id,
                action,
                performed_by=actor.user_key,
                performed_by_role=actor.role.value,
                remarks=base_name,
            )
            if reason == ArchiveReason.RESUBMISSION:
                await notification_service.notify_reviewers(
                    db, REVIEW_REQUEST_MESSAGE.format(student_key=record.student_key), record.id
                )
    except Exception:
        try:
            await aiofiles.os.remove(str(target))
        except OSError as e:
            logger.warning("Could not remove upload %s after a failed commit: %s", target, e)
        raise
    await db.refresh(artifact)
    return artifact


async def replace_artifact(
    db: AsyncSession,
    application_id: int,
    data_uri: str,
    actor: CurrentUser,
    filename: Optional[str] = None,
) -> Artifact:
    """Store an uploaded document as the record's active artifact. Previous actives go to the archive."""
    record = await get_application(db, application_id)
    target, base_name = await _write_upload(record, data_uri, filename)
    return await _store_upload(db, record, target, base_name, ArchiveReason.ADMIN_REPLACE, actor, "artifact_replaced")


async def upload_own_artifact(
    db: AsyncSession,
    application_id: int,
    data_uri: str,
    actor: CurrentUser,
    filename: Optional[str] = None,
) -> Artifact:
    """
    The owning student uploads their own signed document for a record. Previous actives are archived
    as a resubmission and reviewers are notified. Not allowed once the record is approved.
    """
    record = await get_application(db, application_id)
    if actor.student_key != record.student_key:
        raise ServiceError("Not allowed to upload to this application", status.HTTP_403_FORBIDDEN)
    if record.status == ApplicationStatus.APPROVED.value:
        raise ServiceError("The application is already approved", status.HTTP_409_CONFLICT)
    target, base_name = await _write_upload(record, data_uri, filename)
    artifact = await _store_upload(
        db, record, target, base_name, ArchiveReason.RESUBMISSION, actor, "artifact_uploaded"
    )
    logger.info("Student %s uploaded %s for application %s", record.student_key, base_name, record.id)
    return artifact


async def resolve_artifact_file(db: AsyncSession, artifact_id: int, user: CurrentUser) -> Tuple[Path, str]:
    """Reviewers can always download; the owning student only once the record is approved."""
    artifact = await db.get(Artifact, artifact_id)
    if not artifact:
        raise ServiceError("Artifact not found", status.HTTP_404_NOT_FOUND)
    record = await get_application(db, artifact.application_id)
    if not _is_reviewer(user):
        if user.student_key != record.student_key:
            raise ServiceError("Artifact not found", status.HTTP_404_NOT_FOUND)
        if record.status != ApplicationStatus.APPROVED.value:
            raise ServiceError("The document is available once the application is approved", status.HTTP_403_FORBIDDEN)
    path = Path(artifact.filepath)
    if not await aiofiles.os.path.isfile(str(path)):
        raise ServiceError("File not found on disk", status.HTTP_404_NOT_FOUND)
    return path, artifact.filename


async def resolve_archived_file(db: AsyncSession, archived_id: int) -> Tuple[Path, str]:
    archived = await db.get(ArchivedArtifact, archived_id)
    if not archived:
        raise ServiceError("Archived artifact not found", status.HTTP_404_NOT_FOUND)
    if not archived.filepath or not await aiofiles.os.path.isfile(archived.filepath):
        raise ServiceError("File not found on disk", status.HTTP_404_NOT_FOUND)
    return Path(archived.filepath), archived.filename
