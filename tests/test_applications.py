import base64
import json
from pathlib import Path

import pytest
from sqlalchemy import func, select

from app.api.v1.applications import service, state
from app.api.v1.notifications import service as notification_service
from app.core.enums import ApplicationStatus, ArchiveReason, ArtifactType
from app.core.exceptions import RegenerationDenied, ServiceError
from app.core.models import (
    AggregateStatus,
    ApplicationAuditLog,
    ApplicationRecord,
    ArchivedArtifact,
    Artifact,
    Notification,
)
from app.documents.pipeline import TemplateSpec

from conftest import STUDENT_KEY, make_user, sample_form


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _generate(db, student, chain, templates, workdirs, **overrides):
    return await service.generate_application_documents(
        db, STUDENT_KEY, sample_form(**overrides), student, chain,
        templates=templates, output_dir=workdirs["public"],
    )


async def _archived(db):
    return list((await db.execute(select(ArchivedArtifact).order_by(ArchivedArtifact.id))).scalars().all())


# ----- State machine -----

def test_transitions() -> None:
    assert state.can_transition("pending", "approved")
    assert state.can_transition(ApplicationStatus.PENDING, ApplicationStatus.REJECTED)
    assert not state.can_transition("approved", "pending")
    assert not state.can_transition("rejected", "approved")
    with pytest.raises(ServiceError) as exc:
        state.ensure_transition("approved", "rejected")
    assert exc.value.status_code == 409
    with pytest.raises(ServiceError) as exc:
        state.ensure_transition("archived", "approved")
    assert exc.value.status_code == 400


# ----- Generation -----

@pytest.mark.asyncio
async def test_generation_registers_everything(db_session, student, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)

    assert outcome.ok
    assert sorted(a.artifact_type for a in outcome.artifacts) == sorted(
        [ArtifactType.REQUEST, ArtifactType.PRELIMINARY_REPORT]
    )
    for artifact in outcome.artifacts:
        assert (workdirs["public"] / artifact.filename).is_file()

    record = await db_session.get(ApplicationRecord, outcome.application_id)
    assert record.status == ApplicationStatus.PENDING.value
    assert record.project_name == "Sistema de inventarios"
    assert record.company_id == 7
    assert record.period == "Enero-Junio"
    assert record.chosen_option == "banco de proyectos"

    aggregate = await state.get_aggregate_status(db_session, STUDENT_KEY)
    assert aggregate.status == ApplicationStatus.PENDING.value
    payload = json.loads(aggregate.solicitud_payload)
    assert payload["nombre_estudiante"] == "Juan Pérez"
    assert payload["num_control"] == STUDENT_KEY
    assert aggregate.preliminary_payload == aggregate.solicitud_payload

    assert await notification_service.count_pending(db_session, "JEFE") == 1
    assert await notification_service.count_pending(db_session, "ADMIN") == 1

    actions = (await db_session.execute(select(ApplicationAuditLog.action))).scalars().all()
    assert "application_submitted" in actions
    assert "documents_generated" in actions


@pytest.mark.asyncio
async def test_regeneration_denied_while_pending(db_session, student, pdf_chain, templates, workdirs) -> None:
    await _generate(db_session, student, pdf_chain, templates, workdirs)
    files_before = sorted(p.name for p in workdirs["public"].glob("*.pdf"))

    with pytest.raises(RegenerationDenied) as exc:
        await _generate(db_session, student, pdf_chain, templates, workdirs, nombre_proyecto="Otro proyecto")

    assert exc.value.current_status == "pending"
    assert exc.value.status_code == 403
    assert await _count(db_session, ApplicationRecord) == 1
    assert await _count(db_session, Artifact) == 2
    assert await _count(db_session, ArchivedArtifact) == 0
    assert sorted(p.name for p in workdirs["public"].glob("*.pdf")) == files_before


@pytest.mark.asyncio
async def test_failed_generation_writes_nothing(db_session, student, pdf_chain, workdirs, tmp_path) -> None:
    missing = [TemplateSpec(tmp_path / "nope.docx", "solicitud", ArtifactType.REQUEST)]
    outcome = await _generate(db_session, student, pdf_chain, missing, workdirs)

    assert not outcome.ok
    assert outcome.error == "template-not-found"
    assert await _count(db_session, ApplicationRecord) == 0
    assert await _count(db_session, AggregateStatus) == 0
    assert await _count(db_session, Notification) == 0


@pytest.mark.asyncio
async def test_partial_generation_keeps_produced_artifact(db_session, student, pdf_chain, templates, workdirs, tmp_path) -> None:
    specs = [templates[0], TemplateSpec(tmp_path / "nope.docx", "preliminar", ArtifactType.PRELIMINARY_REPORT)]
    outcome = await _generate(db_session, student, pdf_chain, specs, workdirs)

    assert outcome.ok
    assert [a.artifact_type for a in outcome.artifacts] == [ArtifactType.REQUEST]
    assert [r.ok for r in outcome.results] == [True, False]
    aggregate = await state.get_aggregate_status(db_session, STUDENT_KEY)
    assert aggregate.solicitud_payload
    assert aggregate.preliminary_payload is None


@pytest.mark.asyncio
async def test_source_only_generation_is_still_registered(db_session, student, source_only_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, source_only_chain, templates, workdirs)
    assert outcome.ok
    assert all(a.filename.endswith(".docx") for a in outcome.artifacts)


# ----- Submission -----

@pytest.mark.asyncio
async def test_duplicate_submission_is_coalesced(db_session, student) -> None:
    first, created = await service.submit_application(db_session, STUDENT_KEY, sample_form(), student)
    second, created_again = await service.submit_application(
        db_session, STUDENT_KEY, sample_form(email="juan@example.com"), student
    )
    assert created and not created_again
    assert second.id == first.id
    assert second.email == "juan@example.com"

    other, created_other = await service.submit_application(db_session, STUDENT_KEY, sample_form(empresa_id=8), student)
    assert created_other
    assert other.id != first.id


@pytest.mark.asyncio
async def test_submission_requires_project_name(db_session, student) -> None:
    with pytest.raises(ServiceError) as exc:
        await service.submit_application(db_session, STUDENT_KEY, sample_form(nombre_proyecto="undefined"), student)
    assert exc.value.status_code == 400


# ----- Review -----

@pytest.mark.asyncio
async def test_reject_archives_and_allows_resubmission(db_session, student, reviewer, pdf_chain, templates, workdirs) -> None:
    first = await _generate(db_session, student, pdf_chain, templates, workdirs)

    record = await service.reject_application(db_session, first.application_id, reviewer)
    assert record.status == ApplicationStatus.REJECTED.value

    archived = await _archived(db_session)
    assert [a.reason for a in archived] == [ArchiveReason.REJECTION.value] * 2
    assert all(a.archived_by == "jefe1" for a in archived)
    archive_files = sorted((workdirs["archive"] / STUDENT_KEY).iterdir())
    assert len(archive_files) == 2
    assert all(p.name.startswith("arch_") for p in archive_files)
    assert {a.filepath for a in archived} == {str(p) for p in archive_files}
    assert await _count(db_session, Artifact) == 0

    inbox = await notification_service.fetch_all(db_session, STUDENT_KEY)
    assert inbox[0].type == "rejection"
    assert inbox[0].message == service.REJECTION_MESSAGE

    second = await _generate(db_session, student, pdf_chain, templates, workdirs)
    assert second.ok
    assert second.application_id != first.application_id
    assert await _count(db_session, ArchivedArtifact) == 2

    detail = await service.get_application_detail(db_session, first.application_id, student)
    assert detail.resubmission_count == 2
    assert detail.artifacts == []


@pytest.mark.asyncio
async def test_reject_with_comment(db_session, student, reviewer, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)
    await service.reject_application(db_session, outcome.application_id, reviewer, comment="  Falta la firma  ")

    detail = await service.get_application_detail(db_session, outcome.application_id, reviewer)
    assert [c.comment for c in detail.comments] == ["Falta la firma"]
    inbox = await notification_service.fetch_all(db_session, STUDENT_KEY)
    assert inbox[0].message == "Falta la firma"


@pytest.mark.asyncio
async def test_approval_blocks_until_status_override(db_session, student, reviewer, pdf_chain, templates, workdirs) -> None:
    first = await _generate(db_session, student, pdf_chain, templates, workdirs)
    approved = await service.approve_application(db_session, first.application_id, reviewer, remarks="Correcto")
    assert approved.status == ApplicationStatus.APPROVED.value
    assert approved.remarks == "Correcto"

    with pytest.raises(ServiceError) as exc:
        await service.approve_application(db_session, first.application_id, reviewer)
    assert exc.value.status_code == 409
    with pytest.raises(ServiceError):
        await service.reject_application(db_session, first.application_id, reviewer)

    with pytest.raises(RegenerationDenied) as denied:
        await _generate(db_session, student, pdf_chain, templates, workdirs)
    assert denied.value.current_status == "approved"

    aggregate = await service.set_aggregate_status(db_session, STUDENT_KEY, "rejected", reviewer, comment="Reabierto")
    assert aggregate.status == "rejected"
    inbox = await notification_service.fetch_all(db_session, STUDENT_KEY)
    assert inbox[0].message == "Reabierto"

    again = await _generate(db_session, student, pdf_chain, templates, workdirs)
    assert again.ok
    archived = await _archived(db_session)
    assert [a.reason for a in archived] == [ArchiveReason.RESUBMISSION.value] * 2
    assert {a.application_id for a in archived} == {first.application_id}


@pytest.mark.asyncio
async def test_set_aggregate_status_validates(db_session, reviewer) -> None:
    with pytest.raises(ServiceError) as exc:
        await service.set_aggregate_status(db_session, STUDENT_KEY, "archived", reviewer)
    assert exc.value.status_code == 400

    aggregate = await service.set_aggregate_status(db_session, STUDENT_KEY, "approved", reviewer)
    assert aggregate.status == "approved"
    assert aggregate.updated_by == "jefe1"


@pytest.mark.asyncio
async def test_comment_notifies_student(db_session, student, reviewer) -> None:
    record, _ = await service.submit_application(db_session, STUDENT_KEY, sample_form(), student)
    entry = await service.add_comment(db_session, record.id, "Revisa el cronograma", reviewer)

    assert entry.author == "jefe1"
    inbox = await notification_service.fetch_all(db_session, STUDENT_KEY)
    assert [(n.type, n.message) for n in inbox] == [("comment", "Revisa el cronograma")]

    with pytest.raises(ServiceError):
        await service.add_comment(db_session, record.id, "   ", reviewer)


# ----- Listing and access -----

@pytest.mark.asyncio
async def test_list_applications(db_session, student, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)
    other = make_user(key="20240002")
    await service.submit_application(db_session, "20240002", sample_form(), other)

    rows = await service.list_applications(db_session)
    assert len(rows) == 2
    mine = await service.list_applications(db_session, student_key=STUDENT_KEY)
    [(record, aggregate_status, artifacts, comments_count)] = mine
    assert record.id == outcome.application_id
    assert aggregate_status == "pending"
    assert len(artifacts) == 2
    assert comments_count == 0
    assert await service.list_applications(db_session, status_filter="approved") == []


@pytest.mark.asyncio
async def test_students_cannot_see_other_records(db_session, student) -> None:
    record, _ = await service.submit_application(db_session, "20240002", sample_form(), make_user(key="20240002"))
    with pytest.raises(ServiceError) as exc:
        await service.get_application_detail(db_session, record.id, student)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_artifact_download_rules(db_session, student, reviewer, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)
    artifact_id = outcome.artifacts[0].id

    path, filename = await service.resolve_artifact_file(db_session, artifact_id, reviewer)
    assert path.is_file()
    with pytest.raises(ServiceError) as exc:
        await service.resolve_artifact_file(db_session, artifact_id, student)
    assert exc.value.status_code == 403

    await service.approve_application(db_session, outcome.application_id, reviewer)
    path, _ = await service.resolve_artifact_file(db_session, artifact_id, student)
    assert path.name == filename

    with pytest.raises(ServiceError) as exc:
        await service.resolve_artifact_file(db_session, artifact_id, make_user(key="20240002"))
    assert exc.value.status_code == 404


# ----- Artifact administration -----

@pytest.mark.asyncio
async def test_delete_artifact_archives_it(db_session, student, reviewer, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)
    target = outcome.artifacts[0]

    archived = await service.delete_artifact(db_session, target.id, reviewer)

    assert archived.reason == ArchiveReason.ADMIN_DELETE.value
    assert archived.original_artifact_id == target.id
    assert await _count(db_session, Artifact) == 1
    path, _ = await service.resolve_archived_file(db_session, archived.id)
    assert path.parent == workdirs["archive"] / STUDENT_KEY

    with pytest.raises(ServiceError) as exc:
        await service.delete_artifact(db_session, target.id, reviewer)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_replace_artifact(db_session, student, reviewer, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)
    data_uri = "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4 corrected").decode()

    artifact = await service.replace_artifact(db_session, outcome.application_id, data_uri, reviewer, filename="corregida")

    assert artifact.filename == "corregida.pdf"
    stored = Path(artifact.filepath)
    assert stored.parent == workdirs["storage"]
    assert stored.read_bytes() == b"%PDF-1.4 corrected"
    archived = await _archived(db_session)
    assert [a.reason for a in archived] == [ArchiveReason.ADMIN_REPLACE.value] * 2
    active = (await db_session.execute(select(Artifact))).scalars().all()
    assert [a.id for a in active] == [artifact.id]


@pytest.mark.asyncio
async def test_replace_artifact_rejects_bad_uploads(db_session, student, reviewer) -> None:
    record, _ = await service.submit_application(db_session, STUDENT_KEY, sample_form(), student)
    for data_uri in ("not a data uri", "data:image/png;base64,iVBORw0KGgo=", "data:application/pdf;base64,@@@"):
        with pytest.raises(ServiceError) as exc:
            await service.replace_artifact(db_session, record.id, data_uri, reviewer)
        assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_archiving_a_missing_file_still_archives_the_row(db_session, student, reviewer, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)
    for artifact in outcome.artifacts:
        (workdirs["public"] / artifact.filename).unlink()

    await service.reject_application(db_session, outcome.application_id, reviewer)

    archived = await _archived(db_session)
    assert len(archived) == 2
    assert all(a.filepath.startswith(str(workdirs["public"])) for a in archived)


@pytest.mark.asyncio
async def test_ensure_tables_is_idempotent(session_factory) -> None:
    from app.db.schema_check import ensure_tables

    assert await ensure_tables(session_factory.kw["bind"]) == []


@pytest.mark.asyncio
async def test_failed_commit_puts_archived_files_back(db_session, student, reviewer, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)
    paths = [workdirs["public"] / a.filename for a in outcome.artifacts]

    async def failing_commit() -> None:
        raise RuntimeError("database connection lost")

    db_session.commit = failing_commit
    try:
        with pytest.raises(RuntimeError):
            await service.reject_application(db_session, outcome.application_id, reviewer)
    finally:
        del db_session.commit

    assert all(p.is_file() for p in paths)
    assert list((workdirs["archive"] / STUDENT_KEY).iterdir()) == []
    assert await _count(db_session, ArchivedArtifact) == 0
    assert await _count(db_session, Artifact) == 2
    record = await db_session.get(ApplicationRecord, outcome.application_id)
    assert record.status == ApplicationStatus.PENDING.value


@pytest.mark.asyncio
async def test_failed_commit_removes_the_new_upload(db_session, student, reviewer, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)
    paths = [workdirs["public"] / a.filename for a in outcome.artifacts]
    data_uri = "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4 corrected").decode()

    async def failing_commit() -> None:
        raise RuntimeError("database connection lost")

    db_session.commit = failing_commit
    try:
        with pytest.raises(RuntimeError):
            await service.replace_artifact(db_session, outcome.application_id, data_uri, reviewer)
    finally:
        del db_session.commit

    assert list(workdirs["storage"].iterdir()) == []
    assert all(p.is_file() for p in paths)


# ----- Student upload -----

@pytest.mark.asyncio
async def test_student_uploads_own_document(db_session, student, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)
    data_uri = "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4 firmada").decode()

    artifact = await service.upload_own_artifact(db_session, outcome.application_id, data_uri, student)

    assert artifact.filename == f"{STUDENT_KEY}_solicitud.pdf"
    assert artifact.uploaded_by == STUDENT_KEY
    assert Path(artifact.filepath).read_bytes() == b"%PDF-1.4 firmada"
    archived = await _archived(db_session)
    assert [a.reason for a in archived] == [ArchiveReason.RESUBMISSION.value] * 2
    active = (await db_session.execute(select(Artifact))).scalars().all()
    assert [a.id for a in active] == [artifact.id]
    assert await notification_service.count_pending(db_session, "JEFE") == 2
    actions = (await db_session.execute(select(ApplicationAuditLog.action))).scalars().all()
    assert "artifact_uploaded" in actions


@pytest.mark.asyncio
async def test_student_upload_rules(db_session, student, reviewer, pdf_chain, templates, workdirs) -> None:
    outcome = await _generate(db_session, student, pdf_chain, templates, workdirs)
    data_uri = "data:application/pdf;base64," + base64.b64encode(b"%PDF-1.4").decode()

    with pytest.raises(ServiceError) as exc:
        await service.upload_own_artifact(db_session, outcome.application_id, data_uri, make_user(key="20240002"))
    assert exc.value.status_code == 403
    with pytest.raises(ServiceError) as exc:
        await service.upload_own_artifact(db_session, 999, data_uri, student)
    assert exc.value.status_code == 404

    await service.approve_application(db_session, outcome.application_id, reviewer)
    with pytest.raises(ServiceError) as exc:
        await service.upload_own_artifact(db_session, outcome.application_id, data_uri, student)
    assert exc.value.status_code == 409
    assert await _count(db_session, ArchivedArtifact) == 0


# ----- Prefill -----

@pytest.mark.asyncio
async def test_prefill_returns_last_generated_form(db_session, student, reviewer, pdf_chain, templates, workdirs, tmp_path) -> None:
    empty = await service.get_prefill(db_session, STUDENT_KEY)
    assert empty.status is None
    assert empty.form == {}

    specs = [templates[0], TemplateSpec(tmp_path / "nope.docx", "preliminar", ArtifactType.PRELIMINARY_REPORT)]
    outcome = await _generate(db_session, student, pdf_chain, specs, workdirs)
    await service.reject_application(db_session, outcome.application_id, reviewer)

    prefill = await service.get_prefill(db_session, STUDENT_KEY)
    assert prefill.status == ApplicationStatus.REJECTED.value
    assert prefill.form["nombre_proyecto"] == "Sistema de inventarios"
    assert prefill.form["num_control"] == STUDENT_KEY

    preliminary = await service.get_prefill(db_session, STUDENT_KEY, ArtifactType.PRELIMINARY_REPORT)
    assert preliminary.document == ArtifactType.PRELIMINARY_REPORT
    assert preliminary.form == prefill.form


@pytest.mark.asyncio
async def test_prefill_ignores_a_corrupt_payload(db_session) -> None:
    db_session.add(AggregateStatus(student_key=STUDENT_KEY, solicitud_payload="{broken", status="rejected"))
    await db_session.commit()

    prefill = await service.get_prefill(db_session, STUDENT_KEY)
    assert prefill.status == "rejected"
    assert prefill.form == {}
