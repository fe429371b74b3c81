"""
Advisor assignment letter ("asignación de asesor") for an approved application.
The letter is rendered from ASIGNACION_TEMPLATE, converted through the usual chain into a
temp directory and handed to the caller, who deletes it after the download.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import ApplicationStatus
from app.core.exceptions import ServiceError, TemplateNotFound
from app.core.models import Advisor, ApplicationRecord
from app.documents.converter import ConverterChain
from app.documents.dates import format_dates_deep
from app.documents.renderer import render_template
from app.documents.sanitize import sanitize_data

from . import audit_service, catalog_service

logger = logging.getLogger(__name__)

ASSIGNMENT_DIR = "asignaciones"


@dataclass
class AssignmentContext:
    application: ApplicationRecord
    student_name: str
    student_career: str
    company_name: str
    advisors: List[Advisor]

    @property
    def period_label(self) -> str:
        return " ".join(str(part) for part in (self.application.period, self.application.year) if part)

    @property
    def ready(self) -> bool:
        return self.application.status == ApplicationStatus.APPROVED.value


@dataclass
class AssignmentDocument:
    path: Path
    filename: str
    method: str


def assignment_template_path() -> Path:
    return Path(settings.templates_dir) / settings.asignacion_template


def assignment_output_dir() -> Path:
    return Path(settings.tmp_dir) / ASSIGNMENT_DIR


async def get_assignment_context(db: AsyncSession, application_id: int) -> AssignmentContext:
    """The record plus what the letter prints about it, and the advisors to choose from."""
    record = await db.get(ApplicationRecord, application_id)
    if not record:
        raise ServiceError("Application not found", status.HTTP_404_NOT_FOUND)

    student = await catalog_service.find_student(db, record.student_key)
    company = await catalog_service.find_company(db, record.company_id)
    return AssignmentContext(
        application=record,
        student_name=sanitize_data(student.name) if student else "",
        student_career=sanitize_data(student.career) if student else "",
        company_name=sanitize_data(company.name) if company else "",
        advisors=await catalog_service.list_advisors(db),
    )


def build_assignment_payload(context: AssignmentContext, form: Dict[str, Any], advisor: Advisor) -> Dict[str, Any]:
    now = datetime.now()
    data = {
        "departamento": form.get("departamento"),
        "num_oficio": form.get("num_oficio"),
        "fecha": form.get("fecha"),
        "nombre_jefe_departamento": form.get("nombre_jefe_departamento"),
        "nombre_asesor": advisor.name,
        "nombre_usuario": context.student_name,
        "carrera_usuario": context.student_career,
        "nombre_proyecto": context.application.project_name,
        "periodo": context.period_label,
        "nombre_empresa": context.company_name,
        "fecha_generacion": now,
        "fecha_actual": now,
    }
    return format_dates_deep(sanitize_data(data))


async def generate_advisor_assignment(
    db: AsyncSession,
    application_id: int,
    form: Dict[str, Any],
    actor: CurrentUser,
    chain: ConverterChain,
    template_path: Optional[Path] = None,
    output_dir: Optional[Path] = None,
) -> AssignmentDocument:
    """
    Render the assignment letter for an approved record. 409 if the record is not approved,
    404 if the advisor or the template is missing, 500 if conversion fails outright.
    """
    context = await get_assignment_context(db, application_id)
    if not context.ready:
        raise ServiceError("The application must be approved before assigning an advisor", status.HTTP_409_CONFLICT)

    advisor = await catalog_service.find_advisor(db, form.get("asesor_rfc") or "")
    if advisor is None:
        raise ServiceError("Advisor not found", status.HTTP_404_NOT_FOUND)

    template_path = Path(template_path or assignment_template_path())
    try:
        document = await render_template(template_path, build_assignment_payload(context, form, advisor))
    except TemplateNotFound as e:
        logger.error("Advisor assignment template missing: %s", e.template_path)
        raise

    output_dir = Path(output_dir or assignment_output_dir())
    target = output_dir / f"asignacion_{context.application.id}_{int(time.time() * 1000)}_{secrets.token_hex(3)}.pdf"
    conversion = await chain.convert(document, target)
    if not conversion.ok:
        raise ServiceError("Could not produce the assignment document", status.HTTP_500_INTERNAL_SERVER_ERROR)

    await audit_service.log_audit(
        db,
        context.application.student_key,
        context.application.id,
        "advisor_assigned",
        from_status=context.application.status,
        to_status=context.application.status,
        performed_by=actor.user_key,
        performed_by_role=actor.role.value,
        remarks=f"{advisor.rfc} {form.get('num_oficio') or ''}".strip(),
    )
    await db.commit()
    path = Path(conversion.path)
    logger.info("Advisor assignment %s generated via %s", path.name, conversion.method.value)
    return AssignmentDocument(path=path, filename=path.name, method=conversion.method.value)
