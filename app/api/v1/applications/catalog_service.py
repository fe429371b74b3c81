"""
Fills a submitted form from the reference catalogs before rendering: the student's own row,
the career (and its coordinator) and the company. Values the student typed always win; only
blank fields are filled. A catalog miss leaves the form as submitted.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import Advisor, Career, Company, Student
from app.documents.sanitize import sanitize_data

logger = logging.getLogger(__name__)


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _fill(data: Dict[str, Any], key: str, value: Any) -> None:
    if not data.get(key) and value:
        data[key] = value


async def find_student(db: AsyncSession, student_key: Optional[str], name: Optional[str] = None) -> Optional[Student]:
    """By control number, then by exact name (case-insensitive)."""
    if student_key:
        student = await db.get(Student, student_key)
        if student:
            return student
    if name:
        result = await db.execute(
            select(Student).where(func.lower(Student.name) == name.strip().lower()).limit(1)
        )
        return result.scalar_one_or_none()
    return None


async def find_career(db: AsyncSession, career_id: Any = None, name: Optional[str] = None) -> Optional[Career]:
    key = _to_int(career_id)
    if key is not None:
        career = await db.get(Career, key)
        if career:
            return career
    if name:
        result = await db.execute(select(Career).where(Career.name == name.strip()).limit(1))
        return result.scalar_one_or_none()
    return None


async def find_company(db: AsyncSession, company_id: Any = None, name: Optional[str] = None) -> Optional[Company]:
    key = _to_int(company_id)
    if key is not None:
        return await db.get(Company, key)
    if name:
        result = await db.execute(
            select(Company).where(func.lower(Company.name) == name.strip().lower()).limit(1)
        )
        return result.scalar_one_or_none()
    return None


async def find_advisor(db: AsyncSession, rfc: str) -> Optional[Advisor]:
    return await db.get(Advisor, (rfc or "").strip().upper())


async def list_advisors(db: AsyncSession) -> List[Advisor]:
    result = await db.execute(select(Advisor).order_by(Advisor.name))
    return list(result.scalars().all())


def company_view(company: Company) -> Dict[str, Any]:
    """Nested `empresa` object the templates and the normalizer read."""
    giro = company.business_line or company.sector or ""
    return sanitize_data({
        "id": company.id,
        "nombre": company.name,
        "domicilio": company.address,
        "colonia": company.neighborhood,
        "ciudad": company.city,
        "codigo_postal": company.postal_code,
        "rfc": company.rfc,
        "telefono": company.phone,
        "actividad": company.mission,
        "sector": company.sector,
        "giro": giro,
        "titular_nombre": company.holder_name,
        "titular_puesto": company.holder_position,
        "firmante_nombre": company.signer_name,
        "firmante_puesto": company.signer_position,
    })


def _apply_student(data: Dict[str, Any], student: Student) -> None:
    alumno = sanitize_data({
        "num_control": student.student_key,
        "nombre": student.name,
        "carrera": student.career,
        "domicilio": student.address,
        "email_alumno": student.email,
        "telefono": student.phone,
    })
    data["alumno"] = alumno
    _fill(data, "nombre_estudiante", alumno["nombre"])
    _fill(data, "carrera", alumno["carrera"])
    _fill(data, "domicilio", alumno["domicilio"])
    _fill(data, "email", alumno["email_alumno"])
    _fill(data, "telefono_fijo", alumno["telefono"])


def _apply_career(data: Dict[str, Any], career: Career) -> None:
    nombre = sanitize_data(career.name)
    coordinador = sanitize_data(career.coordinator)
    data["coordinador"] = {"carrera_id": career.id, "nombre": coordinador, "carrera": nombre}
    _fill(data, "carrera_id", career.id)
    _fill(data, "nombre_coordinador", coordinador)
    _fill(data, "coordinador_carrera", nombre)
    _fill(data, "carrera", nombre)


def _apply_company(data: Dict[str, Any], company: Company) -> None:
    empresa = company_view(company)
    data["empresa"] = empresa
    data["empresa_id"] = company.id
    _fill(data, "empresa_nombre", empresa["nombre"])
    _fill(data, "giro", empresa["giro"])
    _fill(data, "empresa_sector", empresa["sector"])
    _fill(data, "domicilio_telefono", " | ".join(v for v in (empresa["domicilio"], empresa["telefono"]) if v))
    _fill(data, "actividades_empresa", empresa["actividad"])
    _fill(data, "contacto_empresa", sanitize_data(company.attention_to))


async def enrich_form(db: AsyncSession, form: Dict[str, Any], student_key: Optional[str]) -> Dict[str, Any]:
    """Return a copy of the form with blanks filled from the student, career and company rows."""
    data = dict(form)

    student = await find_student(db, data.get("num_control") or student_key, data.get("nombre_estudiante"))
    if student:
        _apply_student(data, student)

    career = await find_career(db, data.get("carrera_id"), data.get("carrera"))
    if career:
        _apply_career(data, career)

    company = await find_company(db, data.get("empresa_id"), data.get("empresa_nombre"))
    if company:
        _apply_company(data, company)
    elif data.get("empresa_id"):
        logger.warning("Company %s not found in the catalog; rendering with the submitted fields", data["empresa_id"])

    return data
