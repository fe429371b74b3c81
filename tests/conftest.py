import os
from pathlib import Path
from typing import AsyncGenerator, Dict, List, Optional

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing")

import pytest
from docx import Document
from httpx import ASGITransport, AsyncClient
from reportlab.pdfgen import canvas
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.v1.applications.router import get_converter_chain
from app.auth.schemas import CurrentUser
from app.auth.security import create_access_token
from app.core.config import settings
from app.core.enums import ArtifactType, UserRole
from app.core.metrics import InMemoryMetricsSink
from app.core.models import Advisor, Career, Company, Student
from app.db.schema_check import ensure_tables
from app.db.session import get_db, get_session_factory
from app.documents.converter import ConverterChain
from app.documents.pipeline import TemplateSpec
from app.main import create_app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

STUDENT_KEY = "20240001"


# ----- Filesystem -----

@pytest.fixture()
def workdirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Dict[str, Path]:
    """Point every output directory at a fresh tmp tree."""
    dirs = {
        "templates": tmp_path / "templates",
        "public": tmp_path / "public" / "pdfs",
        "archive": tmp_path / "public" / "pdfs" / "archive",
        "storage": tmp_path / "storage" / "pdfs",
        "tmp": tmp_path / "tmp",
    }
    dirs["templates"].mkdir(parents=True)
    monkeypatch.setattr(settings, "templates_dir", str(dirs["templates"]))
    monkeypatch.setattr(settings, "public_pdf_dir", str(dirs["public"]))
    monkeypatch.setattr(settings, "archive_dir", str(dirs["archive"]))
    monkeypatch.setattr(settings, "storage_dir", str(dirs["storage"]))
    monkeypatch.setattr(settings, "tmp_dir", str(dirs["tmp"]))
    monkeypatch.setattr(settings, "cleanup_backoff_seconds", 0.0)
    return dirs


def build_request_template(path: Path) -> Path:
    doc = Document()
    doc.add_paragraph("Solicitud de {nombre_estudiante}")
    split = doc.add_paragraph()
    split.add_run("Proyecto: {nombre_")
    split.add_run("proyecto}")
    doc.add_paragraph("Fecha: {fecha_solicitud}")
    doc.add_paragraph("Giro industrial: [{giro_industrial_x}] Servicios: [{giro_servicios_x}]")
    doc.add_paragraph("Asesor: {missing_field}")
    table = doc.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Actividad"
    table.cell(0, 1).text = "Meses"
    table.cell(1, 0).text = "{#cronograma}{descripcion}"
    table.cell(1, 1).text = "{meses_texto}{/cronograma}"
    doc.save(str(path))
    return path


def build_preliminary_template(path: Path) -> Path:
    doc = Document()
    doc.add_paragraph("Reporte preliminar: {nombre_proyecto}")
    doc.add_paragraph("{periodo_residencias}")
    doc.save(str(path))
    return path


def build_assignment_template(path: Path) -> Path:
    doc = Document()
    doc.add_paragraph("{departamento} Oficio {num_oficio}")
    doc.add_paragraph("Fecha: {fecha}")
    doc.add_paragraph("Asesor: {nombre_asesor}")
    doc.add_paragraph("Alumno: {nombre_usuario} ({carrera_usuario})")
    doc.add_paragraph("Proyecto: {nombre_proyecto} en {nombre_empresa}, periodo {periodo}")
    doc.add_paragraph("Atentamente, {nombre_jefe_departamento}")
    doc.save(str(path))
    return path


@pytest.fixture()
def templates(workdirs: Dict[str, Path]) -> List[TemplateSpec]:
    request = build_request_template(workdirs["templates"] / settings.solicitud_template)
    preliminary = build_preliminary_template(workdirs["templates"] / settings.preliminar_template)
    return [
        TemplateSpec(request, "solicitud", ArtifactType.REQUEST),
        TemplateSpec(preliminary, "preliminar", ArtifactType.PRELIMINARY_REPORT, schedule_appendix=True),
    ]


# ----- Converters -----

def write_pdf(target: Path, text: str = "converted") -> None:
    pdf = canvas.Canvas(str(target))
    pdf.drawString(72, 720, text)
    pdf.save()


async def fake_native(source: Path, target: Path) -> None:
    write_pdf(target)


async def failing_native(source: Path, target: Path) -> None:
    raise RuntimeError("native converter unavailable")


async def failing_cli(source: Path, out_dir: Path) -> Path:
    raise RuntimeError("soffice not installed")


async def fake_cli(source: Path, out_dir: Path) -> Path:
    produced = out_dir / (source.stem + ".pdf")
    write_pdf(produced, "cli")
    return produced


@pytest.fixture()
def metrics() -> InMemoryMetricsSink:
    return InMemoryMetricsSink()


@pytest.fixture()
def pdf_chain(workdirs: Dict[str, Path], metrics: InMemoryMetricsSink) -> ConverterChain:
    return ConverterChain(tmp_dir=workdirs["tmp"], native=fake_native, cli=failing_cli, metrics=metrics)


@pytest.fixture()
def source_only_chain(workdirs: Dict[str, Path], metrics: InMemoryMetricsSink) -> ConverterChain:
    return ConverterChain(tmp_dir=workdirs["tmp"], native=failing_native, cli=failing_cli, metrics=metrics)


# ----- Database -----

@pytest.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """One in-memory database per test, shared by every session through a static pool."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await ensure_tables(engine)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture()
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ----- Auth -----

def make_user(role: UserRole = UserRole.STUDENT, key: str = STUDENT_KEY) -> CurrentUser:
    student_key = key if role == UserRole.STUDENT else None
    return CurrentUser(user_key=key, role=role, student_key=student_key)


def auth_headers(role: UserRole = UserRole.STUDENT, key: str = STUDENT_KEY) -> Dict[str, str]:
    subject = {"sub": key, "role": role.value}
    if role == UserRole.STUDENT:
        subject["student_key"] = key
    return {"Authorization": f"Bearer {create_access_token(subject=subject)}"}


@pytest.fixture()
def student() -> CurrentUser:
    return make_user()


@pytest.fixture()
def reviewer() -> CurrentUser:
    return make_user(UserRole.DEPARTMENT_HEAD, "jefe1")


# ----- API -----

@pytest.fixture()
async def client(
    session_factory: async_sessionmaker,
    db_session: AsyncSession,
    pdf_chain: ConverterChain,
    templates: List[TemplateSpec],
    metrics: InMemoryMetricsSink,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to a fresh app, the per-test database and the fake converters."""
    app = create_app(metrics=metrics)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_converter_chain] = lambda: pdf_chain

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def sample_form(**overrides: object) -> Dict[str, object]:
    form: Dict[str, object] = {
        "nombre_proyecto": "Sistema de inventarios",
        "empresa_id": 7,
        "nombre_estudiante": "Juan Pérez",
        "empresa_sector": "Industrial",
        "periodo": "enero-junio",
        "anio": 2025,
        "fecha_solicitud": "2025-01-15",
        "opcion_elegida": "banco de proyectos",
        "nombre_asesor_externo": "Ana López",
        "cronograma": [
            {"descripcion": "Fase 1", "meses": [1, 2]},
            {"descripcion": "Fase 2", "meses": "marzo, abril"},
        ],
    }
    form.update(overrides)
    return form


ADVISOR_RFC = "GORA800101ABC"


async def seed_catalog(db: AsyncSession) -> None:
    """The student, career, company and advisor rows that sample_form() points at."""
    db.add_all([
        Student(
            student_key=STUDENT_KEY,
            name="Juan Pérez",
            career="Ingeniería en Sistemas",
            address="Calle Hidalgo 12",
            email="juan@escuela.mx",
            phone="555-0101",
        ),
        Career(id=3, name="Ingeniería en Sistemas", coordinator="Mtra. Laura Ríos"),
        Company(
            id=7,
            name="Aceros del Norte",
            business_line="Metalurgia",
            sector="Industrial",
            attention_to="Ing. Pedro Ruiz",
            address="Av. Industria 10",
            phone="555-0202",
            mission="Fabricación de acero",
            signer_name="Lic. Marta Gil",
            signer_position="Directora General",
        ),
        Advisor(rfc=ADVISOR_RFC, name="Dr. Andrés Gómez", career="Ingeniería en Sistemas"),
    ])
    await db.commit()
