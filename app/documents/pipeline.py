"""
Render -> convert (-> schedule appendix) for each template of an application.
"""

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import aiofiles.os

from app.core.config import settings
from app.core.enums import ArtifactType, ConversionMethod
from app.core.exceptions import TemplateNotFound
from app.documents.appendix import append_schedule_page
from app.documents.converter import ConverterChain
from app.documents.renderer import render_template

logger = logging.getLogger(__name__)

RENDER_FAILED = "render-failed"
UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True)
class TemplateSpec:
    template_path: Path
    suffix: str
    artifact_type: ArtifactType
    schedule_appendix: bool = False


@dataclass
class TemplateResult:
    spec: TemplateSpec
    ok: bool
    path: Optional[str] = None
    method: Optional[ConversionMethod] = None
    error: Optional[str] = None

    @property
    def filename(self) -> Optional[str]:
        return Path(self.path).name if self.path else None


def default_templates() -> List[TemplateSpec]:
    base = Path(settings.templates_dir)
    return [
        TemplateSpec(base / settings.solicitud_template, "solicitud", ArtifactType.REQUEST),
        TemplateSpec(
            base / settings.preliminar_template,
            "preliminar",
            ArtifactType.PRELIMINARY_REPORT,
            schedule_appendix=True,
        ),
    ]


def safe_filename(name: str) -> str:
    return UNSAFE_NAME_RE.sub("_", name)


def output_filename(student_key: str, suffix: str, timestamp_ms: Optional[int] = None) -> str:
    timestamp_ms = int(time.time() * 1000) if timestamp_ms is None else timestamp_ms
    return f"{safe_filename(student_key)}_{suffix}_{timestamp_ms}.pdf"


async def unique_output_path(output_dir: Path, student_key: str, suffix: str) -> Path:
    """Never reuse the name of a file still on disk (it may be an artifact about to be archived)."""
    timestamp_ms = int(time.time() * 1000)
    while True:
        target = output_dir / output_filename(student_key, suffix, timestamp_ms)
        taken = await aiofiles.os.path.exists(str(target)) or await aiofiles.os.path.exists(
            str(target.with_suffix(".docx"))
        )
        if not taken:
            return target
        timestamp_ms += 1


async def generate_documents(
    payload: Dict[str, Any],
    student_key: str,
    chain: ConverterChain,
    templates: Optional[Sequence[TemplateSpec]] = None,
    output_dir: Optional[Path] = None,
) -> List[TemplateResult]:
    """One TemplateResult per template. A missing template fails that entry only."""
    templates = default_templates() if templates is None else templates
    output_dir = Path(output_dir or settings.public_pdf_dir)
    results: List[TemplateResult] = []

    for spec in templates:
        try:
            document = await render_template(spec.template_path, payload)
        except TemplateNotFound as e:
            logger.error("Template missing for %s: %s", spec.suffix, e.template_path)
            results.append(TemplateResult(spec=spec, ok=False, error=TemplateNotFound.code))
            continue
        except Exception:
            logger.exception("Rendering %s failed", spec.template_path)
            results.append(TemplateResult(spec=spec, ok=False, error=RENDER_FAILED))
            continue

        target = await unique_output_path(output_dir, student_key, spec.suffix)
        conversion = await chain.convert(document, target)
        if not conversion.ok:
            results.append(TemplateResult(spec=spec, ok=False, error=conversion.error))
            continue

        if spec.schedule_appendix and conversion.method != ConversionMethod.SOURCE_ONLY:
            await append_schedule_page(Path(conversion.path), payload.get("cronograma") or [])

        logger.info("Generated %s for %s via %s", Path(conversion.path).name, student_key, conversion.method.value)
        results.append(TemplateResult(spec=spec, ok=True, path=conversion.path, method=conversion.method))
    return results
