"""
Schedule appendix for the preliminary report: one extra page listing the activities and their months.
"""

import asyncio
import io
import logging
import textwrap
from pathlib import Path
from typing import Any, Dict, List, Sequence

import aiofiles
from PyPDF2 import PdfReader, PdfWriter
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)

TITLE = "Cronograma de actividades:"
MARGIN = 40
WRAP_WIDTH = 100
LINE_HEIGHT = 14


def schedule_lines(schedule: Sequence[Dict[str, Any]]) -> List[str]:
    lines: List[str] = []
    for entry in schedule:
        description = entry.get("descripcion") or entry.get("actividad") or ""
        months = ", ".join(entry.get("meses") or [])
        text = f"{entry.get('index', len(lines) + 1)}. {description}"
        if months:
            text += f" ({months})"
        lines.extend(textwrap.wrap(text, WRAP_WIDTH) or [""])
    return lines


def build_schedule_page(schedule: Sequence[Dict[str, Any]]) -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    _, height = A4
    y = height - MARGIN
    pdf.setFont("Helvetica-Bold", 12)
    pdf.drawString(MARGIN, y, TITLE)
    y -= LINE_HEIGHT * 2
    pdf.setFont("Helvetica", 10)
    for line in schedule_lines(schedule):
        if y < MARGIN:
            pdf.showPage()
            pdf.setFont("Helvetica", 10)
            y = height - MARGIN
        pdf.drawString(MARGIN, y, line)
        y -= LINE_HEIGHT
    pdf.save()
    return buffer.getvalue()


def append_pages(pdf_bytes: bytes, extra: bytes) -> bytes:
    writer = PdfWriter()
    for source in (pdf_bytes, extra):
        for page in PdfReader(io.BytesIO(source)).pages:
            writer.add_page(page)
    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()


async def append_schedule_page(pdf_path: Path, schedule: Sequence[Dict[str, Any]]) -> bool:
    """Best-effort: on any failure the PDF is left as it was. Returns True when the page was added."""
    if not schedule:
        return False
    try:
        async with aiofiles.open(pdf_path, "rb") as f:
            original = await f.read()
        page = await asyncio.to_thread(build_schedule_page, schedule)
        merged = await asyncio.to_thread(append_pages, original, page)
        async with aiofiles.open(pdf_path, "wb") as f:
            await f.write(merged)
        return True
    except Exception as e:
        logger.warning("Could not append schedule page to %s: %s", pdf_path, e)
        return False
