"""
DOCX -> PDF conversion with a fallback chain.

native library (docx2pdf) -> office suite CLI (soffice) -> keep the .docx as the deliverable.
Temp files live in TMP_DIR under unique names and are removed on every path.
"""

import asyncio
import errno
import logging
import os
import secrets
import shutil
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple

import aiofiles
import aiofiles.os

from app.core.config import settings
from app.core.enums import ConversionMethod
from app.core.exceptions import ConversionFailed, TransientFileLock
from app.core.metrics import MetricsSink, NoOpMetricsSink

logger = logging.getLogger(__name__)

CONVERSION_FAILED = "conversion-failed"
LOCK_ERRNOS = {errno.EBUSY, errno.EACCES, errno.EPERM}
KILL_WAIT_SECONDS = 5.0

WELL_KNOWN_SOFFICE_PATHS = [
    "/usr/bin/soffice",
    "/usr/lib/libreoffice/program/soffice",
    "/snap/bin/soffice",
    "/Applications/LibreOffice.app/Contents/MacOS/soffice",
    r"C:\Program Files\LibreOffice\program\soffice.exe",
    r"C:\Program Files (x86)\LibreOffice\program\soffice.exe",
]

NativeConverter = Callable[[Path, Path], Awaitable[None]]
CliConverter = Callable[[Path, Path], Awaitable[Path]]


@dataclass
class ConversionResult:
    ok: bool
    path: Optional[str] = None
    method: Optional[ConversionMethod] = None
    error: Optional[str] = None


# ----- Locating the office suite -----


def _executable_names() -> List[str]:
    if sys.platform.startswith("win"):
        return ["soffice.exe", "soffice.com"]
    return ["soffice"]


def find_soffice() -> Optional[str]:
    """Configured path, then LIBREOFFICE_HOME/program, then PATH, then the usual install locations."""
    candidates: List[str] = []
    if settings.libreoffice_path:
        configured = Path(settings.libreoffice_path)
        if configured.is_dir():
            candidates.extend(str(configured / name) for name in _executable_names())
        else:
            candidates.append(str(configured))
    if settings.libreoffice_home:
        home = Path(settings.libreoffice_home) / "program"
        candidates.extend(str(home / name) for name in _executable_names())

    for candidate in candidates:
        if os.path.isfile(candidate):
            return candidate

    found = shutil.which("soffice") or shutil.which("libreoffice")
    if found:
        return found

    for candidate in WELL_KNOWN_SOFFICE_PATHS:
        if os.path.isfile(candidate):
            return candidate
    return None


async def locate_soffice() -> Optional[str]:
    """find_soffice off the event loop; it stats several paths and scans PATH."""
    return await asyncio.to_thread(find_soffice)


# ----- Conversion steps -----


async def docx2pdf_convert(source: Path, target: Path) -> None:
    """Native step. docx2pdf drives Word through COM/AppleScript, so it only works where Word exists."""
    from docx2pdf import convert

    await asyncio.to_thread(convert, str(source), str(target))
    if not await aiofiles.os.path.isfile(str(target)):
        raise ConversionFailed("docx2pdf produced no output")


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """soffice forks soffice.bin, which inherits stderr; kill the whole group so the pipe closes."""
    try:
        if os.name == "posix":
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        return


async def soffice_convert(source: Path, out_dir: Path) -> Path:
    soffice = await locate_soffice()
    if soffice is None:
        raise ConversionFailed("soffice executable not found")

    process = await asyncio.create_subprocess_exec(
        soffice,
        "--headless",
        "--norestore",
        "--nolockcheck",
        "--convert-to",
        "pdf",
        "--outdir",
        str(out_dir),
        str(source),
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=os.name == "posix",
    )
    try:
        _, stderr = await asyncio.wait_for(process.communicate(), timeout=settings.converter_timeout_seconds)
    except asyncio.TimeoutError:
        _kill_process_group(process)
        try:
            await asyncio.wait_for(process.wait(), timeout=KILL_WAIT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("soffice (pid %s) still running after kill", process.pid)
        raise ConversionFailed(f"soffice timed out after {settings.converter_timeout_seconds}s")

    produced = out_dir / (source.stem + ".pdf")
    if process.returncode != 0 or not await aiofiles.os.path.isfile(str(produced)):
        detail = stderr.decode("utf-8", errors="replace").strip() if stderr else ""
        raise ConversionFailed(f"soffice exited with {process.returncode}: {detail}")
    return produced


# ----- Temp file handling -----


async def _remove_once(path: Path) -> None:
    try:
        await aiofiles.os.remove(str(path))
    except FileNotFoundError:
        return
    except OSError as e:
        if isinstance(e, PermissionError) or e.errno in LOCK_ERRNOS:
            raise TransientFileLock(str(path)) from e
        raise


async def cleanup_temp_file(
    path: Path,
    max_retries: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> bool:
    """
    Delete a temp file, retrying while the OS reports it locked.
    Returns False (and leaves the file for the periodic sweep) when every attempt fails. Never raises.
    """
    retries = max(1, settings.cleanup_max_retries if max_retries is None else max_retries)
    backoff = settings.cleanup_backoff_seconds if backoff_seconds is None else backoff_seconds
    for attempt in range(retries):
        try:
            await _remove_once(path)
            return True
        except TransientFileLock:
            if attempt < retries - 1:
                await asyncio.sleep(backoff * (2 ** attempt))
        except OSError as e:
            logger.warning("Could not delete temp file %s: %s", path, e)
            return False
    logger.warning("Temp file %s still locked after %d attempts; left for the cleanup sweep", path, retries)
    return False


async def sweep_stale_temp_files(
    tmp_dir: Optional[Path] = None,
    max_age_minutes: Optional[float] = None,
    now: Optional[float] = None,
) -> int:
    """Remove temp files older than TEMP_MAX_AGE_MINUTES. Returns the number of files deleted."""
    directory = Path(tmp_dir or settings.tmp_dir)
    max_age = (settings.temp_max_age_minutes if max_age_minutes is None else max_age_minutes) * 60
    now = time.time() if now is None else now
    if not await aiofiles.os.path.isdir(str(directory)):
        return 0

    deleted = 0
    for name in await aiofiles.os.listdir(str(directory)):
        path = directory / name
        try:
            stat = await aiofiles.os.stat(str(path))
        except FileNotFoundError:
            continue
        if not await aiofiles.os.path.isfile(str(path)):
            continue
        if now - stat.st_mtime > max_age and await cleanup_temp_file(path):
            deleted += 1
    if deleted:
        logger.info("Removed %d stale temp files from %s", deleted, directory)
    return deleted


# ----- Chain -----


class ConverterChain:
    """
    Runs the conversion fallbacks for one rendered document.
    Steps are injectable so tests (and hosts without an office suite) can swap them.
    """

    def __init__(
        self,
        tmp_dir: Optional[Path] = None,
        native: Optional[NativeConverter] = docx2pdf_convert,
        cli: Optional[CliConverter] = soffice_convert,
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        self.tmp_dir = Path(tmp_dir or settings.tmp_dir)
        self.native = native
        self.cli = cli
        self.metrics = metrics or NoOpMetricsSink()

    def _temp_docx(self) -> Path:
        return self.tmp_dir / f"{int(time.time() * 1000)}_{secrets.token_hex(4)}_render.docx"

    async def _to_pdf(self, docx_path: Path) -> Tuple[Optional[Path], Optional[ConversionMethod]]:
        native_pdf = docx_path.with_suffix(".pdf")
        if self.native is not None:
            try:
                await self.native(docx_path, native_pdf)
                return native_pdf, ConversionMethod.NATIVE_LIBRARY
            except Exception as e:
                logger.warning("Native conversion failed, trying soffice CLI: %s", e)
        if self.cli is not None:
            try:
                produced = await self.cli(docx_path, self.tmp_dir)
                return produced, ConversionMethod.CLI_FALLBACK
            except Exception as e:
                logger.warning("soffice CLI conversion failed: %s", e)
        return None, None

    async def convert(self, document: bytes, output_path: Path) -> ConversionResult:
        output_path = Path(output_path)
        started = time.perf_counter()
        temp_files: List[Path] = []
        result = ConversionResult(ok=False, error=CONVERSION_FAILED)
        try:
            await aiofiles.os.makedirs(str(self.tmp_dir), exist_ok=True)
            await aiofiles.os.makedirs(str(output_path.parent), exist_ok=True)

            docx_path = self._temp_docx()
            temp_files.extend([docx_path, docx_path.with_suffix(".pdf")])
            async with aiofiles.open(docx_path, "wb") as f:
                await f.write(document)

            pdf_path, method = await self._to_pdf(docx_path)
            if pdf_path is not None:
                temp_files.append(pdf_path)
                async with aiofiles.open(pdf_path, "rb") as f:
                    pdf_bytes = await f.read()
                async with aiofiles.open(output_path, "wb") as f:
                    await f.write(pdf_bytes)
                result = ConversionResult(ok=True, path=str(output_path), method=method)
            else:
                fallback = output_path.with_suffix(".docx")
                async with aiofiles.open(fallback, "wb") as f:
                    await f.write(document)
                logger.warning("PDF conversion unavailable, delivering source document %s", fallback)
                result = ConversionResult(ok=True, path=str(fallback), method=ConversionMethod.SOURCE_ONLY)
        except OSError as e:
            logger.error("Conversion of %s failed: %s", output_path.name, e)
            result = ConversionResult(ok=False, error=CONVERSION_FAILED)
        finally:
            for temp in dict.fromkeys(temp_files):
                await cleanup_temp_file(temp)
            method_name = result.method.value if result.method else CONVERSION_FAILED
            self.metrics.record_conversion(method_name, result.ok, (time.perf_counter() - started) * 1000)
        return result

    @staticmethod
    async def available_methods() -> List[str]:
        methods = []
        if sys.platform.startswith("win") or sys.platform == "darwin":
            methods.append(ConversionMethod.NATIVE_LIBRARY.value)
        if await locate_soffice():
            methods.append(ConversionMethod.CLI_FALLBACK.value)
        methods.append(ConversionMethod.SOURCE_ONLY.value)
        return methods
