"""
Artifact archive. Retiring an artifact moves its file under ARCHIVE_DIR/<student_key>/, appends an
ArchivedArtifact row with the reason code and deletes the active row. The archive is append-only.

Files move as soon as an artifact is archived; run the archiving and the commit inside
`archive_transaction` so the files go back where they were when the commit fails.
"""

import asyncio
import logging
import secrets
import shutil
import time
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple

import aiofiles.os
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.enums import ArchiveReason
from app.core.models import ApplicationRecord, ArchivedArtifact, Artifact
from app.documents.pipeline import safe_filename

logger = logging.getLogger(__name__)

MOVED_FILES_KEY = "archive_moved_files"


def archive_filename(filename: str) -> str:
    return f"arch_{int(time.time() * 1000)}_{secrets.token_hex(3)}_{safe_filename(filename)}"


async def _move_file(source: Path, target: Path) -> None:
    try:
        await aiofiles.os.rename(str(source), str(target))
    except OSError:
        # rename fails across filesystems
        await asyncio.to_thread(shutil.move, str(source), str(target))


def _moved_files(db: AsyncSession) -> List[Tuple[Path, Path]]:
    return db.info.setdefault(MOVED_FILES_KEY, [])


async def _restore_moved_files(moves: List[Tuple[Path, Path]]) -> None:
    for source, target in reversed(moves):
        try:
            await _move_file(target, source)
        except OSError as e:
            logger.error("Could not move %s back to %s: %s", target, source, e)
    if moves:
        logger.warning("Restored %d archived files after a failed commit", len(moves))


@asynccontextmanager
async def archive_transaction(db: AsyncSession) -> AsyncIterator[None]:
    """Commit on exit. When the block or the commit fails, roll back and move archived files back."""
    db.info[MOVED_FILES_KEY] = []
    try:
        yield
        await db.commit()
    except BaseException:
        await _restore_moved_files(db.info.get(MOVED_FILES_KEY, []))
        await db.rollback()
        raise
    finally:
        db.info.pop(MOVED_FILES_KEY, None)


async def archive_artifact(
    db: AsyncSession,
    artifact: Artifact,
    student_key: str,
    reason: ArchiveReason,
    actor: Optional[str] = None,
) -> ArchivedArtifact:
    """Archive one active artifact. A missing or immovable file is logged; the row is archived anyway."""
    stored_path = artifact.filepath
    source = Path(artifact.filepath) if artifact.filepath else None
    if source is not None and await aiofiles.os.path.isfile(str(source)):
        target_dir = Path(settings.archive_dir) / safe_filename(student_key)
        target = target_dir / archive_filename(artifact.filename)
        try:
            await aiofiles.os.makedirs(str(target_dir), exist_ok=True)
            await _move_file(source, target)
            stored_path = str(target)
            _moved_files(db).append((source, target))
        except OSError as e:
            logger.warning("Could not move %s into the archive, keeping original path: %s", source, e)
    else:
        logger.warning("Archiving artifact %s whose file is missing (%s)", artifact.id, artifact.filepath)

    archived = ArchivedArtifact(
        application_id=artifact.application_id,
        original_artifact_id=artifact.id,
        filename=artifact.filename,
        filepath=stored_path,
        uploaded_by=artifact.uploaded_by,
        uploaded_at=artifact.uploaded_at,
        archived_by=actor,
        archived_at=datetime.utcnow(),
        reason=reason.value,
    )
    db.add(archived)
    await db.delete(artifact)
    await db.flush()
    return archived


async def _archive_all(
    db: AsyncSession,
    artifacts: List[Artifact],
    student_key: str,
    reason: ArchiveReason,
    actor: Optional[str],
) -> List[ArchivedArtifact]:
    archived: List[ArchivedArtifact] = []
    for artifact in artifacts:
        archived.append(await archive_artifact(db, artifact, student_key, reason, actor))
    if archived:
        logger.info("Archived %d artifacts of %s (%s)", len(archived), student_key, reason.value)
    return archived


async def archive_application_artifacts(
    db: AsyncSession,
    record: ApplicationRecord,
    reason: ArchiveReason,
    actor: Optional[str] = None,
) -> List[ArchivedArtifact]:
    """Archive the active artifacts of one record. No active artifacts -> no-op. Caller commits."""
    result = await db.execute(
        select(Artifact).where(Artifact.application_id == record.id).order_by(Artifact.id)
    )
    return await _archive_all(db, list(result.scalars().all()), record.student_key, reason, actor)


async def archive_student_artifacts(
    db: AsyncSession,
    student_key: str,
    reason: ArchiveReason,
    actor: Optional[str] = None,
) -> List[ArchivedArtifact]:
    """Archive every active artifact belonging to the student, across all of their records."""
    result = await db.execute(
        select(Artifact)
        .join(ApplicationRecord, Artifact.application_id == ApplicationRecord.id)
        .where(ApplicationRecord.student_key == student_key)
        .order_by(Artifact.id)
    )
    return await _archive_all(db, list(result.scalars().all()), student_key, reason, actor)
