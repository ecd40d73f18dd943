"""
State transitions for submissions and materi progress.

Each helper only stages changes on the session; the calling route commits.
Submitting and recording access are single ``INSERT .. ON CONFLICT`` statements
so two concurrent requests for the same pair converge on one row.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from lms.errors import NotFoundError
from lms.models.materi import SiswaMateri
from lms.models.tugas import Tugas, SiswaTugas, SubmissionStatus
from lms.utils.time_utils import get_jakarta_time

logger = logging.getLogger(__name__)


def _insert(db: AsyncSession, model):
    if db.bind.dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


async def upsert_submission(db: AsyncSession, siswa_id: int, tugas_id: int, jawaban: str) -> int:
    """
    Stores the siswa's answer, replacing any earlier one, and returns the row id.

    Re-submitting reopens the submission: status goes back to ``dikerjakan``
    and any previous grade, feedback and grading time are cleared. At most
    one row exists per (siswa, tugas).
    """
    stmt = _insert(db, SiswaTugas).values(
        siswa_id=siswa_id,
        tugas_id=tugas_id,
        jawaban=jawaban,
        status=SubmissionStatus.DIKERJAKAN.value,
        submitted_at=get_jakarta_time(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[SiswaTugas.siswa_id, SiswaTugas.tugas_id],
        set_={
            "jawaban": stmt.excluded.jawaban,
            "status": stmt.excluded.status,
            "submitted_at": stmt.excluded.submitted_at,
            "nilai": None,
            "feedback": None,
            "graded_at": None,
        },
    ).returning(SiswaTugas.id)
    return (await db.execute(stmt)).scalar_one()


async def grade_submission(
    db: AsyncSession, submission_id: int, guru_id: int, nilai: int, feedback: Optional[str]
) -> SiswaTugas:
    # Submissions on another guru's tugas are treated as missing
    result = await db.execute(
        select(SiswaTugas)
        .join(Tugas, Tugas.id == SiswaTugas.tugas_id)
        .where(SiswaTugas.id == submission_id, Tugas.guru_id == guru_id)
    )
    submission = result.scalar_one_or_none()
    if submission is None:
        raise NotFoundError("Submission tidak ditemukan")

    submission.nilai = nilai
    submission.feedback = (feedback or "").strip()
    submission.status = SubmissionStatus.SELESAI.value
    submission.graded_at = get_jakarta_time()
    await db.flush()
    logger.info(f"Submission {submission_id} graded {nilai} by guru {guru_id}")
    return submission


async def record_materi_access(db: AsyncSession, siswa_id: int, materi_id: int, completed: bool = False) -> None:
    """Touches ``last_accessed``; completion is sticky once set."""
    stmt = _insert(db, SiswaMateri).values(
        siswa_id=siswa_id,
        materi_id=materi_id,
        last_accessed=get_jakarta_time(),
        is_completed=completed,
    )
    changes = {"last_accessed": stmt.excluded.last_accessed}
    if completed:
        changes["is_completed"] = True
    stmt = stmt.on_conflict_do_update(
        index_elements=[SiswaMateri.siswa_id, SiswaMateri.materi_id],
        set_=changes,
    )
    await db.execute(stmt)
