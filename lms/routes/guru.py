import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from lms.database import get_db
from lms.errors import NotFoundError, ValidationError
from lms.models.diskusi import DiskusiMateri
from lms.models.materi import Materi, MateriKelas
from lms.models.tugas import Tugas
from lms.models.user import User, Role
from lms.schemas.common import ApiResponse, CreatedRef, ok
from lms.schemas.diskusi_schema import DiskusiMateriItem, ReplyRequest
from lms.schemas.kelas_schema import PublicKelas
from lms.schemas.materi_schema import MateriCreate, MateriGuruItem, MateriKelasOut, MateriRef, MateriUpdate
from lms.schemas.stats_schema import (
    ActivityItem, GuruDashboardStats, GuruKelasGroup, GuruKelasInfo, GuruSiswaDetail,
    GuruSiswaProgress, UpcomingDeadline, WaliKelasStats,
)
from lms.schemas.tugas_schema import GradeRequest, QueuedSubmission, TugasCreate, TugasGuruItem, TugasSubmissions, TugasUpdate
from lms.security import require_guru
from lms.services import analytics, directory, queries
from lms.services.analytics import kelas_ref
from lms.services.diskusi_service import materi_feed
from lms.services.submission_service import grade_submission

logger = logging.getLogger(__name__)

router = APIRouter()

async def _valid_kelas_ids(db: AsyncSession, kelas_ids: List[int]) -> List[int]:
    """Rejects the whole request if any class id does not exist."""
    wanted = list(dict.fromkeys(kelas_ids))
    if not wanted:
        raise ValidationError("Minimal satu kelas harus dipilih")
    found = await queries.kelas_by_id(db, wanted)
    if len(found) != len(wanted):
        raise ValidationError("Kelas yang dipilih tidak valid")
    return wanted

# --- Dashboard ---------------------------------------------------------------

@router.get("/dashboard/stats", response_model=ApiResponse[GuruDashboardStats])
async def dashboard_stats(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.guru_dashboard_stats(db, guru))

@router.get("/kelas/info", response_model=ApiResponse[List[GuruKelasInfo]])
async def kelas_info(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.guru_kelas_info(db, guru.id))

@router.get("/wali-kelas/stats", response_model=ApiResponse[WaliKelasStats])
async def wali_kelas_stats(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.wali_kelas_stats(db, guru.id))

@router.get("/deadlines/upcoming", response_model=ApiResponse[List[UpcomingDeadline]])
async def deadlines_upcoming(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.upcoming_deadlines(db, guru.id))

@router.get("/siswa/by-kelas", response_model=ApiResponse[List[GuruKelasGroup]])
async def siswa_by_kelas(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.guru_siswa_by_kelas(db, guru.id))

@router.get("/dashboard/recent-activity", response_model=ApiResponse[List[ActivityItem]])
async def recent_activity(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.guru_recent_activity(db, guru.id))

# --- Materi ------------------------------------------------------------------

@router.get("/materi", response_model=ApiResponse[List[MateriGuruItem]])
async def list_materi(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await directory.materi_for_guru(db, guru.id))

@router.post("/materi", response_model=ApiResponse[CreatedRef])
async def create_materi(materi_in: MateriCreate, db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    kelas_ids = await _valid_kelas_ids(db, materi_in.kelas_ids)

    materi = Materi(
        judul=materi_in.judul,
        deskripsi=(materi_in.deskripsi or "").strip(),
        konten=materi_in.konten,
        guru_id=guru.id,
    )
    db.add(materi)
    await db.flush()
    db.add_all([MateriKelas(materi_id=materi.id, kelas_id=kelas_id) for kelas_id in kelas_ids])
    await db.commit()
    logger.info(f"Guru {guru.id} created materi {materi.id} for kelas {kelas_ids}")
    return ok(CreatedRef(id=materi.id, judul=materi.judul), "Materi berhasil dibuat")

@router.put("/materi/{materi_id}", response_model=ApiResponse[None])
async def update_materi(
    materi_id: int,
    materi_in: MateriUpdate,
    db: AsyncSession = Depends(get_db),
    guru: User = Depends(require_guru),
):
    materi = await queries.get_owned_materi(db, materi_id, guru.id)
    kelas_ids = await _valid_kelas_ids(db, materi_in.kelas_ids) if materi_in.kelas_ids is not None else None

    materi.judul = materi_in.judul
    materi.deskripsi = (materi_in.deskripsi or "").strip()
    materi.konten = materi_in.konten

    if kelas_ids is not None:
        await db.execute(delete(MateriKelas).where(MateriKelas.materi_id == materi.id))
        db.add_all([MateriKelas(materi_id=materi.id, kelas_id=kelas_id) for kelas_id in kelas_ids])

    await db.commit()
    return ok(message="Materi berhasil diupdate")

@router.delete("/materi/{materi_id}", response_model=ApiResponse[None])
async def delete_materi(materi_id: int, db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    result = await db.execute(delete(Materi).where(Materi.id == materi_id, Materi.guru_id == guru.id))
    if result.rowcount == 0:
        raise NotFoundError("Materi tidak ditemukan")
    await db.commit()
    logger.info(f"Guru {guru.id} deleted materi {materi_id}")
    return ok(message="Materi berhasil dihapus")

@router.get("/materi/{materi_id}/kelas", response_model=ApiResponse[MateriKelasOut])
async def materi_kelas(materi_id: int, db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    materi = await queries.get_owned_materi(db, materi_id, guru.id)
    kelas = (await queries.kelas_by_materi(db, [materi.id])).get(materi.id, [])
    users = await queries.users_by_id(db, (k.wali_kelas_id for k in kelas))
    return ok(MateriKelasOut(
        materi=MateriRef.model_validate(materi),
        assigned_kelas=[kelas_ref(k, users) for k in kelas],
    ))

@router.get("/kelas/available", response_model=ApiResponse[List[PublicKelas]])
async def kelas_available(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    kelas = await queries.kelas_for_guru(db, guru.id)
    return ok([PublicKelas.model_validate(k) for k in kelas])

# --- Tugas -------------------------------------------------------------------

@router.get("/tugas", response_model=ApiResponse[List[TugasGuruItem]])
async def list_tugas(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await directory.tugas_for_guru(db, guru.id))

@router.post("/tugas", response_model=ApiResponse[CreatedRef])
async def create_tugas(tugas_in: TugasCreate, db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    materi = await queries.get_owned_materi(db, tugas_in.materi_id, guru.id)
    tugas = Tugas(
        judul=tugas_in.judul,
        deskripsi=(tugas_in.deskripsi or "").strip(),
        materi_id=materi.id,
        guru_id=guru.id,
        deadline=tugas_in.deadline,
    )
    db.add(tugas)
    await db.commit()
    await db.refresh(tugas)
    logger.info(f"Guru {guru.id} created tugas {tugas.id} on materi {materi.id}")
    return ok(CreatedRef(id=tugas.id, judul=tugas.judul), "Tugas berhasil dibuat")

@router.put("/tugas/{tugas_id}", response_model=ApiResponse[None])
async def update_tugas(
    tugas_id: int,
    tugas_in: TugasUpdate,
    db: AsyncSession = Depends(get_db),
    guru: User = Depends(require_guru),
):
    tugas = await queries.get_owned_tugas(db, tugas_id, guru.id)
    changes = tugas_in.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("Tidak ada data yang diupdate")

    if "judul" in changes:
        judul = (changes["judul"] or "").strip()
        if not judul:
            raise ValidationError("Judul tugas tidak boleh kosong")
        tugas.judul = judul
    if "deskripsi" in changes:
        tugas.deskripsi = (changes["deskripsi"] or "").strip()
    if "deadline" in changes:
        if changes["deadline"] is None:
            raise ValidationError("Deadline tidak valid")
        tugas.deadline = changes["deadline"]

    await db.commit()
    return ok(message="Tugas berhasil diupdate")

@router.delete("/tugas/{tugas_id}", response_model=ApiResponse[None])
async def delete_tugas(tugas_id: int, db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    result = await db.execute(delete(Tugas).where(Tugas.id == tugas_id, Tugas.guru_id == guru.id))
    if result.rowcount == 0:
        raise NotFoundError("Tugas tidak ditemukan")
    await db.commit()
    logger.info(f"Guru {guru.id} deleted tugas {tugas_id}")
    return ok(message="Tugas berhasil dihapus")

@router.get("/tugas/{tugas_id}/submissions", response_model=ApiResponse[TugasSubmissions])
async def submissions_for_tugas(tugas_id: int, db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.tugas_submissions(db, guru.id, tugas_id))

# --- Grading -----------------------------------------------------------------

@router.get("/submissions/pending", response_model=ApiResponse[List[QueuedSubmission]])
async def submissions_pending(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.pending_submissions(db, guru.id))

@router.get("/submissions/graded", response_model=ApiResponse[List[QueuedSubmission]])
async def submissions_graded(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.graded_submissions(db, guru.id))

@router.post("/submissions/{submission_id}/grade", response_model=ApiResponse[None])
async def grade(
    submission_id: int,
    grade_in: GradeRequest,
    db: AsyncSession = Depends(get_db),
    guru: User = Depends(require_guru),
):
    await grade_submission(db, submission_id, guru.id, grade_in.nilai, grade_in.feedback)
    await db.commit()
    return ok(message="Nilai berhasil disimpan")

# --- Siswa progress ----------------------------------------------------------

@router.get("/siswa/progress", response_model=ApiResponse[List[GuruSiswaProgress]])
async def siswa_progress(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.guru_siswa_progress(db, guru.id))

@router.get("/siswa/{siswa_id}/progress", response_model=ApiResponse[GuruSiswaDetail])
async def siswa_detail(siswa_id: int, db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    return ok(await analytics.guru_siswa_detail(db, guru.id, siswa_id))

# --- Diskusi -----------------------------------------------------------------

@router.get("/diskusi", response_model=ApiResponse[List[DiskusiMateriItem]])
async def diskusi(db: AsyncSession = Depends(get_db), guru: User = Depends(require_guru)):
    materi = await queries.materi_of_guru(db, guru.id)
    return ok(await materi_feed(db, [m.id for m in materi], with_kelas=True))

@router.post("/diskusi/{diskusi_id}/reply", response_model=ApiResponse[CreatedRef])
async def reply_diskusi(
    diskusi_id: int,
    reply_in: ReplyRequest,
    db: AsyncSession = Depends(get_db),
    guru: User = Depends(require_guru),
):
    post = await db.get(DiskusiMateri, diskusi_id)
    if not post:
        raise NotFoundError("Diskusi tidak ditemukan")
    await queries.get_owned_materi(db, post.materi_id, guru.id)

    # Replies hang off the top-level post
    reply = DiskusiMateri(
        materi_id=post.materi_id,
        user_id=guru.id,
        user_role=Role.GURU.value,
        isi=reply_in.reply,
        parent_id=post.parent_id or post.id,
    )
    db.add(reply)
    await db.commit()
    await db.refresh(reply)
    return ok(CreatedRef(id=reply.id), "Balasan berhasil dikirim")
