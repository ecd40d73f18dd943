import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lms.database import get_db
from lms.errors import ValidationError
from lms.models.diskusi import DiskusiMateri
from lms.models.user import User, Role
from lms.schemas.common import ApiResponse, CreatedRef, ok
from lms.schemas.diskusi_schema import DiskusiItem, DiskusiMateriCreate, DiskusiMateriItem
from lms.schemas.materi_schema import MateriDetail, MateriSiswaItem
from lms.schemas.stats_schema import SiswaDashboardStats, SiswaProgressDetail
from lms.schemas.tugas_schema import NilaiItem, SubmitRequest, TugasSiswaItem
from lms.security import require_siswa
from lms.services import analytics, queries
from lms.services.diskusi_service import kelas_feed, materi_feed
from lms.services.progress import label
from lms.services.submission_service import record_materi_access, upsert_submission

logger = logging.getLogger(__name__)

router = APIRouter()

RECENT_TUGAS = 3

async def current_siswa(db: AsyncSession = Depends(get_db), siswa: User = Depends(require_siswa)) -> User:
    """The logged-in siswa, with ``last_activity`` bumped for this request."""
    await queries.touch_activity(db, siswa.id)
    await db.commit()
    return siswa

@router.get("/dashboard-stats", response_model=ApiResponse[SiswaDashboardStats])
async def dashboard_stats(db: AsyncSession = Depends(get_db), siswa: User = Depends(current_siswa)):
    return ok(await analytics.siswa_dashboard_stats(db, siswa))

@router.get("/progress-detail", response_model=ApiResponse[SiswaProgressDetail])
async def progress_detail(db: AsyncSession = Depends(get_db), siswa: User = Depends(current_siswa)):
    return ok(await analytics.siswa_progress_detail(db, siswa))

# --- Materi ------------------------------------------------------------------

@router.get("/materi", response_model=ApiResponse[List[MateriSiswaItem]])
async def list_materi(db: AsyncSession = Depends(get_db), siswa: User = Depends(current_siswa)):
    return ok(await analytics.siswa_materi_list(db, siswa.id))

@router.get("/materi/{materi_id}", response_model=ApiResponse[MateriDetail])
async def materi_detail(materi_id: int, db: AsyncSession = Depends(get_db), siswa: User = Depends(current_siswa)):
    materi = await queries.require_materi_access(db, siswa.id, materi_id)
    await record_materi_access(db, siswa.id, materi.id)
    await db.commit()

    guru = (await queries.users_by_id(db, [materi.guru_id])).get(materi.guru_id)
    kelas = (await queries.kelas_by_materi(db, [materi.id])).get(materi.id, [])
    return ok(MateriDetail(
        id=materi.id,
        judul=materi.judul or "Judul tidak tersedia",
        deskripsi=materi.deskripsi or "Tidak ada deskripsi",
        konten=materi.konten or "Tidak ada konten yang tersedia",
        guru_nama=label(guru.nama if guru else None),
        kelas=queries.kelas_names(kelas),
        created_at=materi.created_at,
        updated_at=materi.updated_at,
    ))

@router.post("/materi/{materi_id}/complete", response_model=ApiResponse[None])
async def complete_materi(materi_id: int, db: AsyncSession = Depends(get_db), siswa: User = Depends(current_siswa)):
    await queries.require_materi_access(db, siswa.id, materi_id)
    await record_materi_access(db, siswa.id, materi_id, completed=True)
    await db.commit()
    return ok(message="Materi berhasil ditandai sebagai selesai")

# --- Tugas -------------------------------------------------------------------

@router.get("/tugas", response_model=ApiResponse[List[TugasSiswaItem]])
async def list_tugas(db: AsyncSession = Depends(get_db), siswa: User = Depends(current_siswa)):
    items = await analytics.siswa_tugas_with_status(db, siswa.id)
    return ok([t for t in items if analytics.is_active_tugas(t)])

@router.get("/tugas-recent", response_model=ApiResponse[List[TugasSiswaItem]])
async def recent_tugas(db: AsyncSession = Depends(get_db), siswa: User = Depends(current_siswa)):
    items = [t for t in await analytics.siswa_tugas_with_status(db, siswa.id) if analytics.is_active_tugas(t)]
    items.sort(key=lambda t: (t.created_at or datetime.min, t.id), reverse=True)
    return ok(items[:RECENT_TUGAS])

@router.post("/tugas/{tugas_id}/submit", response_model=ApiResponse[CreatedRef])
async def submit_tugas(
    tugas_id: int,
    submit_in: SubmitRequest,
    db: AsyncSession = Depends(get_db),
    siswa: User = Depends(current_siswa),
):
    tugas = await queries.require_tugas_access(db, siswa.id, tugas_id)
    submission_id = await upsert_submission(db, siswa.id, tugas.id, submit_in.jawaban)
    await record_materi_access(db, siswa.id, tugas.materi_id)
    await db.commit()
    logger.info(f"Siswa {siswa.id} submitted tugas {tugas.id}")
    return ok(CreatedRef(id=submission_id, judul=tugas.judul), "Tugas berhasil dikumpulkan")

@router.get("/nilai", response_model=ApiResponse[List[NilaiItem]])
async def nilai(db: AsyncSession = Depends(get_db), siswa: User = Depends(current_siswa)):
    return ok(await analytics.siswa_nilai(db, siswa.id))

# --- Diskusi -----------------------------------------------------------------

@router.get("/diskusi-kelas", response_model=ApiResponse[List[DiskusiItem]])
async def diskusi_kelas(db: AsyncSession = Depends(get_db), siswa: User = Depends(current_siswa)):
    kelas = await queries.kelas_for_siswa(db, siswa.id)
    return ok(await kelas_feed(db, [k.id for k in kelas]))

@router.get("/diskusi-materi", response_model=ApiResponse[List[DiskusiMateriItem]])
async def diskusi_materi(db: AsyncSession = Depends(get_db), siswa: User = Depends(current_siswa)):
    scope = await queries.siswa_scope(db, siswa.id)
    return ok(await materi_feed(db, [m.id for m in scope.materi]))

@router.post("/diskusi-materi", response_model=ApiResponse[CreatedRef])
async def tambah_diskusi_materi(
    diskusi_in: DiskusiMateriCreate,
    db: AsyncSession = Depends(get_db),
    siswa: User = Depends(current_siswa),
):
    await queries.require_materi_access(db, siswa.id, diskusi_in.materi_id)

    if diskusi_in.parent_id is not None:
        parent = await db.get(DiskusiMateri, diskusi_in.parent_id)
        if not parent or parent.materi_id != diskusi_in.materi_id or parent.parent_id is not None:
            raise ValidationError("Diskusi yang dibalas tidak valid")

    post = DiskusiMateri(
        materi_id=diskusi_in.materi_id,
        user_id=siswa.id,
        user_role=Role.SISWA.value,
        isi=diskusi_in.isi,
        parent_id=diskusi_in.parent_id,
    )
    db.add(post)
    await db.commit()
    await db.refresh(post)
    return ok(CreatedRef(id=post.id), "Diskusi berhasil ditambahkan")
