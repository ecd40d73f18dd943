import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.database import get_db
from lms.errors import NotFoundError, ValidationError
from lms.models.diskusi import Diskusi
from lms.models.kelas import Kelas, SiswaKelas, GuruKelas
from lms.models.materi import Materi
from lms.models.user import User, Role, UserStatus
from lms.schemas.common import ApiResponse, CreatedRef, ok
from lms.schemas.diskusi_schema import DiskusiCreate, DiskusiItem, DiskusiMateriItem
from lms.schemas.kelas_schema import (
    GuruCreate, GuruKelasCreate, GuruListItem, GuruStatusUpdate, KelasCreate,
    KelasListItem, KelasRoster, KelasUpdate, SiswaKelasCreate, SiswaListItem,
)
from lms.schemas.materi_schema import MateriKepsekItem
from lms.schemas.stats_schema import (
    KelasDetail, LearningActivity, SchoolStatistics, SiswaKelasProgress, SiswaPerKelasGroup,
)
from lms.schemas.tugas_schema import SiswaTugasItem
from lms.security import get_password_hash, require_kepsek
from lms.services import analytics, directory, queries
from lms.services.diskusi_service import PREVIEW_LENGTH, kelas_feed, materi_feed

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_kepsek)])

async def _require_guru(db: AsyncSession, guru_id: int, message: str = "Guru tidak ditemukan") -> User:
    guru = await queries.get_user_with_role(db, guru_id, Role.GURU)
    if not guru:
        raise NotFoundError(message)
    return guru

async def _require_wali(db: AsyncSession, guru_id: int):
    if not await queries.get_user_with_role(db, guru_id, Role.GURU):
        raise ValidationError("Wali kelas harus seorang guru")

# --- Dashboard ---------------------------------------------------------------

@router.get("/info-dasar", response_model=ApiResponse[SchoolStatistics])
async def info_dasar(db: AsyncSession = Depends(get_db)):
    return ok(await analytics.school_statistics(db))

@router.get("/aktivitas-pembelajaran", response_model=ApiResponse[LearningActivity])
async def aktivitas_pembelajaran(db: AsyncSession = Depends(get_db)):
    return ok(await analytics.learning_activity_summary(db))

# --- Guru management ---------------------------------------------------------

@router.get("/guru/daftar", response_model=ApiResponse[List[GuruListItem]])
async def daftar_guru(db: AsyncSession = Depends(get_db)):
    return ok(await directory.guru_list(db))

@router.post("/guru/tambah", response_model=ApiResponse[CreatedRef])
async def tambah_guru(
    guru_in: GuruCreate,
    db: AsyncSession = Depends(get_db),
    kepsek: User = Depends(require_kepsek),
):
    email = str(guru_in.email).lower().strip()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.first() is not None:
        raise ValidationError("Email sudah terdaftar")

    guru = User(
        nama=guru_in.nama.strip(),
        email=email,
        password_hash=get_password_hash(guru_in.password),
        role=Role.GURU.value,
        status=UserStatus.ACTIVE.value,
        bidang=(guru_in.bidang or "").strip() or None,
        created_by=kepsek.id,
        login_count=0,
    )
    db.add(guru)
    await db.commit()
    await db.refresh(guru)
    logger.info(f"Kepsek {kepsek.id} created guru {guru.id}")
    return ok(CreatedRef(id=guru.id, nama=guru.nama), "Guru berhasil ditambahkan")

@router.patch("/guru/status/{guru_id}", response_model=ApiResponse[None])
async def ubah_status_guru(guru_id: int, status_in: GuruStatusUpdate, db: AsyncSession = Depends(get_db)):
    guru = await _require_guru(db, guru_id)
    guru.status = status_in.status
    await db.commit()
    return ok(message=f"Status guru berhasil diubah menjadi {status_in.status}")

@router.delete("/guru/hapus/{guru_id}", response_model=ApiResponse[None])
async def hapus_guru(guru_id: int, db: AsyncSession = Depends(get_db)):
    guru = await _require_guru(db, guru_id)
    wali_of = await db.execute(select(Kelas.nama).where(Kelas.wali_kelas_id == guru.id))
    kelas_names = list(wali_of.scalars().all())
    if kelas_names:
        raise ValidationError(f"Guru masih menjadi wali kelas {', '.join(kelas_names)}")

    await db.execute(delete(User).where(User.id == guru.id, User.role == Role.GURU.value))
    await db.commit()
    logger.info(f"Guru {guru_id} deleted")
    return ok(message="Guru berhasil dihapus")

# --- Kelas management --------------------------------------------------------

@router.get("/kelas/daftar", response_model=ApiResponse[List[KelasListItem]])
async def daftar_kelas(db: AsyncSession = Depends(get_db)):
    return ok(await directory.kelas_list(db))

@router.post("/kelas/tambah", response_model=ApiResponse[CreatedRef])
async def tambah_kelas(kelas_in: KelasCreate, db: AsyncSession = Depends(get_db)):
    await _require_wali(db, kelas_in.wali_kelas_id)
    kelas = Kelas(nama=kelas_in.nama, tingkat=kelas_in.tingkat, wali_kelas_id=kelas_in.wali_kelas_id)
    db.add(kelas)
    await db.commit()
    await db.refresh(kelas)
    return ok(CreatedRef(id=kelas.id, nama=kelas.nama), "Kelas berhasil ditambahkan")

@router.put("/kelas/{kelas_id}", response_model=ApiResponse[None])
async def update_kelas(kelas_id: int, kelas_in: KelasUpdate, db: AsyncSession = Depends(get_db)):
    kelas = await queries.get_kelas_or_404(db, kelas_id)
    changes = kelas_in.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError("Tidak ada data yang diupdate")
    if "wali_kelas_id" in changes:
        await _require_wali(db, changes["wali_kelas_id"])

    for field, value in changes.items():
        setattr(kelas, field, value)
    await db.commit()
    return ok(message="Kelas berhasil diupdate")

@router.delete("/kelas/{kelas_id}", response_model=ApiResponse[None])
async def hapus_kelas(kelas_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(delete(Kelas).where(Kelas.id == kelas_id))
    if result.rowcount == 0:
        raise NotFoundError("Kelas tidak ditemukan")
    await db.commit()
    logger.info(f"Kelas {kelas_id} deleted")
    return ok(message="Kelas berhasil dihapus")

@router.get("/kelas/{kelas_id}/detail", response_model=ApiResponse[KelasDetail])
async def detail_kelas(kelas_id: int, db: AsyncSession = Depends(get_db)):
    return ok(await analytics.kelas_detail(db, kelas_id))

@router.post("/kelas/{kelas_id}/guru/tambah", response_model=ApiResponse[None])
async def tambah_guru_kelas(kelas_id: int, assign_in: GuruKelasCreate, db: AsyncSession = Depends(get_db)):
    await queries.get_kelas_or_404(db, kelas_id)
    await _require_guru(db, assign_in.guru_id)
    mapel = assign_in.mata_pelajaran.strip()
    if not mapel:
        raise ValidationError("Mata pelajaran harus diisi")

    # Assigning the same guru and subject twice is a no-op
    existing = await db.execute(
        select(GuruKelas).where(
            GuruKelas.kelas_id == kelas_id,
            GuruKelas.guru_id == assign_in.guru_id,
            GuruKelas.mata_pelajaran == mapel,
        )
    )
    if existing.scalar_one_or_none() is None:
        db.add(GuruKelas(guru_id=assign_in.guru_id, kelas_id=kelas_id, mata_pelajaran=mapel))
        await db.commit()
    return ok(message="Guru berhasil ditambahkan ke kelas")

@router.delete("/kelas/{kelas_id}/guru/{guru_id}", response_model=ApiResponse[None])
async def hapus_guru_kelas(
    kelas_id: int,
    guru_id: int,
    mata_pelajaran: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    stmt = delete(GuruKelas).where(GuruKelas.kelas_id == kelas_id, GuruKelas.guru_id == guru_id)
    if mata_pelajaran:
        stmt = stmt.where(GuruKelas.mata_pelajaran == mata_pelajaran)
    result = await db.execute(stmt)
    if result.rowcount == 0:
        raise NotFoundError("Guru tidak mengajar di kelas ini")
    await db.commit()
    return ok(message="Guru berhasil dihapus dari kelas")

@router.get("/kelas/{kelas_id}/siswa", response_model=ApiResponse[KelasRoster])
async def siswa_kelas(kelas_id: int, db: AsyncSession = Depends(get_db)):
    return ok(await directory.kelas_roster(db, kelas_id))

@router.post("/kelas/{kelas_id}/siswa/tambah", response_model=ApiResponse[None])
async def tambah_siswa_kelas(kelas_id: int, enroll_in: SiswaKelasCreate, db: AsyncSession = Depends(get_db)):
    await queries.get_kelas_or_404(db, kelas_id)
    if not await queries.get_user_with_role(db, enroll_in.siswa_id, Role.SISWA):
        raise NotFoundError("Siswa tidak ditemukan")

    existing = await db.execute(
        select(SiswaKelas.id).where(SiswaKelas.kelas_id == kelas_id, SiswaKelas.siswa_id == enroll_in.siswa_id)
    )
    if existing.first() is not None:
        raise ValidationError("Siswa sudah terdaftar di kelas ini")

    db.add(SiswaKelas(siswa_id=enroll_in.siswa_id, kelas_id=kelas_id))
    await db.commit()
    return ok(message="Siswa berhasil ditambahkan ke kelas")

@router.delete("/kelas/{kelas_id}/siswa/{siswa_id}", response_model=ApiResponse[None])
async def hapus_siswa_kelas(kelas_id: int, siswa_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        delete(SiswaKelas).where(SiswaKelas.kelas_id == kelas_id, SiswaKelas.siswa_id == siswa_id)
    )
    if result.rowcount == 0:
        raise NotFoundError("Siswa tidak terdaftar di kelas ini")
    await db.commit()
    return ok(message="Siswa berhasil dihapus dari kelas")

# --- Siswa monitoring --------------------------------------------------------

@router.get("/siswa/per-kelas", response_model=ApiResponse[List[SiswaPerKelasGroup]])
async def siswa_per_kelas(db: AsyncSession = Depends(get_db)):
    return ok(await analytics.siswa_per_kelas(db))

@router.get("/siswa/daftar", response_model=ApiResponse[List[SiswaListItem]])
async def daftar_siswa(db: AsyncSession = Depends(get_db)):
    return ok(await directory.siswa_list(db))

@router.get("/siswa/tugas/{siswa_id}", response_model=ApiResponse[List[SiswaTugasItem]])
async def tugas_siswa(siswa_id: int, db: AsyncSession = Depends(get_db)):
    return ok(await analytics.kepsek_siswa_tugas(db, siswa_id))

@router.get("/siswa/{siswa_id}/progress/{kelas_id}", response_model=ApiResponse[SiswaKelasProgress])
async def progress_siswa(siswa_id: int, kelas_id: int, db: AsyncSession = Depends(get_db)):
    return ok(await analytics.siswa_progress_in_kelas(db, siswa_id, kelas_id))

# --- Materi & diskusi --------------------------------------------------------

@router.get("/materi/daftar", response_model=ApiResponse[List[MateriKepsekItem]])
async def daftar_materi(db: AsyncSession = Depends(get_db)):
    return ok(await directory.materi_for_kepsek(db))

@router.get("/kelas/diskusi-materi/{materi_id}", response_model=ApiResponse[List[DiskusiMateriItem]])
async def diskusi_materi(materi_id: int, db: AsyncSession = Depends(get_db)):
    if not await db.get(Materi, materi_id):
        raise NotFoundError("Materi tidak ditemukan")
    return ok(await materi_feed(db, [materi_id], with_kelas=True))

@router.get("/kelas/diskusi", response_model=ApiResponse[List[DiskusiItem]])
async def daftar_diskusi(db: AsyncSession = Depends(get_db)):
    return ok(await kelas_feed(db, preview=PREVIEW_LENGTH))

@router.post("/kelas/diskusi", response_model=ApiResponse[CreatedRef])
async def tambah_diskusi(
    diskusi_in: DiskusiCreate,
    db: AsyncSession = Depends(get_db),
    kepsek: User = Depends(require_kepsek),
):
    await queries.get_kelas_or_404(db, diskusi_in.kelas_id)
    diskusi = Diskusi(kelas_id=diskusi_in.kelas_id, user_id=kepsek.id, user_role=Role.KEPSEK.value, isi=diskusi_in.isi)
    db.add(diskusi)
    await db.commit()
    await db.refresh(diskusi)
    return ok(CreatedRef(id=diskusi.id), "Diskusi berhasil ditambahkan")
