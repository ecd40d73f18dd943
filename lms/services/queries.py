"""
Batched relational lookups.

Every helper takes a collection of ids and issues one ``IN (...)`` query per
relation, returning dictionaries keyed by id so callers can join in memory
without issuing per-row queries.
"""
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.errors import AuthorizationError, NotFoundError
from lms.models.kelas import Kelas, SiswaKelas, GuruKelas
from lms.models.materi import Materi, MateriKelas, SiswaMateri
from lms.models.tugas import Tugas, SiswaTugas
from lms.models.user import User, Role, UserStatus
from lms.services.progress import unique_by_id
from lms.utils.time_utils import get_jakarta_time


def _ids(values: Iterable[int]) -> List[int]:
    return list(dict.fromkeys(v for v in values if v is not None))


def kelas_names(kelas_list: Sequence[Kelas]) -> str:
    return ", ".join(k.nama for k in kelas_list)


# --- Users -----------------------------------------------------------------

async def users_by_id(db: AsyncSession, user_ids: Iterable[int]) -> Dict[int, User]:
    ids = _ids(user_ids)
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


async def get_user_with_role(db: AsyncSession, user_id: int, role: Role) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id, User.role == role.value))
    return result.scalar_one_or_none()


async def touch_activity(db: AsyncSession, user_id: int) -> None:
    await db.execute(update(User).where(User.id == user_id).values(last_activity=get_jakarta_time()))


# --- Kelas -----------------------------------------------------------------

async def kelas_by_id(db: AsyncSession, kelas_ids: Iterable[int]) -> Dict[int, Kelas]:
    ids = _ids(kelas_ids)
    if not ids:
        return {}
    result = await db.execute(select(Kelas).where(Kelas.id.in_(ids)))
    return {k.id: k for k in result.scalars().all()}


async def get_kelas_or_404(db: AsyncSession, kelas_id: int) -> Kelas:
    kelas = await db.get(Kelas, kelas_id)
    if not kelas:
        raise NotFoundError("Kelas tidak ditemukan")
    return kelas


async def kelas_for_siswa(db: AsyncSession, siswa_id: int) -> List[Kelas]:
    result = await db.execute(
        select(Kelas)
        .join(SiswaKelas, SiswaKelas.kelas_id == Kelas.id)
        .where(SiswaKelas.siswa_id == siswa_id)
        .order_by(Kelas.id)
    )
    return list(result.scalars().all())


async def kelas_ids_by_siswa(db: AsyncSession, siswa_ids: Iterable[int]) -> Dict[int, List[int]]:
    ids = _ids(siswa_ids)
    mapping: Dict[int, List[int]] = defaultdict(list)
    if not ids:
        return mapping
    result = await db.execute(
        select(SiswaKelas.siswa_id, SiswaKelas.kelas_id)
        .where(SiswaKelas.siswa_id.in_(ids))
        .order_by(SiswaKelas.kelas_id)
    )
    for siswa_id, kelas_id in result.all():
        mapping[siswa_id].append(kelas_id)
    return mapping


async def kelas_for_guru(db: AsyncSession, guru_id: int) -> List[Kelas]:
    """Classes the guru teaches in, one entry per class even with several subjects."""
    result = await db.execute(
        select(Kelas)
        .join(GuruKelas, GuruKelas.kelas_id == Kelas.id)
        .where(GuruKelas.guru_id == guru_id)
        .order_by(Kelas.nama, Kelas.id)
    )
    return unique_by_id(result.scalars().all())


async def kelas_by_guru(db: AsyncSession, guru_ids: Iterable[int]) -> Dict[int, List[Kelas]]:
    ids = _ids(guru_ids)
    mapping: Dict[int, List[Kelas]] = defaultdict(list)
    if not ids:
        return mapping
    result = await db.execute(
        select(GuruKelas.guru_id, Kelas)
        .join(Kelas, Kelas.id == GuruKelas.kelas_id)
        .where(GuruKelas.guru_id.in_(ids))
        .order_by(Kelas.nama, Kelas.id)
    )
    for guru_id, kelas in result.all():
        if all(k.id != kelas.id for k in mapping[guru_id]):
            mapping[guru_id].append(kelas)
    return mapping


async def siswa_by_kelas(
    db: AsyncSession, kelas_ids: Iterable[int], active_only: bool = False
) -> Dict[int, List[User]]:
    ids = _ids(kelas_ids)
    mapping: Dict[int, List[User]] = defaultdict(list)
    if not ids:
        return mapping
    stmt = (
        select(SiswaKelas.kelas_id, User)
        .join(User, User.id == SiswaKelas.siswa_id)
        .where(SiswaKelas.kelas_id.in_(ids), User.role == Role.SISWA.value)
        .order_by(User.nama, User.id)
    )
    if active_only:
        stmt = stmt.where(User.status == UserStatus.ACTIVE.value)
    result = await db.execute(stmt)
    for kelas_id, user in result.all():
        mapping[kelas_id].append(user)
    return mapping


async def guru_by_kelas(db: AsyncSession, kelas_ids: Iterable[int]) -> Dict[int, List[Tuple[User, str]]]:
    """Teachers per class paired with the subject they teach there."""
    ids = _ids(kelas_ids)
    mapping: Dict[int, List[Tuple[User, str]]] = defaultdict(list)
    if not ids:
        return mapping
    result = await db.execute(
        select(GuruKelas.kelas_id, GuruKelas.mata_pelajaran, User)
        .join(User, User.id == GuruKelas.guru_id)
        .where(GuruKelas.kelas_id.in_(ids), User.role == Role.GURU.value)
        .order_by(User.nama, GuruKelas.mata_pelajaran)
    )
    for kelas_id, mapel, user in result.all():
        mapping[kelas_id].append((user, mapel))
    return mapping


# --- Materi & tugas --------------------------------------------------------

async def materi_by_id(db: AsyncSession, materi_ids: Iterable[int]) -> Dict[int, Materi]:
    ids = _ids(materi_ids)
    if not ids:
        return {}
    result = await db.execute(select(Materi).where(Materi.id.in_(ids)))
    return {m.id: m for m in result.scalars().all()}


async def tugas_by_id(db: AsyncSession, tugas_ids: Iterable[int]) -> Dict[int, Tugas]:
    ids = _ids(tugas_ids)
    if not ids:
        return {}
    result = await db.execute(select(Tugas).where(Tugas.id.in_(ids)))
    return {t.id: t for t in result.scalars().all()}


async def materi_by_kelas(db: AsyncSession, kelas_ids: Iterable[int]) -> Dict[int, List[Materi]]:
    ids = _ids(kelas_ids)
    mapping: Dict[int, List[Materi]] = defaultdict(list)
    if not ids:
        return mapping
    result = await db.execute(
        select(MateriKelas.kelas_id, Materi)
        .join(Materi, Materi.id == MateriKelas.materi_id)
        .where(MateriKelas.kelas_id.in_(ids))
        .order_by(MateriKelas.kelas_id, Materi.id)
    )
    for kelas_id, materi in result.all():
        mapping[kelas_id].append(materi)
    return mapping


async def kelas_by_materi(db: AsyncSession, materi_ids: Iterable[int]) -> Dict[int, List[Kelas]]:
    ids = _ids(materi_ids)
    mapping: Dict[int, List[Kelas]] = defaultdict(list)
    if not ids:
        return mapping
    result = await db.execute(
        select(MateriKelas.materi_id, Kelas)
        .join(Kelas, Kelas.id == MateriKelas.kelas_id)
        .where(MateriKelas.materi_id.in_(ids))
        .order_by(Kelas.nama, Kelas.id)
    )
    for materi_id, kelas in result.all():
        mapping[materi_id].append(kelas)
    return mapping


async def tugas_for_materi(db: AsyncSession, materi_ids: Iterable[int]) -> List[Tugas]:
    ids = _ids(materi_ids)
    if not ids:
        return []
    result = await db.execute(
        select(Tugas).where(Tugas.materi_id.in_(ids)).order_by(Tugas.deadline, Tugas.id)
    )
    return list(result.scalars().all())


async def tugas_of_guru(db: AsyncSession, guru_id: int) -> List[Tugas]:
    result = await db.execute(
        select(Tugas).where(Tugas.guru_id == guru_id).order_by(Tugas.deadline, Tugas.id)
    )
    return list(result.scalars().all())


async def materi_of_guru(db: AsyncSession, guru_id: int) -> List[Materi]:
    result = await db.execute(
        select(Materi).where(Materi.guru_id == guru_id).order_by(Materi.created_at.desc(), Materi.id.desc())
    )
    return list(result.scalars().all())


async def get_owned_materi(db: AsyncSession, materi_id: int, guru_id: int) -> Materi:
    """Ownership is part of the lookup: another guru's materi is reported as missing."""
    result = await db.execute(select(Materi).where(Materi.id == materi_id, Materi.guru_id == guru_id))
    materi = result.scalar_one_or_none()
    if not materi:
        raise NotFoundError("Materi tidak ditemukan")
    return materi


async def get_owned_tugas(db: AsyncSession, tugas_id: int, guru_id: int) -> Tugas:
    result = await db.execute(select(Tugas).where(Tugas.id == tugas_id, Tugas.guru_id == guru_id))
    tugas = result.scalar_one_or_none()
    if not tugas:
        raise NotFoundError("Tugas tidak ditemukan")
    return tugas


# --- Student access --------------------------------------------------------

class SiswaScope:
    """
    Everything a siswa can reach through their classes.

    ``materi`` and ``tugas`` are the de-duplicated unions over all enrolled
    classes; the ``*_by_kelas`` maps keep the per-class view for breakdowns.
    """

    def __init__(self, kelas, materi_by_kelas, tugas):
        self.kelas: List[Kelas] = kelas
        self.materi_by_kelas: Dict[int, List[Materi]] = materi_by_kelas
        self.materi: List[Materi] = unique_by_id(
            m for k in kelas for m in materi_by_kelas.get(k.id, [])
        )
        self.tugas: List[Tugas] = unique_by_id(tugas)

        tugas_by_materi: Dict[int, List[Tugas]] = defaultdict(list)
        for t in self.tugas:
            tugas_by_materi[t.materi_id].append(t)
        self.tugas_by_kelas: Dict[int, List[Tugas]] = {
            k.id: [t for m in materi_by_kelas.get(k.id, []) for t in tugas_by_materi.get(m.id, [])]
            for k in kelas
        }

    @property
    def materi_ids(self):
        return {m.id for m in self.materi}

    @property
    def tugas_ids(self):
        return {t.id for t in self.tugas}


async def siswa_scope(db: AsyncSession, siswa_id: int) -> SiswaScope:
    kelas = await kelas_for_siswa(db, siswa_id)
    per_kelas = await materi_by_kelas(db, [k.id for k in kelas])
    materi_ids = [m.id for items in per_kelas.values() for m in items]
    tugas = await tugas_for_materi(db, materi_ids)
    return SiswaScope(kelas, per_kelas, tugas)


async def siswa_has_materi_access(db: AsyncSession, siswa_id: int, materi_id: int) -> bool:
    result = await db.execute(
        select(MateriKelas.id)
        .join(SiswaKelas, SiswaKelas.kelas_id == MateriKelas.kelas_id)
        .where(MateriKelas.materi_id == materi_id, SiswaKelas.siswa_id == siswa_id)
        .limit(1)
    )
    return result.first() is not None


async def require_materi_access(db: AsyncSession, siswa_id: int, materi_id: int) -> Materi:
    """Missing materi is 404; materi outside the siswa's classes is 403."""
    materi = await db.get(Materi, materi_id)
    if not materi:
        raise NotFoundError("Materi tidak ditemukan")
    if not await siswa_has_materi_access(db, siswa_id, materi_id):
        raise AuthorizationError("Anda tidak memiliki akses ke materi ini")
    return materi


async def require_tugas_access(db: AsyncSession, siswa_id: int, tugas_id: int) -> Tugas:
    tugas = await db.get(Tugas, tugas_id)
    if not tugas:
        raise NotFoundError("Tugas tidak ditemukan")
    if not await siswa_has_materi_access(db, siswa_id, tugas.materi_id):
        raise AuthorizationError("Anda tidak memiliki akses ke tugas ini")
    return tugas


# --- Progress rows ---------------------------------------------------------

async def submissions_for(
    db: AsyncSession, siswa_ids: Iterable[int], tugas_ids: Optional[Iterable[int]] = None
) -> List[SiswaTugas]:
    sids = _ids(siswa_ids)
    if not sids:
        return []
    stmt = select(SiswaTugas).where(SiswaTugas.siswa_id.in_(sids))
    if tugas_ids is not None:
        tids = _ids(tugas_ids)
        if not tids:
            return []
        stmt = stmt.where(SiswaTugas.tugas_id.in_(tids))
    result = await db.execute(stmt.order_by(SiswaTugas.id))
    return list(result.scalars().all())


async def materi_progress_for(
    db: AsyncSession, siswa_ids: Iterable[int], materi_ids: Optional[Iterable[int]] = None
) -> List[SiswaMateri]:
    sids = _ids(siswa_ids)
    if not sids:
        return []
    stmt = select(SiswaMateri).where(SiswaMateri.siswa_id.in_(sids))
    if materi_ids is not None:
        mids = _ids(materi_ids)
        if not mids:
            return []
        stmt = stmt.where(SiswaMateri.materi_id.in_(mids))
    result = await db.execute(stmt)
    return list(result.scalars().all())
