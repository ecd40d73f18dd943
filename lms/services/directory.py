"""List views for the kepsek and guru screens, one batched read per relation."""
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.models.kelas import Kelas
from lms.models.materi import Materi
from lms.models.user import User, Role
from lms.schemas.kelas_schema import GuruBrief, GuruListItem, KelasListItem, KelasRoster, SiswaListItem
from lms.schemas.materi_schema import MateriGuruItem, MateriKepsekItem
from lms.schemas.tugas_schema import TugasGuruItem
from lms.services import queries
from lms.services.analytics import kelas_ref, person_ref, pengajar_ref, tugas_counts
from lms.services.progress import PLACEHOLDER, label, unique_by_id

NO_KELAS = "Belum ada kelas"


def _names_or_default(kelas_list) -> str:
    return queries.kelas_names(kelas_list) or NO_KELAS


async def _users_with_role(db: AsyncSession, role: Role) -> List[User]:
    result = await db.execute(select(User).where(User.role == role.value).order_by(User.nama, User.id))
    return list(result.scalars().all())


async def kelas_list(db: AsyncSession) -> List[KelasListItem]:
    kelas = list((await db.execute(select(Kelas).order_by(Kelas.tingkat, Kelas.nama, Kelas.id))).scalars().all())
    ids = [k.id for k in kelas]
    roster = await queries.siswa_by_kelas(db, ids)
    gurus = await queries.guru_by_kelas(db, ids)
    users = await queries.users_by_id(db, (k.wali_kelas_id for k in kelas))

    items = []
    for k in kelas:
        pengajar = gurus.get(k.id, [])
        wali = users.get(k.wali_kelas_id)
        items.append(KelasListItem(
            id=k.id,
            nama=k.nama,
            tingkat=k.tingkat,
            wali_kelas=label(wali.nama if wali else None),
            wali_kelas_id=k.wali_kelas_id,
            jumlah_siswa=len(roster.get(k.id, [])),
            jumlah_guru=len(unique_by_id(u for u, _ in pengajar)),
            guru_list=[GuruBrief(nama=u.nama, bidang=mapel or PLACEHOLDER) for u, mapel in pengajar],
            created_at=k.created_at,
        ))
    return items


async def guru_list(db: AsyncSession) -> List[GuruListItem]:
    gurus = await _users_with_role(db, Role.GURU)
    kelas = await queries.kelas_by_guru(db, (g.id for g in gurus))
    return [
        GuruListItem(
            id=g.id,
            nama=g.nama,
            email=g.email,
            bidang=label(g.bidang),
            kelas=_names_or_default(kelas.get(g.id, [])),
            status=g.status,
            last_login=g.last_login,
            login_count=g.login_count or 0,
        )
        for g in gurus
    ]


async def siswa_list(db: AsyncSession) -> List[SiswaListItem]:
    siswa = await _users_with_role(db, Role.SISWA)
    enrolled = await queries.kelas_ids_by_siswa(db, (s.id for s in siswa))
    kelas = await queries.kelas_by_id(db, (k for ids in enrolled.values() for k in ids))
    return [
        SiswaListItem(
            id=s.id,
            nama=s.nama,
            email=s.email,
            kelas=_names_or_default([kelas[k] for k in enrolled.get(s.id, []) if k in kelas]),
            status=s.status,
            last_login=s.last_login,
        )
        for s in siswa
    ]


async def kelas_roster(db: AsyncSession, kelas_id: int) -> KelasRoster:
    kelas = await queries.get_kelas_or_404(db, kelas_id)
    members = (await queries.siswa_by_kelas(db, [kelas_id])).get(kelas_id, [])
    gurus = (await queries.guru_by_kelas(db, [kelas_id])).get(kelas_id, [])
    users = await queries.users_by_id(db, [kelas.wali_kelas_id])
    return KelasRoster(
        kelas=kelas_ref(kelas, users),
        siswa=[person_ref(s) for s in members],
        guru=[pengajar_ref(u, mapel) for u, mapel in gurus],
    )


async def materi_for_kepsek(db: AsyncSession) -> List[MateriKepsekItem]:
    materi = list((await db.execute(
        select(Materi).order_by(Materi.created_at.desc(), Materi.id.desc())
    )).scalars().all())
    gurus = await queries.users_by_id(db, (m.guru_id for m in materi))
    kelas = await queries.kelas_by_materi(db, (m.id for m in materi))
    return [
        MateriKepsekItem(
            id=m.id,
            judul=m.judul,
            deskripsi=m.deskripsi,
            guru=label(gurus[m.guru_id].nama if m.guru_id in gurus else None),
            kelas=_names_or_default(kelas.get(m.id, [])),
            created_at=m.created_at,
        )
        for m in materi
    ]


async def materi_for_guru(db: AsyncSession, guru_id: int) -> List[MateriGuruItem]:
    materi = await queries.materi_of_guru(db, guru_id)
    kelas = await queries.kelas_by_materi(db, (m.id for m in materi))
    return [
        MateriGuruItem(
            id=m.id,
            judul=m.judul,
            deskripsi=m.deskripsi or "",
            kelas=_names_or_default(kelas.get(m.id, [])),
            kelas_ids=[k.id for k in kelas.get(m.id, [])],
            created_at=m.created_at,
            updated_at=m.updated_at,
        )
        for m in materi
    ]


async def tugas_for_guru(db: AsyncSession, guru_id: int) -> List[TugasGuruItem]:
    tugas = await queries.tugas_of_guru(db, guru_id)
    materi = await queries.materi_by_id(db, (t.materi_id for t in tugas))
    kelas = await queries.kelas_by_materi(db, materi.keys())
    counts = await tugas_counts(db, (t.id for t in tugas))

    items = []
    for t in sorted(tugas, key=lambda t: t.deadline, reverse=True):
        m = materi.get(t.materi_id)
        total, graded = counts.get(t.id, (0, 0))
        items.append(TugasGuruItem(
            id=t.id,
            judul=t.judul,
            deskripsi=t.deskripsi,
            materi_id=t.materi_id,
            materi_judul=label(m.judul if m else None),
            deadline=t.deadline,
            kelas=_names_or_default(kelas.get(t.materi_id, [])),
            submissions_count=total,
            graded_count=graded,
            created_at=t.created_at,
        ))
    return items
