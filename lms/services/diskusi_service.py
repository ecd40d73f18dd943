from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.models.diskusi import Diskusi, DiskusiMateri
from lms.schemas.diskusi_schema import DiskusiItem, DiskusiMateriItem
from lms.services import queries
from lms.services.progress import label

PREVIEW_LENGTH = 100


def _preview(isi: str, limit: Optional[int]) -> str:
    if limit and len(isi) > limit:
        return isi[:limit] + "..."
    return isi


async def kelas_feed(
    db: AsyncSession, kelas_ids: Optional[Iterable[int]] = None, preview: Optional[int] = None
) -> List[DiskusiItem]:
    """Class discussions, newest first; ``kelas_ids=None`` means every class."""
    stmt = select(Diskusi).order_by(Diskusi.created_at.desc(), Diskusi.id.desc())
    if kelas_ids is not None:
        ids = list(kelas_ids)
        if not ids:
            return []
        stmt = stmt.where(Diskusi.kelas_id.in_(ids))
    posts = list((await db.execute(stmt)).scalars().all())

    users = await queries.users_by_id(db, (p.user_id for p in posts))
    kelas = await queries.kelas_by_id(db, (p.kelas_id for p in posts))
    return [
        DiskusiItem(
            id=p.id,
            kelas_id=p.kelas_id,
            kelas=label(kelas[p.kelas_id].nama if p.kelas_id in kelas else None),
            isi=_preview(p.isi, preview),
            user_name=label(users[p.user_id].nama if p.user_id in users else None),
            user_role=p.user_role,
            created_at=p.created_at,
        )
        for p in posts
    ]


async def materi_feed(db: AsyncSession, materi_ids: Iterable[int], with_kelas: bool = False) -> List[DiskusiMateriItem]:
    ids = list(materi_ids)
    if not ids:
        return []
    posts = list((await db.execute(
        select(DiskusiMateri)
        .where(DiskusiMateri.materi_id.in_(ids))
        .order_by(DiskusiMateri.created_at.desc(), DiskusiMateri.id.desc())
    )).scalars().all())

    users = await queries.users_by_id(db, (p.user_id for p in posts))
    materi = await queries.materi_by_id(db, ids)
    kelas_map = await queries.kelas_by_materi(db, ids) if with_kelas else {}
    return [
        DiskusiMateriItem(
            id=p.id,
            materi_id=p.materi_id,
            materi_judul=label(materi[p.materi_id].judul if p.materi_id in materi else None),
            kelas=queries.kelas_names(kelas_map.get(p.materi_id, [])) if with_kelas else None,
            user_id=p.user_id,
            user_name=label(users[p.user_id].nama if p.user_id in users else None),
            user_role=p.user_role,
            isi=p.isi,
            parent_id=p.parent_id,
            created_at=p.created_at,
        )
        for p in posts
    ]
