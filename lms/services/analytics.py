"""
Aggregation engine.

Every statistic here is derived on read from the current relational state;
nothing is cached or persisted. The rules that apply everywhere:

* percentages and averages go through :mod:`lms.services.progress`
  (half-up rounding, empty input -> 0, percentages clamped to [0, 100]);
* a siswa's materi/tugas are the de-duplicated union over all of their
  classes, and completion only counts items inside that union;
* teacher-scoped numbers only look at that guru's tugas;
* inactive accounts never enter an average or a percentage, but still show
  up in rosters;
* a row whose foreign row has gone missing is labelled "Tidak diketahui"
  instead of failing the whole computation.

Lookups are batched through :mod:`lms.services.queries`.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.errors import NotFoundError
from lms.models.kelas import Kelas, GuruKelas
from lms.models.materi import Materi, SiswaMateri
from lms.models.tugas import Tugas, SiswaTugas, SubmissionStatus, DONE_STATUSES
from lms.models.user import User, Role, UserStatus
from lms.schemas.kelas_schema import KelasRef, PersonRef, GuruPengajar
from lms.schemas.materi_schema import MateriRef, MateriSiswaItem
from lms.schemas.stats_schema import (
    ActivityCounts, ActivityItem, GuruDashboardStats, GuruInfo, GuruKelasGroup,
    GuruKelasInfo, GuruKelasStatistik, GuruSiswaDetail, GuruSiswaProgress,
    GuruSiswaStatistik, KelasDetail, KelasProgress, KelasStatistik, LearningActivity,
    ProgressSummary, SchoolStatistics, SiswaDashboardStats, SiswaKelasProgress,
    SiswaPerKelasEntry, SiswaPerKelasGroup, SiswaPerKelasStatistik, SiswaProgressDetail,
    TugasProgressItem, UpcomingDeadline, WaliActivity, WaliAttendance, WaliGrades,
    WaliKelasStats,
)
from lms.schemas.tugas_schema import (
    NilaiItem, QueuedSubmission, SiswaTugasItem, SubmissionRow, TugasHeader,
    TugasRef, TugasSiswaItem, TugasSubmissions,
)
from lms.services import queries
from lms.services.progress import (
    PLACEHOLDER, average, label, overall_progress, percentage, unique_by_id,
)
from lms.utils.time_utils import get_jakarta_time

PREVIEW_LENGTH = 200
GOOD_GRADE = 80
GRADED_LIMIT = 10


def is_done(sub: SiswaTugas) -> bool:
    return sub.status in DONE_STATUSES


def is_graded(sub: SiswaTugas) -> bool:
    return sub.status == SubmissionStatus.SELESAI.value and sub.nilai is not None


def summarize(
    materi: Sequence[Materi],
    tugas: Sequence[Tugas],
    submissions: Iterable[SiswaTugas],
    materi_rows: Iterable[SiswaMateri],
) -> ProgressSummary:
    """One siswa's progress over the given materi and tugas."""
    materi_ids = {m.id for m in materi}
    tugas_ids = {t.id for t in tugas}
    subs = [s for s in submissions if s.tugas_id in tugas_ids]

    materi_selesai = len({r.materi_id for r in materi_rows if r.is_completed and r.materi_id in materi_ids})
    dikerjakan = sum(1 for s in subs if is_done(s))
    graded = [s for s in subs if is_graded(s)]

    progress_materi = percentage(materi_selesai, len(materi_ids))
    progress_tugas = percentage(dikerjakan, len(tugas_ids))
    return ProgressSummary(
        materi_selesai=materi_selesai,
        total_materi=len(materi_ids),
        tugas_dikerjakan=dikerjakan,
        tugas_selesai=len(graded),
        total_tugas=len(tugas_ids),
        rata_nilai=average(s.nilai for s in graded),
        progress_materi=progress_materi,
        progress_tugas=progress_tugas,
        overall_progress=overall_progress(progress_tugas, progress_materi),
    )


def _group(items, attr) -> Dict[int, list]:
    grouped = defaultdict(list)
    for item in items:
        grouped[getattr(item, attr)].append(item)
    return grouped


def kelas_ref(kelas: Kelas, users: Dict[int, User] = None) -> KelasRef:
    wali = users.get(kelas.wali_kelas_id) if users is not None else None
    return KelasRef(
        id=kelas.id,
        nama=kelas.nama,
        tingkat=kelas.tingkat,
        wali_kelas_id=kelas.wali_kelas_id,
        wali_kelas=wali.nama if wali else (PLACEHOLDER if users is not None else None),
    )


def person_ref(user: User) -> PersonRef:
    return PersonRef(
        id=user.id,
        nama=user.nama,
        email=user.email,
        status=user.status,
        last_login=user.last_login,
        last_activity=user.last_activity,
    )


def pengajar_ref(user: User, mapel: str) -> GuruPengajar:
    return GuruPengajar(
        id=user.id, nama=user.nama, email=user.email,
        bidang=user.bidang or PLACEHOLDER, mata_pelajaran=mapel or PLACEHOLDER,
    )


def _tugas_progress_item(tugas, sub, materi_map, kelas_map) -> TugasProgressItem:
    materi = materi_map.get(tugas.materi_id)
    return TugasProgressItem(
        id=tugas.id,
        judul=tugas.judul,
        deskripsi=tugas.deskripsi,
        materi=label(materi.judul if materi else None),
        kelas=queries.kelas_names(kelas_map.get(tugas.materi_id, [])),
        deadline=tugas.deadline,
        status=sub.status if sub else SubmissionStatus.BELUM_DIKERJAKAN.value,
        nilai=sub.nilai if sub else None,
        feedback=sub.feedback if sub else None,
        jawaban=sub.jawaban if sub else None,
        submitted_at=sub.submitted_at if sub else None,
        graded_at=sub.graded_at if sub else None,
    )


def _newest_first(items: List[ActivityItem], limit: int) -> List[ActivityItem]:
    return sorted(items, key=lambda a: a.created_at or datetime.min, reverse=True)[:limit]


# ---------------------------------------------------------------------------
# Siswa views
# ---------------------------------------------------------------------------

async def siswa_dashboard_stats(db: AsyncSession, siswa: User) -> SiswaDashboardStats:
    scope = await queries.siswa_scope(db, siswa.id)
    if not scope.kelas:
        return SiswaDashboardStats()

    subs = await queries.submissions_for(db, [siswa.id], scope.tugas_ids)
    rows = await queries.materi_progress_for(db, [siswa.id], scope.materi_ids)
    summary = summarize(scope.materi, scope.tugas, subs, rows)

    return SiswaDashboardStats(
        total_materi=summary.total_materi,
        materi_dipelajari=summary.materi_selesai,
        progress_materi=summary.progress_materi,
        total_tugas=summary.total_tugas,
        tugas_dikerjakan=summary.tugas_dikerjakan,
        tugas_selesai=summary.tugas_selesai,
        tugas_pending=summary.tugas_dikerjakan - summary.tugas_selesai,
        rata_nilai=summary.rata_nilai,
        overall_progress=summary.overall_progress,
        kelas=[f"{k.nama} (Tingkat {k.tingkat})" for k in scope.kelas],
    )


async def siswa_progress_detail(db: AsyncSession, siswa: User) -> SiswaProgressDetail:
    scope = await queries.siswa_scope(db, siswa.id)
    if not scope.kelas:
        return SiswaProgressDetail()

    subs = await queries.submissions_for(db, [siswa.id], scope.tugas_ids)
    rows = await queries.materi_progress_for(db, [siswa.id], scope.materi_ids)
    summary = summarize(scope.materi, scope.tugas, subs, rows)

    detail = []
    for kelas in scope.kelas:
        per_kelas = summarize(
            scope.materi_by_kelas.get(kelas.id, []), scope.tugas_by_kelas.get(kelas.id, []), subs, rows
        )
        detail.append(KelasProgress(
            id=kelas.id,
            nama=kelas.nama,
            total_materi=per_kelas.total_materi,
            materi_dipelajari=per_kelas.materi_selesai,
            total_tugas=per_kelas.total_tugas,
            tugas_dikerjakan=per_kelas.tugas_dikerjakan,
            progress_materi=per_kelas.progress_materi,
            progress_tugas=per_kelas.progress_tugas,
        ))

    return SiswaProgressDetail(
        total_materi=summary.total_materi,
        materi_dipelajari=summary.materi_selesai,
        total_tugas=summary.total_tugas,
        tugas_dikerjakan=summary.tugas_dikerjakan,
        rata_nilai=summary.rata_nilai,
        progress_materi=summary.progress_materi,
        progress_tugas=summary.progress_tugas,
        overall_progress=summary.overall_progress,
        detail_kelas=detail,
    )


async def siswa_materi_list(db: AsyncSession, siswa_id: int) -> List[MateriSiswaItem]:
    scope = await queries.siswa_scope(db, siswa_id)
    if not scope.materi:
        return []
    rows = {r.materi_id: r for r in await queries.materi_progress_for(db, [siswa_id], scope.materi_ids)}
    gurus = await queries.users_by_id(db, (m.guru_id for m in scope.materi))
    kelas_map = await queries.kelas_by_materi(db, scope.materi_ids)

    items = []
    for m in scope.materi:
        row = rows.get(m.id)
        guru = gurus.get(m.guru_id)
        konten = m.konten or "Tidak ada konten yang tersedia"
        preview = konten[:PREVIEW_LENGTH] + "..." if len(konten) > PREVIEW_LENGTH else konten
        items.append(MateriSiswaItem(
            id=m.id,
            judul=m.judul,
            deskripsi=m.deskripsi or "Tidak ada deskripsi",
            konten=konten,
            konten_preview=preview,
            guru_nama=label(guru.nama if guru else None),
            kelas=queries.kelas_names(kelas_map.get(m.id, [])),
            created_at=m.created_at,
            updated_at=m.updated_at,
            last_accessed=row.last_accessed if row else None,
            is_completed=bool(row and row.is_completed),
            progress=(100 if row.is_completed else 50) if row else 0,
        ))
    return items


async def siswa_tugas_with_status(db: AsyncSession, siswa_id: int) -> List[TugasSiswaItem]:
    scope = await queries.siswa_scope(db, siswa_id)
    if not scope.tugas:
        return []
    subs = {s.tugas_id: s for s in await queries.submissions_for(db, [siswa_id], scope.tugas_ids)}
    materi_map = {m.id: m for m in scope.materi}
    kelas_map = await queries.kelas_by_materi(db, materi_map.keys())

    items = []
    for t in scope.tugas:
        sub = subs.get(t.id)
        materi = materi_map.get(t.materi_id)
        items.append(TugasSiswaItem(
            id=t.id,
            judul=t.judul,
            deskripsi=t.deskripsi,
            materi_id=t.materi_id,
            materi_judul=label(materi.judul if materi else None),
            kelas=queries.kelas_names(kelas_map.get(t.materi_id, [])),
            deadline=t.deadline,
            created_at=t.created_at,
            status=sub.status if sub else SubmissionStatus.BELUM_DIKERJAKAN.value,
            nilai=sub.nilai if sub else None,
            feedback=sub.feedback if sub else None,
            jawaban=sub.jawaban if sub else None,
            submitted_at=sub.submitted_at if sub else None,
            graded_at=sub.graded_at if sub else None,
        ))
    return items


def is_active_tugas(item: TugasSiswaItem) -> bool:
    """Still open for the siswa: anything that has not been graded yet."""
    return item.status != SubmissionStatus.SELESAI.value or item.nilai is None


async def _nilai_details(db: AsyncSession, subs: List[SiswaTugas]):
    tugas_map = await queries.tugas_by_id(db, (s.tugas_id for s in subs))
    materi_ids = [t.materi_id for t in tugas_map.values()]
    materi_map = await queries.materi_by_id(db, materi_ids)
    kelas_map = await queries.kelas_by_materi(db, materi_ids)
    return tugas_map, materi_map, kelas_map


async def siswa_nilai(db: AsyncSession, siswa_id: int) -> List[NilaiItem]:
    subs = [s for s in await queries.submissions_for(db, [siswa_id]) if is_graded(s)]
    tugas_map, materi_map, kelas_map = await _nilai_details(db, subs)

    items = []
    for s in subs:
        tugas = tugas_map.get(s.tugas_id)
        materi = materi_map.get(tugas.materi_id) if tugas else None
        items.append(NilaiItem(
            id=s.id,
            tugas_id=s.tugas_id,
            tugas_judul=label(tugas.judul if tugas else None),
            materi_judul=label(materi.judul if materi else None),
            kelas=queries.kelas_names(kelas_map.get(tugas.materi_id, [])) if tugas else PLACEHOLDER,
            nilai=s.nilai,
            feedback=s.feedback,
            jawaban=s.jawaban,
            submitted_at=s.submitted_at,
            graded_at=s.graded_at,
        ))
    items.sort(key=lambda n: n.graded_at or datetime.min, reverse=True)
    return items


async def kepsek_siswa_tugas(db: AsyncSession, siswa_id: int) -> List[SiswaTugasItem]:
    siswa = await queries.get_user_with_role(db, siswa_id, Role.SISWA)
    if not siswa:
        raise NotFoundError("Siswa tidak ditemukan")
    subs = await queries.submissions_for(db, [siswa_id])
    tugas_map, materi_map, kelas_map = await _nilai_details(db, subs)

    items = []
    for s in subs:
        tugas = tugas_map.get(s.tugas_id)
        materi = materi_map.get(tugas.materi_id) if tugas else None
        items.append(SiswaTugasItem(
            id=s.id,
            tugas=label(tugas.judul if tugas else None),
            materi=label(materi.judul if materi else None),
            kelas=queries.kelas_names(kelas_map.get(tugas.materi_id, [])) if tugas else PLACEHOLDER,
            status=s.status,
            nilai=s.nilai,
            feedback=s.feedback,
            submitted_at=s.submitted_at,
            graded_at=s.graded_at,
        ))
    return items


# ---------------------------------------------------------------------------
# Per-class rollups (kepsek)
# ---------------------------------------------------------------------------

class KelasContent:
    """Materi and tugas linked to a set of classes, fetched in one pass."""

    def __init__(self, materi_by_kelas: Dict[int, List[Materi]], tugas: List[Tugas]):
        self.materi_by_kelas = materi_by_kelas
        tugas_by_materi = _group(tugas, "materi_id")
        self.tugas_by_kelas = {
            kelas_id: [t for m in items for t in tugas_by_materi.get(m.id, [])]
            for kelas_id, items in materi_by_kelas.items()
        }
        self.materi_ids = {m.id for items in materi_by_kelas.values() for m in items}
        self.tugas_ids = {t.id for t in tugas}

    def materi(self, kelas_id: int) -> List[Materi]:
        return self.materi_by_kelas.get(kelas_id, [])

    def tugas(self, kelas_id: int) -> List[Tugas]:
        return self.tugas_by_kelas.get(kelas_id, [])


async def kelas_content(db: AsyncSession, kelas_ids: Iterable[int]) -> KelasContent:
    materi_by_kelas = await queries.materi_by_kelas(db, kelas_ids)
    tugas = await queries.tugas_for_materi(db, (m.id for items in materi_by_kelas.values() for m in items))
    return KelasContent(materi_by_kelas, tugas)


async def kelas_progress(
    db: AsyncSession, content: KelasContent, siswa_by_kelas: Dict[int, List[User]]
) -> Dict[Tuple[int, int], ProgressSummary]:
    """Progress of every (kelas, siswa) pair, computed from two batched reads."""
    siswa_ids = {s.id for members in siswa_by_kelas.values() for s in members}
    subs = _group(await queries.submissions_for(db, siswa_ids, content.tugas_ids), "siswa_id")
    rows = _group(await queries.materi_progress_for(db, siswa_ids, content.materi_ids), "siswa_id")

    result = {}
    for kelas_id, members in siswa_by_kelas.items():
        for siswa in members:
            result[(kelas_id, siswa.id)] = summarize(
                content.materi(kelas_id), content.tugas(kelas_id),
                subs.get(siswa.id, []), rows.get(siswa.id, []),
            )
    return result


async def siswa_progress_in_kelas(db: AsyncSession, siswa_id: int, kelas_id: int) -> SiswaKelasProgress:
    siswa = await queries.get_user_with_role(db, siswa_id, Role.SISWA)
    kelas = await db.get(Kelas, kelas_id)
    enrolled = await queries.kelas_ids_by_siswa(db, [siswa_id])
    if not siswa or not kelas or kelas_id not in enrolled.get(siswa_id, []):
        raise NotFoundError("Data progress tidak ditemukan")

    content = await kelas_content(db, [kelas_id])
    progress = await kelas_progress(db, content, {kelas_id: [siswa]})
    tugas = content.tugas(kelas_id)
    subs = {s.tugas_id: s for s in await queries.submissions_for(db, [siswa_id], (t.id for t in tugas))}
    materi_map = {m.id: m for m in content.materi(kelas_id)}
    kelas_map = await queries.kelas_by_materi(db, materi_map.keys())
    users = await queries.users_by_id(db, [kelas.wali_kelas_id])

    return SiswaKelasProgress(
        siswa=person_ref(siswa),
        kelas=kelas_ref(kelas, users),
        progress=progress[(kelas_id, siswa_id)],
        detail_tugas=[_tugas_progress_item(t, subs.get(t.id), materi_map, kelas_map) for t in tugas],
    )


async def kelas_detail(db: AsyncSession, kelas_id: int) -> KelasDetail:
    kelas = await queries.get_kelas_or_404(db, kelas_id)
    roster = (await queries.siswa_by_kelas(db, [kelas_id])).get(kelas_id, [])
    gurus = (await queries.guru_by_kelas(db, [kelas_id])).get(kelas_id, [])
    content = await kelas_content(db, [kelas_id])
    users = await queries.users_by_id(db, [kelas.wali_kelas_id])

    active_ids = [s.id for s in roster if s.is_active]
    tugas = content.tugas(kelas_id)
    graded = [s for s in await queries.submissions_for(db, active_ids, (t.id for t in tugas)) if is_graded(s)]

    return KelasDetail(
        kelas=kelas_ref(kelas, users),
        siswa=[person_ref(s) for s in roster],
        guru=[pengajar_ref(u, mapel) for u, mapel in gurus],
        materi=[MateriRef.model_validate(m) for m in content.materi(kelas_id)],
        tugas=[TugasRef.model_validate(t) for t in tugas],
        statistik=KelasStatistik(
            total_siswa=len(roster),
            siswa_aktif=len(active_ids),
            total_materi=len(content.materi(kelas_id)),
            total_tugas=len(tugas),
            avg_nilai=average(s.nilai for s in graded),
        ),
    )


async def siswa_per_kelas(db: AsyncSession) -> List[SiswaPerKelasGroup]:
    result = await db.execute(select(Kelas).order_by(Kelas.nama, Kelas.id))
    kelas_list = list(result.scalars().all())
    if not kelas_list:
        return []
    kelas_ids = [k.id for k in kelas_list]

    roster = await queries.siswa_by_kelas(db, kelas_ids)
    gurus = await queries.guru_by_kelas(db, kelas_ids)
    users = await queries.users_by_id(db, (k.wali_kelas_id for k in kelas_list))
    content = await kelas_content(db, kelas_ids)
    progress = await kelas_progress(db, content, roster)

    groups = []
    for kelas in kelas_list:
        members = roster.get(kelas.id, [])
        entries = [
            SiswaPerKelasEntry(
                id=s.id,
                nama=s.nama,
                email=s.email,
                status=s.status,
                last_login=s.last_login,
                progress_summary=progress.get((kelas.id, s.id)),
            )
            for s in members
        ]
        active = [s for s in members if s.is_active]
        groups.append(SiswaPerKelasGroup(
            kelas=kelas_ref(kelas, users),
            guru_pengajar=[pengajar_ref(u, mapel) for u, mapel in gurus.get(kelas.id, [])],
            siswa_list=entries,
            statistik=SiswaPerKelasStatistik(
                total_siswa=len(members),
                siswa_aktif=len(active),
                avg_progress=average(progress[(kelas.id, s.id)].overall_progress for s in active),
            ),
        ))
    return groups


async def school_statistics(db: AsyncSession) -> SchoolStatistics:
    async def count_users(role: Role, active_only: bool = False) -> int:
        stmt = select(func.count()).select_from(User).where(User.role == role.value)
        if active_only:
            stmt = stmt.where(User.status == UserStatus.ACTIVE.value)
        return await db.scalar(stmt) or 0

    return SchoolStatistics(
        jumlah_guru=await count_users(Role.GURU),
        jumlah_siswa=await count_users(Role.SISWA),
        jumlah_kelas=await db.scalar(select(func.count()).select_from(Kelas)) or 0,
        jumlah_materi=await db.scalar(select(func.count()).select_from(Materi)) or 0,
        jumlah_tugas=await db.scalar(select(func.count()).select_from(Tugas)) or 0,
        guru_aktif=await count_users(Role.GURU, active_only=True),
        siswa_aktif=await count_users(Role.SISWA, active_only=True),
    )


async def learning_activity_summary(db: AsyncSession, limit: int = 15, per_kind: int = 5) -> LearningActivity:
    materi = (await db.execute(
        select(Materi).order_by(Materi.created_at.desc(), Materi.id.desc()).limit(per_kind)
    )).scalars().all()
    tugas = (await db.execute(
        select(Tugas).order_by(Tugas.created_at.desc(), Tugas.id.desc()).limit(per_kind)
    )).scalars().all()
    submitted = (await db.execute(
        select(SiswaTugas).where(SiswaTugas.submitted_at.is_not(None))
        .order_by(SiswaTugas.submitted_at.desc()).limit(per_kind)
    )).scalars().all()
    graded = (await db.execute(
        select(SiswaTugas).where(SiswaTugas.graded_at.is_not(None))
        .order_by(SiswaTugas.graded_at.desc()).limit(per_kind)
    )).scalars().all()

    tugas_map = await queries.tugas_by_id(db, [s.tugas_id for s in list(submitted) + list(graded)])
    tugas_map.update({t.id: t for t in tugas})
    materi_map = await queries.materi_by_id(db, [t.materi_id for t in tugas])
    users = await queries.users_by_id(
        db,
        [m.guru_id for m in materi]
        + [t.guru_id for t in tugas_map.values()]
        + [s.siswa_id for s in list(submitted) + list(graded)],
    )

    def name(user_id):
        user = users.get(user_id)
        return label(user.nama if user else None)

    def tugas_title(tugas_id):
        t = tugas_map.get(tugas_id)
        return label(t.judul if t else None)

    def grader(tugas_id):
        t = tugas_map.get(tugas_id)
        return name(t.guru_id if t else None)

    def materi_title(materi_id):
        m = materi_map.get(materi_id)
        return label(m.judul if m else None)

    activities = (
        [ActivityItem(type="materi", title=f'Materi "{m.judul}" dibuat',
                      description=f"oleh {name(m.guru_id)}", created_at=m.created_at) for m in materi]
        + [ActivityItem(type="tugas", title=f'Tugas "{t.judul}" dibuat',
                        description=f"untuk materi {materi_title(t.materi_id)} oleh {name(t.guru_id)}",
                        created_at=t.created_at) for t in tugas]
        + [ActivityItem(type="submission", title=f"{name(s.siswa_id)} mengumpulkan tugas",
                        description=f"Tugas: {tugas_title(s.tugas_id)}", created_at=s.submitted_at) for s in submitted]
        + [ActivityItem(type="grade", title=f"Nilai diberikan untuk {name(s.siswa_id)}",
                        description=f"Tugas: {tugas_title(s.tugas_id)}, Nilai: {s.nilai} oleh {grader(s.tugas_id)}",
                        created_at=s.graded_at) for s in graded]
    )

    since = get_jakarta_time() - timedelta(days=1)
    active_today = await db.scalar(
        select(func.count()).select_from(User).where(
            User.role == Role.SISWA.value,
            User.status == UserStatus.ACTIVE.value,
            User.last_activity >= since,
        )
    )

    return LearningActivity(
        recent_activities=_newest_first(activities, limit),
        active_students_today=active_today or 0,
        summary=ActivityCounts(
            materials_created=len(materi),
            assignments_created=len(tugas),
            submissions_received=len(submitted),
            grades_given=len(graded),
        ),
    )


# ---------------------------------------------------------------------------
# Guru views (always scoped to the guru's own tugas)
# ---------------------------------------------------------------------------

async def _guru_reach(db: AsyncSession, guru_id: int):
    """The guru's tugas plus, for each tugas, the classes that can see it."""
    tugas = await queries.tugas_of_guru(db, guru_id)
    materi = await queries.materi_of_guru(db, guru_id)
    kelas_map = await queries.kelas_by_materi(db, (m.id for m in materi))
    return materi, tugas, kelas_map


def _reachable(tugas: Sequence[Tugas], kelas_map: Dict[int, List[Kelas]], kelas_ids) -> List[Tugas]:
    kelas_ids = set(kelas_ids)
    return [t for t in tugas if any(k.id in kelas_ids for k in kelas_map.get(t.materi_id, []))]


async def guru_dashboard_stats(db: AsyncSession, guru: User) -> GuruDashboardStats:
    materi, tugas, kelas_map = await _guru_reach(db, guru.id)
    tugas_ids = [t.id for t in tugas]

    pending = await db.scalar(
        select(func.count()).select_from(SiswaTugas)
        .join(Tugas, Tugas.id == SiswaTugas.tugas_id)
        .where(
            Tugas.guru_id == guru.id,
            SiswaTugas.status == SubmissionStatus.DIKERJAKAN.value,
            SiswaTugas.nilai.is_(None),
        )
    )

    kelas_ids = {k.id for items in kelas_map.values() for k in items}
    students = unique_by_id(
        s for members in (await queries.siswa_by_kelas(db, kelas_ids, active_only=True)).values() for s in members
    )
    subs = await queries.submissions_for(db, [s.id for s in students], tugas_ids)

    mengajar = (await db.execute(
        select(Kelas, GuruKelas.mata_pelajaran)
        .join(GuruKelas, GuruKelas.kelas_id == Kelas.id)
        .where(GuruKelas.guru_id == guru.id)
        .order_by(Kelas.nama, GuruKelas.mata_pelajaran)
    )).all()
    wali = (await db.execute(
        select(Kelas).where(Kelas.wali_kelas_id == guru.id).order_by(Kelas.id)
    )).scalars().first()

    return GuruDashboardStats(
        total_materi=len(materi),
        total_tugas=len(tugas),
        tugas_pending=pending or 0,
        rata_nilai=average(s.nilai for s in subs if is_graded(s)),
        total_siswa=len(students),
        total_kelas=len({k.id for k, _ in mengajar}),
        guru_info=GuruInfo(
            nama=guru.nama,
            email=guru.email,
            bidang=guru.bidang or "",
            kelas_mengajar=", ".join(f"{k.nama} ({mapel})" for k, mapel in mengajar) or "Belum mengajar",
            is_wali_kelas=wali is not None,
            wali_kelas_nama=wali.nama if wali else None,
            last_login=guru.last_login,
            login_count=guru.login_count or 0,
        ),
    )


async def guru_kelas_info(db: AsyncSession, guru_id: int) -> List[GuruKelasInfo]:
    rows = (await db.execute(
        select(Kelas, GuruKelas.mata_pelajaran)
        .join(GuruKelas, GuruKelas.kelas_id == Kelas.id)
        .where(GuruKelas.guru_id == guru_id)
        .order_by(Kelas.nama, GuruKelas.mata_pelajaran)
    )).all()
    if not rows:
        return []

    kelas_ids = [k.id for k, _ in rows]
    roster = await queries.siswa_by_kelas(db, kelas_ids, active_only=True)
    materi, tugas, kelas_map = await _guru_reach(db, guru_id)

    info = []
    for kelas, mapel in rows:
        own_materi = [m for m in materi if any(k.id == kelas.id for k in kelas_map.get(m.id, []))]
        info.append(GuruKelasInfo(
            id=kelas.id,
            nama=kelas.nama,
            tingkat=kelas.tingkat,
            mata_pelajaran=mapel,
            jumlah_siswa=len(roster.get(kelas.id, [])),
            jumlah_materi=len(own_materi),
            jumlah_tugas=len(_reachable(tugas, kelas_map, [kelas.id])),
            is_wali_kelas=kelas.wali_kelas_id == guru_id,
        ))
    return info


def _guru_progress_row(siswa: User, kelas_label: str, tugas: List[Tugas], subs: List[SiswaTugas]):
    tugas_ids = {t.id for t in tugas}
    own = [s for s in subs if s.tugas_id in tugas_ids]
    graded = [s for s in own if is_graded(s)]
    dikerjakan = sum(1 for s in own if is_done(s))
    return GuruSiswaProgress(
        id=siswa.id,
        nama=siswa.nama,
        email=siswa.email,
        kelas=kelas_label,
        progress=percentage(dikerjakan, len(tugas_ids)),
        rata_nilai=average(s.nilai for s in graded),
        tugas_dikerjakan=dikerjakan,
        tugas_selesai=len(graded),
        total_tugas=len(tugas_ids),
        last_activity=siswa.last_activity,
    ), bool(graded)


async def guru_siswa_progress(db: AsyncSession, guru_id: int) -> List[GuruSiswaProgress]:
    """
    Active siswa who can see at least one of the guru's tugas.

    The denominator for each siswa is the guru's tugas reachable through
    that siswa's own classes.
    """
    materi, tugas, kelas_map = await _guru_reach(db, guru_id)
    if not materi or not tugas:
        return []

    kelas_lookup = {k.id: k for items in kelas_map.values() for k in items}
    roster = await queries.siswa_by_kelas(db, kelas_lookup.keys(), active_only=True)
    students = unique_by_id(s for kelas_id in sorted(roster) for s in roster[kelas_id])
    if not students:
        return []

    enrolled = await queries.kelas_ids_by_siswa(db, [s.id for s in students])
    subs = _group(await queries.submissions_for(db, [s.id for s in students], (t.id for t in tugas)), "siswa_id")

    result = []
    for siswa in sorted(students, key=lambda s: (s.nama, s.id)):
        shared = [kelas_lookup[k] for k in enrolled.get(siswa.id, []) if k in kelas_lookup]
        reachable = _reachable(tugas, kelas_map, (k.id for k in shared))
        row, _ = _guru_progress_row(siswa, queries.kelas_names(shared), reachable, subs.get(siswa.id, []))
        if row.total_tugas > 0:
            result.append(row)
    return result


async def guru_siswa_detail(db: AsyncSession, guru_id: int, siswa_id: int) -> GuruSiswaDetail:
    siswa = await queries.get_user_with_role(db, siswa_id, Role.SISWA)
    if not siswa or not siswa.is_active:
        raise NotFoundError("Siswa tidak ditemukan")

    materi, tugas, kelas_map = await _guru_reach(db, guru_id)
    enrolled = (await queries.kelas_ids_by_siswa(db, [siswa_id])).get(siswa_id, [])
    linked = {k.id for items in kelas_map.values() for k in items}
    if not linked.intersection(enrolled):
        # A siswa outside the guru's classes is reported like a missing one
        raise NotFoundError("Siswa tidak ditemukan")

    reachable = _reachable(tugas, kelas_map, enrolled)
    subs = {s.tugas_id: s for s in await queries.submissions_for(db, [siswa_id], (t.id for t in reachable))}
    materi_map = {m.id: m for m in materi}
    own = list(subs.values())
    graded = [s for s in own if is_graded(s)]
    dikerjakan = sum(1 for s in own if is_done(s))

    return GuruSiswaDetail(
        siswa=person_ref(siswa),
        statistik=GuruSiswaStatistik(
            total_tugas=len(reachable),
            tugas_dikerjakan=dikerjakan,
            tugas_dinilai=len(graded),
            progress=percentage(dikerjakan, len(reachable)),
            rata_rata_nilai=average(s.nilai for s in graded),
        ),
        detail_tugas=[_tugas_progress_item(t, subs.get(t.id), materi_map, kelas_map) for t in reachable],
    )


async def guru_siswa_by_kelas(db: AsyncSession, guru_id: int) -> List[GuruKelasGroup]:
    kelas_list = await queries.kelas_for_guru(db, guru_id)
    if not kelas_list:
        return []
    _, tugas, kelas_map = await _guru_reach(db, guru_id)
    roster = await queries.siswa_by_kelas(db, [k.id for k in kelas_list], active_only=True)
    siswa_ids = {s.id for members in roster.values() for s in members}
    subs = _group(await queries.submissions_for(db, siswa_ids, (t.id for t in tugas)), "siswa_id")
    users = await queries.users_by_id(db, (k.wali_kelas_id for k in kelas_list))

    groups = []
    for kelas in kelas_list:
        reachable = _reachable(tugas, kelas_map, [kelas.id])
        rows = [
            _guru_progress_row(s, kelas.nama, reachable, subs.get(s.id, []))
            for s in roster.get(kelas.id, [])
        ]
        groups.append(GuruKelasGroup(
            kelas=kelas_ref(kelas, users),
            siswa=[row for row, _ in rows],
            statistik=GuruKelasStatistik(
                total_siswa=len(rows),
                avg_progress=average(row.progress for row, _ in rows),
                avg_grade=average(row.rata_nilai for row, has_grade in rows if has_grade),
            ),
        ))
    return groups


async def wali_kelas_stats(db: AsyncSession, guru_id: int) -> WaliKelasStats:
    kelas = (await db.execute(
        select(Kelas).where(Kelas.wali_kelas_id == guru_id).order_by(Kelas.id)
    )).scalars().first()
    if not kelas:
        return WaliKelasStats(is_wali_kelas=False)

    now = get_jakarta_time()
    week_ago = now - timedelta(days=7)
    day_ago = now - timedelta(days=1)

    members = (await queries.siswa_by_kelas(db, [kelas.id], active_only=True)).get(kelas.id, [])
    member_ids = [s.id for s in members]
    tugas = await queries.tugas_of_guru(db, guru_id)
    subs = await queries.submissions_for(db, member_ids, (t.id for t in tugas))
    graded = [s for s in subs if is_graded(s)]
    content = await kelas_content(db, [kelas.id])
    rows = await queries.materi_progress_for(db, member_ids, (m.id for m in content.materi(kelas.id)))
    users = await queries.users_by_id(db, [kelas.wali_kelas_id])

    return WaliKelasStats(
        is_wali_kelas=True,
        kelas_info=kelas_ref(kelas, users),
        attendance=WaliAttendance(
            total_siswa=len(members),
            active_week=sum(1 for s in members if s.last_activity and s.last_activity >= week_ago),
            active_today=sum(1 for s in members if s.last_activity and s.last_activity >= day_ago),
        ),
        grades=WaliGrades(
            rata_nilai_kelas=average(s.nilai for s in graded),
            total_tugas_dinilai=len({s.tugas_id for s in graded}),
            siswa_nilai_baik=len({s.siswa_id for s in graded if s.nilai >= GOOD_GRADE}),
        ),
        activity=WaliActivity(
            submissions_week=sum(1 for s in subs if s.submitted_at and s.submitted_at >= week_ago),
            materials_accessed_week=sum(1 for r in rows if r.last_accessed and r.last_accessed >= week_ago),
        ),
    )


async def upcoming_deadlines(db: AsyncSession, guru_id: int, days: int = 7, limit: int = 5) -> List[UpcomingDeadline]:
    now = get_jakarta_time()
    result = await db.execute(
        select(Tugas)
        .where(Tugas.guru_id == guru_id, Tugas.deadline >= now, Tugas.deadline <= now + timedelta(days=days))
        .order_by(Tugas.deadline, Tugas.id)
    )
    tugas = list(result.scalars().all())
    if not tugas:
        return []

    kelas_map = await queries.kelas_by_materi(db, (t.materi_id for t in tugas))
    tugas = [t for t in tugas if kelas_map.get(t.materi_id)][:limit]
    if not tugas:
        return []
    materi_map = await queries.materi_by_id(db, (t.materi_id for t in tugas))
    subs = _group(
        (await db.execute(select(SiswaTugas).where(SiswaTugas.tugas_id.in_([t.id for t in tugas])))).scalars().all(),
        "tugas_id",
    )

    items = []
    for t in tugas:
        materi = materi_map.get(t.materi_id)
        own = subs.get(t.id, [])
        items.append(UpcomingDeadline(
            id=t.id,
            judul=t.judul,
            deadline=t.deadline,
            materi_judul=label(materi.judul if materi else None),
            kelas=queries.kelas_names(kelas_map.get(t.materi_id, [])),
            total_submissions=sum(1 for s in own if is_done(s)),
            pending_grading=sum(1 for s in own if s.status == SubmissionStatus.DIKERJAKAN.value and s.nilai is None),
        ))
    return items


async def guru_recent_activity(db: AsyncSession, guru_id: int, limit: int = 10, per_kind: int = 5) -> List[ActivityItem]:
    materi = (await db.execute(
        select(Materi).where(Materi.guru_id == guru_id)
        .order_by(Materi.created_at.desc(), Materi.id.desc()).limit(per_kind)
    )).scalars().all()
    tugas = (await db.execute(
        select(Tugas).where(Tugas.guru_id == guru_id)
        .order_by(Tugas.created_at.desc(), Tugas.id.desc()).limit(per_kind)
    )).scalars().all()
    graded = (await db.execute(
        select(SiswaTugas, Tugas.judul)
        .join(Tugas, Tugas.id == SiswaTugas.tugas_id)
        .where(Tugas.guru_id == guru_id, SiswaTugas.graded_at.is_not(None))
        .order_by(SiswaTugas.graded_at.desc()).limit(per_kind)
    )).all()
    users = await queries.users_by_id(db, (s.siswa_id for s, _ in graded))

    activities = (
        [ActivityItem(type="materi", title=f'Materi "{m.judul}" dibuat',
                      description=m.deskripsi or "Tidak ada deskripsi", created_at=m.created_at) for m in materi]
        + [ActivityItem(type="tugas", title=f'Tugas "{t.judul}" dibuat',
                        description=t.deskripsi or "Tidak ada deskripsi", created_at=t.created_at) for t in tugas]
        + [ActivityItem(type="nilai",
                        title=f"Nilai diberikan untuk {label(users[s.siswa_id].nama if s.siswa_id in users else None)}",
                        description=f"Tugas: {judul}, Nilai: {s.nilai}", created_at=s.graded_at)
           for s, judul in graded]
    )
    return _newest_first(activities, limit)


async def _queue(db: AsyncSession, guru_id: int, *conditions, order_by, limit: Optional[int]) -> List[QueuedSubmission]:
    stmt = (
        select(SiswaTugas, Tugas.judul, User.nama)
        .join(Tugas, Tugas.id == SiswaTugas.tugas_id)
        .join(User, User.id == SiswaTugas.siswa_id)
        .where(Tugas.guru_id == guru_id, *conditions)
        .order_by(*order_by)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = (await db.execute(stmt)).all()
    return [
        QueuedSubmission(
            id=s.id,
            siswa_id=s.siswa_id,
            siswa_nama=nama,
            tugas_id=s.tugas_id,
            tugas_judul=judul,
            jawaban=s.jawaban,
            nilai=s.nilai,
            feedback=s.feedback,
            submitted_at=s.submitted_at,
            graded_at=s.graded_at,
        )
        for s, judul, nama in rows
    ]


async def pending_submissions(db: AsyncSession, guru_id: int) -> List[QueuedSubmission]:
    """Submissions awaiting a grade, oldest first."""
    return await _queue(
        db, guru_id,
        SiswaTugas.status == SubmissionStatus.DIKERJAKAN.value,
        SiswaTugas.nilai.is_(None),
        order_by=(SiswaTugas.submitted_at.asc(), SiswaTugas.id.asc()),
        limit=None,
    )


async def graded_submissions(db: AsyncSession, guru_id: int, limit: int = GRADED_LIMIT) -> List[QueuedSubmission]:
    return await _queue(
        db, guru_id,
        SiswaTugas.status == SubmissionStatus.SELESAI.value,
        SiswaTugas.nilai.is_not(None),
        order_by=(SiswaTugas.graded_at.desc(), SiswaTugas.id.desc()),
        limit=limit,
    )


async def tugas_submissions(db: AsyncSession, guru_id: int, tugas_id: int) -> TugasSubmissions:
    tugas = await queries.get_owned_tugas(db, tugas_id, guru_id)
    kelas = (await queries.kelas_by_materi(db, [tugas.materi_id])).get(tugas.materi_id, [])
    roster = await queries.siswa_by_kelas(db, [k.id for k in kelas])
    students = unique_by_id(s for k in kelas for s in roster.get(k.id, []))
    subs = {s.siswa_id: s for s in await queries.submissions_for(db, [s.id for s in students], [tugas.id])}

    rows = []
    for siswa in students:
        sub = subs.get(siswa.id)
        rows.append(SubmissionRow(
            siswa_id=siswa.id,
            siswa_nama=siswa.nama,
            siswa_email=siswa.email,
            submission_id=sub.id if sub else None,
            jawaban=sub.jawaban if sub else None,
            nilai=sub.nilai if sub else None,
            feedback=sub.feedback if sub else None,
            status=sub.status if sub else SubmissionStatus.BELUM_DIKERJAKAN.value,
            submitted_at=sub.submitted_at if sub else None,
            graded_at=sub.graded_at if sub else None,
        ))

    return TugasSubmissions(
        tugas=TugasHeader(
            id=tugas.id, judul=tugas.judul, deskripsi=tugas.deskripsi,
            deadline=tugas.deadline, kelas=queries.kelas_names(kelas),
        ),
        submissions=rows,
    )


async def tugas_counts(db: AsyncSession, tugas_ids: Iterable[int]) -> Dict[int, Tuple[int, int]]:
    """(submissions, graded) per tugas id."""
    ids = list(tugas_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(SiswaTugas.tugas_id, func.count(SiswaTugas.id), func.count(SiswaTugas.nilai))
        .where(SiswaTugas.tugas_id.in_(ids))
        .group_by(SiswaTugas.tugas_id)
    )
    return {tugas_id: (total, graded) for tugas_id, total, graded in result.all()}
