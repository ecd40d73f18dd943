"""
Demo data for a fresh database.

One kepsek, five guru (the last one inactive), fifteen siswa (the last one
inactive) spread over three classes, plus materi, tugas, submissions,
progress rows and a few discussions. Random choices use a fixed seed so the
demo looks the same on every run.
"""
import logging
import random
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.models.diskusi import Diskusi, DiskusiMateri
from lms.models.kelas import Kelas, SiswaKelas, GuruKelas
from lms.models.materi import Materi, MateriKelas, SiswaMateri
from lms.models.tugas import Tugas, SiswaTugas, SubmissionStatus
from lms.models.user import User, Role, UserStatus
from lms.security import get_password_hash
from lms.utils.time_utils import get_jakarta_time

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"

GURU_DATA = [
    ("Budi Santoso, S.Pd", "guru@sekolah.id", "Matematika"),
    ("Siti Rahayu, S.Pd", "guru2@sekolah.id", "Bahasa Indonesia"),
    ("Agus Wijaya, S.Pd", "guru3@sekolah.id", "IPA"),
    ("Dewi Lestari, S.Pd", "guru4@sekolah.id", "IPS"),
    ("Hendra Gunawan, S.Pd", "guru5@sekolah.id", "Olahraga"),
]

# (nama, tingkat, index of wali kelas in GURU_DATA)
KELAS_DATA = [("Kelas 1A", "1", 0), ("Kelas 2B", "2", 1), ("Kelas 3C", "3", 2)]

# (guru index, kelas index, mata pelajaran)
GURU_KELAS_DATA = [
    (0, 0, "Matematika"), (1, 0, "Bahasa Indonesia"), (2, 0, "IPA"),
    (0, 1, "Matematika"), (1, 1, "Bahasa Indonesia"), (3, 1, "IPS"),
    (2, 2, "IPA"), (3, 2, "IPS"), (4, 2, "Olahraga"),
]

# (judul, deskripsi, guru index, kelas index)
MATERI_DATA = [
    ("Pengenalan Bilangan", "Materi dasar tentang bilangan dan operasi", 0, 0),
    ("Aljabar Dasar", "Konsep dasar aljabar untuk pemula", 0, 1),
    ("Geometri Sederhana", "Bentuk-bentuk geometri dasar", 0, 2),
    ("Membaca Pemahaman", "Teknik membaca dan memahami teks", 1, 0),
    ("Menulis Kreatif", "Pembelajaran menulis yang kreatif", 1, 1),
    ("Sains Dasar", "Pengenalan konsep sains dasar", 2, 0),
    ("Eksperimen Sederhana", "Praktik eksperimen sains sederhana", 2, 2),
    ("Sejarah Indonesia", "Pembelajaran sejarah Indonesia", 3, 1),
    ("Geografi Dasar", "Pengenalan geografi Indonesia", 3, 2),
]

# (judul, deskripsi, materi index, days until deadline, submit rate)
TUGAS_DATA = [
    ("Latihan Bilangan 1", "Kerjakan soal-soal tentang bilangan dasar", 0, 7, 0.8),
    ("Quiz Aljabar", "Kuis singkat tentang konsep aljabar", 1, 10, 0.6),
    ("Tugas Membaca", "Baca artikel dan buat ringkasan", 3, 5, 0.9),
    ("Eksperimen Air", "Lakukan eksperimen tentang sifat air", 6, 14, 0.7),
    ("Esai Sejarah", "Tulis esai tentang kemerdekaan Indonesia", 7, 12, 0.5),
]

SISWA_PER_KELAS = 5


def _konten(judul: str, deskripsi: str, bidang: str) -> str:
    return (
        f"Konten pembelajaran {judul}.\n\n"
        f"Materi ini membahas tentang {deskripsi.lower()}.\n\n"
        "Tujuan Pembelajaran:\n"
        f"1. Memahami konsep dasar {bidang.lower()}\n"
        "2. Mampu mengaplikasikan pengetahuan dalam kehidupan sehari-hari\n"
        "3. Mengembangkan kemampuan berpikir kritis\n"
    )


async def seed_demo_data(db: AsyncSession, rng: random.Random = None) -> bool:
    """Fills an empty database. Returns False when users already exist."""
    existing = await db.scalar(select(func.count()).select_from(User))
    if existing:
        logger.info("Database already has data, skipping seed.")
        return False

    rng = rng or random.Random(2024)
    now = get_jakarta_time()
    password_hash = get_password_hash(DEMO_PASSWORD)

    kepsek = User(
        nama="Dr. Suryadi, M.Pd", email="kepsek@sekolah.id", password_hash=password_hash,
        role=Role.KEPSEK.value, status=UserStatus.ACTIVE.value, login_count=0,
    )
    db.add(kepsek)
    await db.flush()

    gurus = []
    for index, (nama, email, bidang) in enumerate(GURU_DATA):
        gurus.append(User(
            nama=nama, email=email, password_hash=password_hash, role=Role.GURU.value,
            status=UserStatus.INACTIVE.value if index == len(GURU_DATA) - 1 else UserStatus.ACTIVE.value,
            bidang=bidang, created_by=kepsek.id, login_count=rng.randint(1, 20),
            last_login=now - timedelta(days=index + 1), last_activity=now - timedelta(days=index + 1),
        ))

    siswa = []
    total_siswa = SISWA_PER_KELAS * len(KELAS_DATA)
    for i in range(1, total_siswa + 1):
        seen = now - timedelta(days=i % 7)
        siswa.append(User(
            nama=f"Siswa {i:02d}", email=f"siswa{i}@sekolah.id", password_hash=password_hash,
            role=Role.SISWA.value,
            status=UserStatus.INACTIVE.value if i == total_siswa else UserStatus.ACTIVE.value,
            login_count=rng.randint(5, 55), last_login=seen, last_activity=seen,
        ))
    db.add_all(gurus + siswa)
    await db.flush()

    kelas = [Kelas(nama=nama, tingkat=tingkat, wali_kelas_id=gurus[wali].id) for nama, tingkat, wali in KELAS_DATA]
    db.add_all(kelas)
    await db.flush()

    db.add_all([
        GuruKelas(guru_id=gurus[g].id, kelas_id=kelas[k].id, mata_pelajaran=mapel)
        for g, k, mapel in GURU_KELAS_DATA
    ])

    # One class per siswa
    members = {k.id: siswa[i * SISWA_PER_KELAS:(i + 1) * SISWA_PER_KELAS] for i, k in enumerate(kelas)}
    db.add_all([SiswaKelas(siswa_id=s.id, kelas_id=kelas_id) for kelas_id, group in members.items() for s in group])

    materi = []
    for index, (judul, deskripsi, g, _) in enumerate(MATERI_DATA):
        materi.append(Materi(
            judul=judul, deskripsi=deskripsi, konten=_konten(judul, deskripsi, GURU_DATA[g][2]),
            guru_id=gurus[g].id, created_at=now - timedelta(days=index), updated_at=now - timedelta(hours=index * 12),
        ))
    db.add_all(materi)
    await db.flush()
    db.add_all([
        MateriKelas(materi_id=materi[i].id, kelas_id=kelas[k].id)
        for i, (_, _, _, k) in enumerate(MATERI_DATA)
    ])

    tugas = []
    for judul, deskripsi, m, days, _ in TUGAS_DATA:
        tugas.append(Tugas(
            judul=judul, deskripsi=deskripsi, materi_id=materi[m].id, guru_id=materi[m].guru_id,
            deadline=now + timedelta(days=days),
        ))
    db.add_all(tugas)
    await db.flush()

    for t, (_, _, m, _, rate) in zip(tugas, TUGAS_DATA):
        for s in members[kelas[MATERI_DATA[m][3]].id]:
            if rng.random() >= rate:
                continue
            submitted_at = now - timedelta(days=rng.randint(0, 4))
            graded = rng.random() < 0.5
            nilai = rng.randint(60, 100) if graded else None
            db.add(SiswaTugas(
                siswa_id=s.id, tugas_id=t.id,
                jawaban=f"Jawaban tugas {t.judul} dari {s.nama}.",
                status=SubmissionStatus.SELESAI.value if graded else SubmissionStatus.DIKERJAKAN.value,
                nilai=nilai,
                feedback=("Kerja bagus!" if nilai >= 80 else "Perlu ditingkatkan lagi") if graded else None,
                submitted_at=submitted_at,
                graded_at=submitted_at + timedelta(days=rng.randint(0, 1)) if graded else None,
            ))

    for m, (_, _, _, k) in zip(materi, MATERI_DATA):
        for s in members[kelas[k].id]:
            if rng.random() < 0.8:
                db.add(SiswaMateri(
                    siswa_id=s.id, materi_id=m.id,
                    last_accessed=now - timedelta(days=rng.randint(0, 6)),
                    is_completed=rng.random() < 0.65,
                ))

    db.add_all([
        Diskusi(kelas_id=kelas[0].id, user_id=gurus[0].id, user_role=Role.GURU.value,
                isi="Selamat datang di kelas 1A! Mari kita belajar dengan semangat.", created_at=now),
        Diskusi(kelas_id=kelas[0].id, user_id=siswa[0].id, user_role=Role.SISWA.value,
                isi="Terima kasih pak guru. Kami siap belajar!", created_at=now - timedelta(hours=2)),
        Diskusi(kelas_id=kelas[1].id, user_id=gurus[1].id, user_role=Role.GURU.value,
                isi="Untuk tugas minggu ini, jangan lupa baca materi terlebih dahulu.", created_at=now - timedelta(hours=4)),
        Diskusi(kelas_id=kelas[2].id, user_id=siswa[10].id, user_role=Role.SISWA.value,
                isi="Eksperimen hari ini sangat menarik!", created_at=now - timedelta(hours=6)),
    ])

    question = DiskusiMateri(
        materi_id=materi[0].id, user_id=siswa[1].id, user_role=Role.SISWA.value,
        isi="Bagaimana cara mudah menghafal tabel perkalian?", created_at=now - timedelta(hours=3),
    )
    db.add(question)
    await db.flush()
    db.add(DiskusiMateri(
        materi_id=materi[0].id, user_id=gurus[0].id, user_role=Role.GURU.value,
        isi="Coba gunakan lagu atau pola untuk mengingatnya.", parent_id=question.id, created_at=now,
    ))

    await db.commit()
    logger.info(f"Seeded demo data: {len(gurus)} guru, {len(siswa)} siswa, {len(kelas)} kelas")
    return True
