import asyncio

import pytest
from sqlalchemy import select

from lms.database import SessionLocal
from lms.models.diskusi import DiskusiMateri
from lms.models.materi import SiswaMateri
from lms.models.tugas import SiswaTugas


@pytest.fixture
async def school(factory):
    """One guru teaching two classes; the siswa sits in both."""
    guru = await factory.guru()
    kelas_a = await factory.kelas("Kelas 1A", guru)
    kelas_b = await factory.kelas("Kelas 1B", guru)
    siswa = await factory.siswa()
    await factory.enroll(siswa, kelas_a)
    await factory.enroll(siswa, kelas_b)
    return guru, kelas_a, kelas_b, siswa


async def submissions_of(siswa_id, tugas_id):
    async with SessionLocal() as db:
        result = await db.execute(
            select(SiswaTugas).where(SiswaTugas.siswa_id == siswa_id, SiswaTugas.tugas_id == tugas_id)
        )
        return list(result.scalars().all())


async def test_materi_access_follows_enrollment(factory, login_as):
    guru = await factory.guru()
    kelas_c = await factory.kelas("Kelas 3C", guru, tingkat="3")
    kelas_d = await factory.kelas("Kelas 3D", guru, tingkat="3")
    inside = await factory.siswa()
    outside = await factory.siswa(nama="Siswa Luar", email="luar@sekolah.id")
    await factory.enroll(inside, kelas_c)
    await factory.enroll(outside, kelas_d)

    guru_client = await login_as(guru)
    created = await guru_client.post("/guru/materi", json={
        "judul": "Sistem Tata Surya", "konten": "Matahari dan planet", "kelas_ids": [kelas_c.id],
    })
    materi_id = created.json()["data"]["id"]

    inside_client = await login_as(inside)
    response = await inside_client.get(f"/siswa/materi/{materi_id}")
    assert response.status_code == 200
    assert response.json()["data"]["kelas"] == "Kelas 3C"
    assert response.json()["data"]["guru_nama"] == "Guru Satu"

    outside_client = await login_as(outside)
    assert (await outside_client.get(f"/siswa/materi/{materi_id}")).status_code == 403
    assert (await outside_client.get("/siswa/materi/999")).status_code == 404
    assert (await outside_client.get("/siswa/materi")).json()["data"] == []


async def test_materi_shared_by_two_classes_counts_once(school, factory, login_as):
    guru, kelas_a, kelas_b, siswa = school
    shared = await factory.materi(guru, [kelas_a, kelas_b])
    await factory.tugas(shared)
    client = await login_as(siswa)

    materi = (await client.get("/siswa/materi")).json()["data"]
    assert [m["id"] for m in materi] == [shared.id]
    assert materi[0]["kelas"] == "Kelas 1A, Kelas 1B"

    tugas = (await client.get("/siswa/tugas")).json()["data"]
    assert len(tugas) == 1

    stats = (await client.get("/siswa/dashboard-stats")).json()["data"]
    assert stats["total_materi"] == 1
    assert stats["total_tugas"] == 1


async def test_viewing_materi_records_access_and_completion_is_sticky(school, factory, login_as):
    guru, kelas_a, _, siswa = school
    materi = await factory.materi(guru, [kelas_a])
    client = await login_as(siswa)

    await client.get(f"/siswa/materi/{materi.id}")
    listing = (await client.get("/siswa/materi")).json()["data"]
    assert listing[0]["progress"] == 50
    assert listing[0]["is_completed"] is False

    done = await client.post(f"/siswa/materi/{materi.id}/complete")
    assert done.status_code == 200
    await client.get(f"/siswa/materi/{materi.id}")

    async with SessionLocal() as db:
        rows = (await db.execute(
            select(SiswaMateri).where(SiswaMateri.siswa_id == siswa.id, SiswaMateri.materi_id == materi.id)
        )).scalars().all()
    assert len(rows) == 1
    assert rows[0].is_completed is True

    listing = (await client.get("/siswa/materi")).json()["data"]
    assert listing[0]["progress"] == 100


async def test_resubmitting_reopens_the_submission(school, factory, login_as):
    guru, kelas_a, _, siswa = school
    tugas = await factory.tugas(await factory.materi(guru, [kelas_a]))
    client = await login_as(siswa)

    first = await client.post(f"/siswa/tugas/{tugas.id}/submit", json={"jawaban": "Jawaban pertama"})
    assert first.status_code == 200, first.text
    submission_id = first.json()["data"]["id"]

    guru_client = await login_as(guru)
    graded = await guru_client.post(f"/guru/submissions/{submission_id}/grade", json={"nilai": 60, "feedback": "Kurang"})
    assert graded.status_code == 200

    second = await client.post(f"/siswa/tugas/{tugas.id}/submit", json={"jawaban": "Jawaban revisi"})
    assert second.json()["data"]["id"] == submission_id

    rows = await submissions_of(siswa.id, tugas.id)
    assert len(rows) == 1
    row = rows[0]
    assert row.jawaban == "Jawaban revisi"
    assert row.status == "dikerjakan"
    assert row.nilai is None
    assert row.feedback is None
    assert row.graded_at is None

    assert (await client.get("/siswa/nilai")).json()["data"] == []


async def test_simultaneous_submits_share_one_row(school, factory, login_as):
    guru, kelas_a, _, siswa = school
    tugas = await factory.tugas(await factory.materi(guru, [kelas_a]))
    first_tab = await login_as(siswa)
    second_tab = await login_as(siswa)

    url = f"/siswa/tugas/{tugas.id}/submit"
    responses = await asyncio.gather(
        first_tab.post(url, json={"jawaban": "Dari tab pertama"}),
        second_tab.post(url, json={"jawaban": "Dari tab kedua"}),
    )
    assert [r.status_code for r in responses] == [200, 200], [r.text for r in responses]
    assert responses[0].json()["data"]["id"] == responses[1].json()["data"]["id"]

    rows = await submissions_of(siswa.id, tugas.id)
    assert len(rows) == 1
    assert rows[0].jawaban in {"Dari tab pertama", "Dari tab kedua"}
    assert rows[0].status == "dikerjakan"

    async with SessionLocal() as db:
        progress = (await db.execute(
            select(SiswaMateri).where(SiswaMateri.siswa_id == siswa.id, SiswaMateri.materi_id == tugas.materi_id)
        )).scalars().all()
    assert len(progress) == 1


async def test_submit_validation_and_access(school, factory, login_as):
    guru, kelas_a, _, siswa = school
    other_kelas = await factory.kelas("Kelas 2B", guru, tingkat="2")
    hidden = await factory.tugas(await factory.materi(guru, [other_kelas], judul="Rahasia"))
    visible = await factory.tugas(await factory.materi(guru, [kelas_a]))
    client = await login_as(siswa)

    blank = await client.post(f"/siswa/tugas/{visible.id}/submit", json={"jawaban": "   "})
    assert blank.status_code == 400
    assert blank.json()["error"] == "Jawaban tidak boleh kosong"
    assert await submissions_of(siswa.id, visible.id) == []

    assert (await client.post(f"/siswa/tugas/{hidden.id}/submit", json={"jawaban": "Coba"})).status_code == 403
    assert (await client.post("/siswa/tugas/999/submit", json={"jawaban": "Coba"})).status_code == 404


async def test_graded_tugas_leave_the_active_list(school, factory, login_as):
    guru, kelas_a, _, siswa = school
    materi = await factory.materi(guru, [kelas_a])
    graded = await factory.tugas(materi, judul="Sudah dinilai")
    await factory.submission(siswa, graded, nilai=90)
    open_tugas = [await factory.tugas(materi, judul=f"Latihan {i}") for i in range(4)]
    client = await login_as(siswa)

    active = (await client.get("/siswa/tugas")).json()["data"]
    assert {t["id"] for t in active} == {t.id for t in open_tugas}

    recent = (await client.get("/siswa/tugas-recent")).json()["data"]
    assert [t["id"] for t in recent] == [t.id for t in reversed(open_tugas)][:3]

    nilai = (await client.get("/siswa/nilai")).json()["data"]
    assert [(n["tugas_judul"], n["nilai"]) for n in nilai] == [("Sudah dinilai", 90)]


async def test_dashboard_stats(school, factory, login_as):
    guru, kelas_a, kelas_b, siswa = school
    shared = await factory.materi(guru, [kelas_a, kelas_b], judul="Bersama")
    only_a = await factory.materi(guru, [kelas_a], judul="Khusus 1A")
    t1 = await factory.tugas(shared, judul="Tugas Bersama")
    await factory.tugas(only_a, judul="Tugas 1A")
    await factory.submission(siswa, t1, nilai=90)
    client = await login_as(siswa)
    await client.post(f"/siswa/materi/{shared.id}/complete")

    stats = (await client.get("/siswa/dashboard-stats")).json()["data"]
    assert stats["total_materi"] == 2
    assert stats["materi_dipelajari"] == 1
    assert stats["progress_materi"] == 50
    assert stats["total_tugas"] == 2
    assert stats["tugas_dikerjakan"] == 1
    assert stats["tugas_selesai"] == 1
    assert stats["tugas_pending"] == 0
    assert stats["rata_nilai"] == 90
    assert stats["overall_progress"] == 50
    assert set(stats["kelas"]) == {"Kelas 1A (Tingkat 1)", "Kelas 1B (Tingkat 1)"}

    detail = (await client.get("/siswa/progress-detail")).json()["data"]
    per_kelas = {k["nama"]: k for k in detail["detail_kelas"]}
    assert per_kelas["Kelas 1A"]["total_materi"] == 2
    assert per_kelas["Kelas 1B"]["total_materi"] == 1
    assert per_kelas["Kelas 1B"]["progress_tugas"] == 100


async def test_siswa_without_kelas_gets_zeroes(factory, login_as):
    siswa = await factory.siswa()
    client = await login_as(siswa)
    stats = (await client.get("/siswa/dashboard-stats")).json()["data"]
    assert stats["total_materi"] == 0
    assert stats["overall_progress"] == 0
    assert stats["kelas"] == []


async def test_materi_discussion_threads(school, factory, login_as):
    guru, kelas_a, _, siswa = school
    materi = await factory.materi(guru, [kelas_a])
    other_materi = await factory.materi(guru, [kelas_a], judul="Lainnya")
    client = await login_as(siswa)

    short = await client.post("/siswa/diskusi-materi", json={"materi_id": materi.id, "isi": "ok"})
    assert short.status_code == 400
    assert short.json()["error"] == "Isi diskusi terlalu pendek"

    top = await client.post("/siswa/diskusi-materi", json={"materi_id": materi.id, "isi": "Apa itu bilangan prima?"})
    assert top.status_code == 200
    top_id = top.json()["data"]["id"]

    reply = await client.post("/siswa/diskusi-materi", json={
        "materi_id": materi.id, "isi": "Saya juga bingung", "parent_id": top_id,
    })
    assert reply.status_code == 200
    reply_id = reply.json()["data"]["id"]
    assert (await factory.reload(DiskusiMateri, reply_id)).parent_id == top_id

    nested = await client.post("/siswa/diskusi-materi", json={
        "materi_id": materi.id, "isi": "Balasan bertingkat", "parent_id": reply_id,
    })
    assert nested.status_code == 400
    assert nested.json()["error"] == "Diskusi yang dibalas tidak valid"

    cross = await client.post("/siswa/diskusi-materi", json={
        "materi_id": other_materi.id, "isi": "Salah tempat", "parent_id": top_id,
    })
    assert cross.status_code == 400

    feed = (await client.get("/siswa/diskusi-materi")).json()["data"]
    assert {item["id"] for item in feed} == {top_id, reply_id}


async def test_class_discussions_follow_enrollment(school, factory, login_as):
    guru, kelas_a, _, siswa = school
    lain = await factory.kelas("Kelas 2B", guru, tingkat="2")
    kepsek_client = await login_as(await factory.kepsek())
    for kelas, isi in ((kelas_a, "Selamat belajar semuanya"), (lain, "Pengumuman untuk kelas 2B")):
        posted = await kepsek_client.post("/kepsek/kelas/diskusi", json={"kelas_id": kelas.id, "isi": isi})
        assert posted.status_code == 200

    client = await login_as(siswa)
    feed = (await client.get("/siswa/diskusi-kelas")).json()["data"]
    assert [(d["kelas"], d["isi"], d["user_role"]) for d in feed] == [
        ("Kelas 1A", "Selamat belajar semuanya", "kepsek"),
    ]

    loner = await factory.siswa(nama="Siswa Baru", email="baru@sekolah.id")
    assert (await (await login_as(loner)).get("/siswa/diskusi-kelas")).json()["data"] == []
