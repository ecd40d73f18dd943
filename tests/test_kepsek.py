import pytest
from sqlalchemy import func, select

from lms.database import SessionLocal
from lms.models.kelas import GuruKelas, Kelas
from lms.models.user import User, UserStatus


@pytest.fixture
async def kepsek_client(factory, login_as):
    return await login_as(await factory.kepsek())


async def count_rows(model, *conditions):
    stmt = select(func.count()).select_from(model)
    if conditions:
        stmt = stmt.where(*conditions)
    async with SessionLocal() as db:
        return await db.scalar(stmt)


async def test_info_dasar_counts(factory, kepsek_client):
    guru = await factory.guru()
    await factory.guru(nama="Guru Cuti", email="cuti@sekolah.id", status=UserStatus.INACTIVE)
    kelas = await factory.kelas("Kelas 1A", guru)
    await factory.siswa()
    await factory.siswa(nama="Siswa Dua", email="siswa2@sekolah.id")
    await factory.siswa(nama="Siswa Pindah", email="pindah@sekolah.id", status=UserStatus.INACTIVE)
    materi = await factory.materi(guru, [kelas])
    await factory.tugas(materi)

    data = (await kepsek_client.get("/kepsek/info-dasar")).json()["data"]
    assert data == {
        "jumlah_guru": 2,
        "jumlah_siswa": 3,
        "jumlah_kelas": 1,
        "jumlah_materi": 1,
        "jumlah_tugas": 1,
        "guru_aktif": 1,
        "siswa_aktif": 2,
    }


async def test_tambah_guru_and_duplicate_email(kepsek_client, factory):
    payload = {"nama": "Bu Sari", "email": "Sari@Sekolah.id", "password": "guru1234", "bidang": "Bahasa"}
    response = await kepsek_client.post("/kepsek/guru/tambah", json=payload)
    assert response.status_code == 200, response.text
    guru = await factory.reload(User, response.json()["data"]["id"])
    assert guru.email == "sari@sekolah.id"
    assert guru.role == "guru"
    assert guru.created_by is not None

    again = await kepsek_client.post("/kepsek/guru/tambah", json=payload)
    assert again.status_code == 400
    assert again.json()["error"] == "Email sudah terdaftar"

    daftar = (await kepsek_client.get("/kepsek/guru/daftar")).json()["data"]
    assert [(g["nama"], g["kelas"]) for g in daftar] == [("Bu Sari", "Belum ada kelas")]


async def test_guru_status_toggle(kepsek_client, factory):
    guru = await factory.guru()
    response = await kepsek_client.patch(f"/kepsek/guru/status/{guru.id}", json={"status": "inactive"})
    assert response.status_code == 200
    assert (await factory.reload(User, guru.id)).status == "inactive"

    bad = await kepsek_client.patch(f"/kepsek/guru/status/{guru.id}", json={"status": "libur"})
    assert bad.status_code == 400

    siswa = await factory.siswa()
    assert (await kepsek_client.patch(
        f"/kepsek/guru/status/{siswa.id}", json={"status": "inactive"}
    )).status_code == 404


async def test_cannot_delete_guru_who_is_wali(kepsek_client, factory):
    wali = await factory.guru()
    biasa = await factory.guru(nama="Guru Dua", email="guru2@sekolah.id")
    kelas = await factory.kelas("Kelas 1A", wali)
    await factory.teach(biasa, kelas)

    blocked = await kepsek_client.delete(f"/kepsek/guru/hapus/{wali.id}")
    assert blocked.status_code == 400
    assert blocked.json()["error"] == "Guru masih menjadi wali kelas Kelas 1A"
    assert await factory.reload(User, wali.id) is not None

    removed = await kepsek_client.delete(f"/kepsek/guru/hapus/{biasa.id}")
    assert removed.status_code == 200
    assert await factory.reload(User, biasa.id) is None
    assert await count_rows(GuruKelas, GuruKelas.guru_id == biasa.id) == 0


async def test_kelas_wali_must_be_guru(kepsek_client, factory):
    siswa = await factory.siswa()
    response = await kepsek_client.post("/kepsek/kelas/tambah", json={
        "nama": "Kelas 1A", "tingkat": "1", "wali_kelas_id": siswa.id,
    })
    assert response.status_code == 400
    assert response.json()["error"] == "Wali kelas harus seorang guru"
    assert await count_rows(Kelas) == 0

    guru = await factory.guru()
    created = await kepsek_client.post("/kepsek/kelas/tambah", json={
        "nama": "Kelas 1A", "tingkat": "1", "wali_kelas_id": guru.id,
    })
    assert created.status_code == 200
    kelas_id = created.json()["data"]["id"]

    empty = await kepsek_client.put(f"/kepsek/kelas/{kelas_id}", json={})
    assert empty.status_code == 400
    assert empty.json()["error"] == "Tidak ada data yang diupdate"

    moved = await kepsek_client.put(f"/kepsek/kelas/{kelas_id}", json={"wali_kelas_id": siswa.id})
    assert moved.status_code == 400

    assert (await kepsek_client.delete("/kepsek/kelas/999")).status_code == 404
    assert (await kepsek_client.delete(f"/kepsek/kelas/{kelas_id}")).status_code == 200


async def test_kelas_update_rejects_blank_text(kepsek_client, factory):
    guru = await factory.guru()
    kelas = await factory.kelas("Kelas 1A", guru)

    for payload in ({"nama": "   "}, {"tingkat": " "}):
        response = await kepsek_client.put(f"/kepsek/kelas/{kelas.id}", json=payload)
        assert response.status_code == 400
        assert response.json()["error"] == "Nama kelas, tingkat, dan wali kelas harus diisi"

    unchanged = await factory.reload(Kelas, kelas.id)
    assert (unchanged.nama, unchanged.tingkat) == ("Kelas 1A", "1")

    renamed = await kepsek_client.put(f"/kepsek/kelas/{kelas.id}", json={"nama": "  Kelas 1 Unggulan "})
    assert renamed.status_code == 200
    assert (await factory.reload(Kelas, kelas.id)).nama == "Kelas 1 Unggulan"


async def test_enrollment(kepsek_client, factory):
    guru = await factory.guru()
    kelas = await factory.kelas("Kelas 1A", guru)
    siswa = await factory.siswa()

    url = f"/kepsek/kelas/{kelas.id}/siswa/tambah"
    assert (await kepsek_client.post(url, json={"siswa_id": siswa.id})).status_code == 200
    duplicate = await kepsek_client.post(url, json={"siswa_id": siswa.id})
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "Siswa sudah terdaftar di kelas ini"
    assert (await kepsek_client.post(url, json={"siswa_id": guru.id})).status_code == 404
    assert (await kepsek_client.post("/kepsek/kelas/999/siswa/tambah", json={"siswa_id": siswa.id})).status_code == 404

    roster = (await kepsek_client.get(f"/kepsek/kelas/{kelas.id}/siswa")).json()["data"]
    assert [s["id"] for s in roster["siswa"]] == [siswa.id]
    assert roster["kelas"]["wali_kelas"] == "Guru Satu"

    assert (await kepsek_client.delete(f"/kepsek/kelas/{kelas.id}/siswa/{siswa.id}")).status_code == 200
    missing = await kepsek_client.delete(f"/kepsek/kelas/{kelas.id}/siswa/{siswa.id}")
    assert missing.status_code == 404


async def test_assign_guru_is_idempotent(kepsek_client, factory):
    guru = await factory.guru()
    kelas = await factory.kelas("Kelas 1A", guru)
    url = f"/kepsek/kelas/{kelas.id}/guru/tambah"

    for _ in range(2):
        response = await kepsek_client.post(url, json={"guru_id": guru.id, "mata_pelajaran": "Matematika"})
        assert response.status_code == 200
    await kepsek_client.post(url, json={"guru_id": guru.id, "mata_pelajaran": "Fisika"})
    assert await count_rows(GuruKelas, GuruKelas.kelas_id == kelas.id) == 2

    daftar = (await kepsek_client.get("/kepsek/kelas/daftar")).json()["data"]
    assert daftar[0]["jumlah_guru"] == 1
    assert len(daftar[0]["guru_list"]) == 2

    removed = await kepsek_client.delete(
        f"/kepsek/kelas/{kelas.id}/guru/{guru.id}", params={"mata_pelajaran": "Fisika"}
    )
    assert removed.status_code == 200
    assert await count_rows(GuruKelas, GuruKelas.kelas_id == kelas.id) == 1

    gone = await kepsek_client.delete(f"/kepsek/kelas/{kelas.id}/guru/{guru.id}", params={"mata_pelajaran": "Fisika"})
    assert gone.status_code == 404
    assert gone.json()["error"] == "Guru tidak mengajar di kelas ini"


async def test_siswa_per_kelas_ignores_inactive_in_average(kepsek_client, factory):
    guru = await factory.guru()
    kelas = await factory.kelas("Kelas 1A", guru)
    rajin = await factory.siswa(nama="Siswa Rajin", email="rajin@sekolah.id")
    pindah = await factory.siswa(nama="Siswa Pindah", email="pindah@sekolah.id", status=UserStatus.INACTIVE)
    await factory.enroll(rajin, kelas)
    await factory.enroll(pindah, kelas)
    tugas = await factory.tugas(await factory.materi(guru, [kelas]))
    await factory.submission(rajin, tugas, nilai=90)

    groups = (await kepsek_client.get("/kepsek/siswa/per-kelas")).json()["data"]
    assert len(groups) == 1
    statistik = groups[0]["statistik"]
    assert statistik["total_siswa"] == 2
    assert statistik["siswa_aktif"] == 1
    # rajin: tugas 100%, materi 0% -> 50
    assert statistik["avg_progress"] == 50

    by_name = {s["nama"]: s for s in groups[0]["siswa_list"]}
    assert by_name["Siswa Pindah"]["progress_summary"]["overall_progress"] == 0


async def test_kelas_detail_and_siswa_progress(kepsek_client, factory):
    guru = await factory.guru()
    kelas = await factory.kelas("Kelas 1A", guru)
    lain = await factory.kelas("Kelas 2B", guru, tingkat="2")
    siswa = await factory.siswa()
    await factory.enroll(siswa, kelas)
    await factory.teach(guru, kelas)
    tugas = await factory.tugas(await factory.materi(guru, [kelas]))
    await factory.submission(siswa, tugas, nilai=75)

    detail = (await kepsek_client.get(f"/kepsek/kelas/{kelas.id}/detail")).json()["data"]
    assert detail["statistik"] == {
        "total_siswa": 1, "siswa_aktif": 1, "total_materi": 1, "total_tugas": 1, "avg_nilai": 75,
    }
    assert [g["mata_pelajaran"] for g in detail["guru"]] == ["Matematika"]

    progress = await kepsek_client.get(f"/kepsek/siswa/{siswa.id}/progress/{kelas.id}")
    assert progress.status_code == 200
    assert progress.json()["data"]["detail_tugas"][0]["nilai"] == 75

    assert (await kepsek_client.get(f"/kepsek/siswa/{siswa.id}/progress/{lain.id}")).status_code == 404
    assert (await kepsek_client.get("/kepsek/kelas/999/detail")).status_code == 404


async def test_class_discussions(kepsek_client, factory):
    guru = await factory.guru()
    kelas = await factory.kelas("Kelas 1A", guru)
    siswa = await factory.siswa()
    await factory.enroll(siswa, kelas)

    long_text = "Pengumuman ujian tengah semester " * 10
    posted = await kepsek_client.post("/kepsek/kelas/diskusi", json={"kelas_id": kelas.id, "isi": long_text})
    assert posted.status_code == 200
    assert (await kepsek_client.post(
        "/kepsek/kelas/diskusi", json={"kelas_id": 999, "isi": "Halo semuanya"}
    )).status_code == 404

    feed = (await kepsek_client.get("/kepsek/kelas/diskusi")).json()["data"]
    assert feed[0]["isi"] == long_text.strip()[:100] + "..."
    assert feed[0]["user_role"] == "kepsek"

    assert (await kepsek_client.get("/kepsek/kelas/diskusi-materi/999")).status_code == 404


async def test_learning_activity_summary(shared_kelas, kepsek_client, login_as):
    s = shared_kelas
    await login_as(s.siswa)

    data = (await kepsek_client.get("/kepsek/aktivitas-pembelajaran")).json()["data"]
    assert data["summary"] == {
        "materials_created": 2, "assignments_created": 2, "submissions_received": 3, "grades_given": 3,
    }
    assert data["active_students_today"] == 1
    assert len(data["recent_activities"]) == 10
    descriptions = [a["description"] for a in data["recent_activities"] if a["type"] == "grade"]
    assert "Tugas: Praktikum IPA, Nilai: 40 oleh Guru Dua" in descriptions
    assert "Tugas: Latihan 1, Nilai: 90 oleh Guru Satu" in descriptions


async def test_siswa_tugas_lists_every_submission(shared_kelas, kepsek_client):
    s = shared_kelas

    items = (await kepsek_client.get(f"/kepsek/siswa/tugas/{s.siswa.id}")).json()["data"]
    assert {(i["tugas"], i["materi"], i["nilai"]) for i in items} == {
        ("Latihan 1", "Pengenalan Bilangan", 90), ("Praktikum IPA", "Sel Hewan", 40),
    }
    assert {i["kelas"] for i in items} == {"Kelas 1A"}

    pindah = (await kepsek_client.get(f"/kepsek/siswa/tugas/{s.pindah.id}")).json()["data"]
    assert [i["nilai"] for i in pindah] == [10]

    assert (await kepsek_client.get(f"/kepsek/siswa/tugas/{s.guru.id}")).status_code == 404
    assert (await kepsek_client.get("/kepsek/siswa/tugas/999")).status_code == 404


async def test_siswa_and_materi_directories(shared_kelas, kepsek_client, factory):
    s = shared_kelas
    await factory.siswa(nama="Siswa Baru", email="baru@sekolah.id")
    await factory.materi(s.guru, [], judul="Draf")

    siswa = (await kepsek_client.get("/kepsek/siswa/daftar")).json()["data"]
    assert [(x["nama"], x["kelas"], x["status"]) for x in siswa] == [
        ("Siswa Baru", "Belum ada kelas", "active"),
        ("Siswa Pindah", "Kelas 1A", "inactive"),
        ("Siswa Satu", "Kelas 1A", "active"),
    ]

    materi = (await kepsek_client.get("/kepsek/materi/daftar")).json()["data"]
    assert [(m["judul"], m["guru"], m["kelas"]) for m in materi] == [
        ("Draf", "Guru Satu", "Belum ada kelas"),
        ("Sel Hewan", "Guru Dua", "Kelas 1A"),
        ("Pengenalan Bilangan", "Guru Satu", "Kelas 1A"),
    ]
