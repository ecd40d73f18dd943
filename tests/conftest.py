import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"

from datetime import timedelta
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

from lms.database import SessionLocal, drop_db, engine, init_db
from lms.main import app
from lms.models.diskusi import DiskusiMateri
from lms.models.kelas import Kelas, SiswaKelas, GuruKelas
from lms.models.materi import Materi, MateriKelas
from lms.models.tugas import Tugas, SiswaTugas, SubmissionStatus
from lms.models.user import User, Role, UserStatus
from lms.security import get_password_hash
from lms.services.login_throttle import LoginThrottle, get_login_throttle
from lms.utils.time_utils import get_jakarta_time

PASSWORD = "rahasia123"
PASSWORD_HASH = get_password_hash(PASSWORD)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class Factory:
    """Inserts rows directly, bypassing the HTTP layer."""

    async def _save(self, *rows):
        async with SessionLocal() as db:
            db.add_all(rows)
            await db.commit()
            for row in rows:
                await db.refresh(row)
        return rows[0] if len(rows) == 1 else rows

    async def reload(self, model, pk):
        async with SessionLocal() as db:
            return await db.get(model, pk)

    async def user(self, nama, email, role: Role, status=UserStatus.ACTIVE, bidang=None) -> User:
        return await self._save(User(
            nama=nama, email=email, password_hash=PASSWORD_HASH, role=role.value,
            status=status.value, bidang=bidang, login_count=0,
        ))

    async def kepsek(self, email="kepsek@sekolah.id") -> User:
        return await self.user("Kepala Sekolah", email, Role.KEPSEK)

    async def guru(self, nama="Guru Satu", email="guru1@sekolah.id", bidang="Matematika", **kwargs) -> User:
        return await self.user(nama, email, Role.GURU, bidang=bidang, **kwargs)

    async def siswa(self, nama="Siswa Satu", email="siswa1@sekolah.id", **kwargs) -> User:
        return await self.user(nama, email, Role.SISWA, **kwargs)

    async def kelas(self, nama, wali: User, tingkat="1") -> Kelas:
        return await self._save(Kelas(nama=nama, tingkat=tingkat, wali_kelas_id=wali.id))

    async def enroll(self, siswa: User, kelas: Kelas) -> SiswaKelas:
        return await self._save(SiswaKelas(siswa_id=siswa.id, kelas_id=kelas.id))

    async def teach(self, guru: User, kelas: Kelas, mapel="Matematika") -> GuruKelas:
        return await self._save(GuruKelas(guru_id=guru.id, kelas_id=kelas.id, mata_pelajaran=mapel))

    async def materi(self, guru: User, kelas_list, judul="Pengenalan Bilangan") -> Materi:
        materi = await self._save(Materi(judul=judul, deskripsi="Deskripsi", konten="Isi materi", guru_id=guru.id))
        for kelas in kelas_list:
            await self._save(MateriKelas(materi_id=materi.id, kelas_id=kelas.id))
        return materi

    async def tugas(self, materi: Materi, judul="Latihan 1", days=7) -> Tugas:
        return await self._save(Tugas(
            judul=judul, deskripsi="Kerjakan soal", materi_id=materi.id, guru_id=materi.guru_id,
            deadline=get_jakarta_time() + timedelta(days=days),
        ))

    async def submission(self, siswa: User, tugas: Tugas, nilai=None, submitted_at=None) -> SiswaTugas:
        status = SubmissionStatus.SELESAI if nilai is not None else SubmissionStatus.DIKERJAKAN
        now = get_jakarta_time()
        return await self._save(SiswaTugas(
            siswa_id=siswa.id, tugas_id=tugas.id, jawaban="Jawaban saya", nilai=nilai,
            status=status.value, submitted_at=submitted_at or now,
            graded_at=now if nilai is not None else None,
        ))

    async def post(self, materi: Materi, user: User, isi="Bagaimana cara mengerjakannya?", parent=None) -> DiskusiMateri:
        return await self._save(DiskusiMateri(
            materi_id=materi.id, user_id=user.id, user_role=user.role, isi=isi,
            parent_id=parent.id if parent else None,
        ))


@pytest.fixture
async def database():
    await init_db()
    yield
    await drop_db()
    await engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def throttle(clock):
    throttle = LoginThrottle(max_attempts=5, lock_seconds=600, clock=clock)
    app.dependency_overrides[get_login_throttle] = lambda: throttle
    yield throttle
    app.dependency_overrides.pop(get_login_throttle, None)


@pytest.fixture
def factory(database):
    return Factory()


@pytest.fixture
async def db(database):
    async with SessionLocal() as session:
        yield session


@pytest.fixture
async def make_client(database, throttle):
    clients = []

    async def _make(raise_app_exceptions: bool = True) -> AsyncClient:
        transport = ASGITransport(app=app, raise_app_exceptions=raise_app_exceptions)
        client = AsyncClient(transport=transport, base_url="http://test")
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.aclose()


@pytest.fixture
async def client(make_client):
    return await make_client()


async def login(client: AsyncClient, email: str, password: str = PASSWORD):
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response


@pytest.fixture
def login_as(make_client):
    """Returns a fresh client carrying the session of the given user."""
    async def _login_as(user: User) -> AsyncClient:
        client = await make_client()
        await login(client, user.email)
        return client
    return _login_as


@pytest.fixture
async def shared_kelas(factory):
    """
    Kelas 1A with two teachers. Guru Satu is wali and teaches Matematika,
    Guru Dua teaches IPA. Siswa Satu has a grade from each of them; Siswa
    Pindah is enrolled but inactive and holds a low grade on Guru Satu's tugas.
    """
    guru = await factory.guru()
    guru_ipa = await factory.guru(nama="Guru Dua", email="guru2@sekolah.id", bidang="IPA")
    kelas = await factory.kelas("Kelas 1A", guru)
    await factory.teach(guru, kelas)
    await factory.teach(guru_ipa, kelas, mapel="IPA")

    siswa = await factory.siswa()
    pindah = await factory.siswa(nama="Siswa Pindah", email="pindah@sekolah.id", status=UserStatus.INACTIVE)
    await factory.enroll(siswa, kelas)
    await factory.enroll(pindah, kelas)

    materi = await factory.materi(guru, [kelas])
    tugas = await factory.tugas(materi, days=3)
    materi_ipa = await factory.materi(guru_ipa, [kelas], judul="Sel Hewan")
    tugas_ipa = await factory.tugas(materi_ipa, judul="Praktikum IPA", days=2)

    await factory.submission(siswa, tugas, nilai=90)
    await factory.submission(siswa, tugas_ipa, nilai=40)
    await factory.submission(pindah, tugas, nilai=10)

    return SimpleNamespace(
        guru=guru, guru_ipa=guru_ipa, kelas=kelas, siswa=siswa, pindah=pindah,
        materi=materi, tugas=tugas, materi_ipa=materi_ipa, tugas_ipa=tugas_ipa,
    )
