import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.database import get_db
from lms.errors import AuthenticationError, ValidationError
from lms.models.kelas import Kelas, SiswaKelas, GuruKelas
from lms.models.user import User, Role, UserStatus
from lms.schemas.auth_schema import RegisterSiswa, RegisterGuru, UserLogin, UserSummary, LoginData
from lms.schemas.common import ApiResponse, ok
from lms.schemas.kelas_schema import PublicKelas
from lms.security import ROLE_HOME, get_current_user, get_password_hash, start_session, verify_password
from lms.services.login_throttle import LoginThrottle, get_login_throttle
from lms.utils.time_utils import get_jakarta_time

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_CREDENTIALS = "Email atau password salah."

async def _ensure_email_free(db: AsyncSession, email: str):
    result = await db.execute(select(User.id).where(User.email == email))
    if result.first() is not None:
        raise ValidationError("Email sudah terdaftar")

@router.get("/kelas", response_model=ApiResponse[List[PublicKelas]])
async def list_kelas(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Kelas).order_by(Kelas.tingkat, Kelas.nama))
    return ok([PublicKelas.model_validate(k) for k in result.scalars().all()])

@router.post("/register", response_model=ApiResponse[UserSummary])
async def register(user_in: RegisterSiswa, db: AsyncSession = Depends(get_db)):
    email = str(user_in.email).lower().strip()
    await _ensure_email_free(db, email)

    if user_in.kelas_id is not None and not await db.get(Kelas, user_in.kelas_id):
        raise ValidationError("Kelas yang dipilih tidak valid")

    new_user = User(
        nama=user_in.nama,
        email=email,
        password_hash=get_password_hash(user_in.password),
        role=Role.SISWA.value,
        status=UserStatus.ACTIVE.value,
        login_count=0,
    )
    db.add(new_user)
    await db.flush()

    if user_in.kelas_id is not None:
        db.add(SiswaKelas(siswa_id=new_user.id, kelas_id=user_in.kelas_id))

    await db.commit()
    await db.refresh(new_user)
    logger.info(f"Registered siswa {new_user.id}")
    return ok(UserSummary.model_validate(new_user), "Registrasi berhasil. Silakan login.")

@router.post("/register-guru", response_model=ApiResponse[UserSummary])
async def register_guru(user_in: RegisterGuru, db: AsyncSession = Depends(get_db)):
    email = str(user_in.email).lower().strip()
    await _ensure_email_free(db, email)

    new_guru = User(
        nama=user_in.nama,
        email=email,
        password_hash=get_password_hash(user_in.password),
        role=Role.GURU.value,
        status=UserStatus.ACTIVE.value,
        bidang=user_in.bidang,
        login_count=0,
    )
    db.add(new_guru)
    await db.flush()

    # Unknown class ids are skipped
    if user_in.kelas_ids:
        result = await db.execute(select(Kelas.id).where(Kelas.id.in_(set(user_in.kelas_ids))))
        for kelas_id in sorted(result.scalars().all()):
            db.add(GuruKelas(guru_id=new_guru.id, kelas_id=kelas_id, mata_pelajaran=user_in.bidang))

    if user_in.wali_kelas_id is not None:
        kelas = await db.get(Kelas, user_in.wali_kelas_id)
        if kelas:
            kelas.wali_kelas_id = new_guru.id

    await db.commit()
    await db.refresh(new_guru)
    logger.info(f"Registered guru {new_guru.id}")
    return ok(UserSummary.model_validate(new_guru), "Registrasi guru berhasil. Silakan login.")

@router.post("/login", response_model=ApiResponse[LoginData])
async def login(
    request: Request,
    user_in: UserLogin,
    db: AsyncSession = Depends(get_db),
    throttle: LoginThrottle = Depends(get_login_throttle),
):
    email = str(user_in.email).lower().strip()
    key = throttle.key_for(email)
    throttle.check(key)

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    # Unknown email, inactive account and wrong password look the same to the caller
    if not user or not user.is_active or not verify_password(user_in.password, user.password_hash):
        throttle.record_failure(key)
        raise AuthenticationError(INVALID_CREDENTIALS)

    throttle.reset(key)
    now = get_jakarta_time()
    user.last_login = now
    user.last_activity = now
    user.login_count = (user.login_count or 0) + 1
    await db.commit()
    await db.refresh(user)

    start_session(request, user)
    return ok(
        LoginData(user=UserSummary.model_validate(user), redirect=ROLE_HOME[Role(user.role)]),
        "Login berhasil",
    )

@router.post("/logout", response_model=ApiResponse[None])
async def logout(request: Request):
    request.session.clear()
    return ok(message="Logout berhasil")

@router.get("/me", response_model=ApiResponse[UserSummary])
async def me(user: User = Depends(get_current_user)):
    return ok(UserSummary.model_validate(user))
