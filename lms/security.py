import logging
import time

from fastapi import Depends, Request
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from lms.config import Config
from lms.database import get_db
from lms.errors import AuthenticationError, AuthorizationError
from lms.models.user import User, Role

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt_sha256", "bcrypt"], deprecated="auto")

# Landing page per persona after login
ROLE_HOME = {
    Role.KEPSEK: "/kepsek/dashboard",
    Role.GURU: "/guru/dashboard",
    Role.SISWA: "/siswa/dashboard",
}

def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)

def start_session(request: Request, user: User):
    request.session.clear()
    request.session["user_id"] = user.id
    request.session["role"] = user.role
    request.session["issued_at"] = int(time.time())

async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    """
    Resolves the session cookie into an active user.

    The session must carry user id, role and issue time, must not be older
    than ``SESSION_MAX_AGE``, and the stored role must still match the user's
    current role. Any failure clears the session and answers 401.
    """
    user_id = request.session.get("user_id")
    role = request.session.get("role")
    issued_at = request.session.get("issued_at")
    if not user_id or not role or issued_at is None:
        raise AuthenticationError()

    if time.time() - issued_at > Config.SESSION_MAX_AGE:
        request.session.clear()
        raise AuthenticationError("Sesi telah berakhir, silakan login kembali")

    user = await db.get(User, user_id)
    if not user or not user.is_active or user.role != role:
        logger.info(f"Rejected stale session for user {user_id}")
        request.session.clear()
        raise AuthenticationError()
    return user

def require_role(role: Role):
    async def dependency(user: User = Depends(get_current_user)) -> User:
        if Role(user.role) is not role:
            raise AuthorizationError()
        return user
    return dependency

require_kepsek = require_role(Role.KEPSEK)
require_guru = require_role(Role.GURU)
require_siswa = require_role(Role.SISWA)
