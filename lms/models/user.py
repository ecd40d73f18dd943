from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
import enum
from lms.database import Base
from lms.utils.time_utils import get_jakarta_time

class Role(str, enum.Enum):
    KEPSEK = "kepsek"
    GURU = "guru"
    SISWA = "siswa"

class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    nama = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False) # Always stored lower-case
    password_hash = Column(String(255), nullable=False)
    role = Column(String(10), nullable=False, index=True) # Role value
    status = Column(String(10), nullable=False, default=UserStatus.ACTIVE.value) # Use String for compatibility
    bidang = Column(String(100), nullable=True) # Mata pelajaran utama (guru)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=get_jakarta_time)
    last_login = Column(DateTime, nullable=True)
    login_count = Column(Integer, nullable=False, default=0)
    last_activity = Column(DateTime, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value
