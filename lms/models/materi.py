from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, UniqueConstraint
from lms.database import Base
from lms.utils.time_utils import get_jakarta_time

class Materi(Base):
    __tablename__ = "materi"

    id = Column(Integer, primary_key=True, index=True)
    judul = Column(String(200), nullable=False)
    deskripsi = Column(Text, nullable=True)
    konten = Column(Text, nullable=True)
    guru_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = Column(DateTime, default=get_jakarta_time)
    updated_at = Column(DateTime, default=get_jakarta_time, onupdate=get_jakarta_time)

class MateriKelas(Base):
    __tablename__ = "materi_kelas"
    __table_args__ = (UniqueConstraint("materi_id", "kelas_id", name="uq_materi_kelas"),)

    id = Column(Integer, primary_key=True, index=True)
    materi_id = Column(Integer, ForeignKey("materi.id", ondelete="CASCADE"), nullable=False, index=True)
    kelas_id = Column(Integer, ForeignKey("kelas.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=get_jakarta_time)

class SiswaMateri(Base):
    __tablename__ = "siswa_materi"
    __table_args__ = (UniqueConstraint("siswa_id", "materi_id", name="uq_siswa_materi"),)

    id = Column(Integer, primary_key=True, index=True)
    siswa_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    materi_id = Column(Integer, ForeignKey("materi.id", ondelete="CASCADE"), nullable=False, index=True)
    last_accessed = Column(DateTime, default=get_jakarta_time)
    is_completed = Column(Boolean, nullable=False, default=False)
