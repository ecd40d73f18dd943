from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from lms.database import Base
from lms.utils.time_utils import get_jakarta_time

class Kelas(Base):
    __tablename__ = "kelas"

    id = Column(Integer, primary_key=True, index=True)
    nama = Column(String(50), nullable=False)
    tingkat = Column(String(10), nullable=False)
    # A guru cannot be removed while still wali kelas
    wali_kelas_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at = Column(DateTime, default=get_jakarta_time)

class SiswaKelas(Base):
    __tablename__ = "siswa_kelas"
    __table_args__ = (UniqueConstraint("siswa_id", "kelas_id", name="uq_siswa_kelas"),)

    id = Column(Integer, primary_key=True, index=True)
    siswa_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    kelas_id = Column(Integer, ForeignKey("kelas.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=get_jakarta_time)

class GuruKelas(Base):
    __tablename__ = "guru_kelas"
    __table_args__ = (
        UniqueConstraint("guru_id", "kelas_id", "mata_pelajaran", name="uq_guru_kelas_mapel"),
    )

    id = Column(Integer, primary_key=True, index=True)
    guru_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    kelas_id = Column(Integer, ForeignKey("kelas.id", ondelete="CASCADE"), nullable=False, index=True)
    mata_pelajaran = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=get_jakarta_time)
