from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
)
import enum
from lms.database import Base
from lms.utils.time_utils import get_jakarta_time

class SubmissionStatus(str, enum.Enum):
    BELUM_DIKERJAKAN = "belum_dikerjakan"
    DIKERJAKAN = "dikerjakan"
    SELESAI = "selesai"

# Statuses that count a tugas as worked on by the siswa
DONE_STATUSES = (SubmissionStatus.DIKERJAKAN.value, SubmissionStatus.SELESAI.value)

class Tugas(Base):
    __tablename__ = "tugas"

    id = Column(Integer, primary_key=True, index=True)
    judul = Column(String(200), nullable=False)
    deskripsi = Column(Text, nullable=True)
    materi_id = Column(Integer, ForeignKey("materi.id", ondelete="CASCADE"), nullable=False, index=True)
    guru_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    deadline = Column(DateTime, nullable=False)

    created_at = Column(DateTime, default=get_jakarta_time)
    updated_at = Column(DateTime, default=get_jakarta_time, onupdate=get_jakarta_time)

class SiswaTugas(Base):
    __tablename__ = "siswa_tugas"
    __table_args__ = (
        UniqueConstraint("siswa_id", "tugas_id", name="uq_siswa_tugas"),
        CheckConstraint("nilai IS NULL OR (nilai >= 0 AND nilai <= 100)", name="ck_siswa_tugas_nilai"),
    )

    id = Column(Integer, primary_key=True, index=True)
    siswa_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tugas_id = Column(Integer, ForeignKey("tugas.id", ondelete="CASCADE"), nullable=False, index=True)
    jawaban = Column(Text, nullable=True)
    nilai = Column(Integer, nullable=True) # Only meaningful once status == selesai
    feedback = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=SubmissionStatus.BELUM_DIKERJAKAN.value)

    submitted_at = Column(DateTime, nullable=True)
    graded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=get_jakarta_time)
