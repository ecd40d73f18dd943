from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from lms.database import Base
from lms.utils.time_utils import get_jakarta_time

class Diskusi(Base):
    """Class-level discussion entry."""
    __tablename__ = "diskusi"

    id = Column(Integer, primary_key=True, index=True)
    kelas_id = Column(Integer, ForeignKey("kelas.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_role = Column(String(10), nullable=False)
    isi = Column(Text, nullable=False)
    created_at = Column(DateTime, default=get_jakarta_time)

class DiskusiMateri(Base):
    """Discussion under a materi; replies point at a top-level post via parent_id."""
    __tablename__ = "diskusi_materi"

    id = Column(Integer, primary_key=True, index=True)
    materi_id = Column(Integer, ForeignKey("materi.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_role = Column(String(10), nullable=False)
    isi = Column(Text, nullable=False)
    parent_id = Column(Integer, ForeignKey("diskusi_materi.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, default=get_jakarta_time)
