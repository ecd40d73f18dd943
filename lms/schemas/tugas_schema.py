from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from lms.utils.time_utils import to_jakarta_naive

class TugasCreate(BaseModel):
    judul: str = Field(..., min_length=1, max_length=200)
    deskripsi: Optional[str] = ""
    materi_id: int
    deadline: datetime

    @field_validator("judul")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Judul, materi, dan deadline harus diisi")
        return v

    @field_validator("deadline")
    @classmethod
    def wib(cls, v: datetime) -> datetime:
        return to_jakarta_naive(v)

class TugasUpdate(BaseModel):
    judul: Optional[str] = Field(None, min_length=1, max_length=200)
    deskripsi: Optional[str] = None
    deadline: Optional[datetime] = None

    @field_validator("deadline")
    @classmethod
    def wib(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_jakarta_naive(v) if v is not None else v

class SubmitRequest(BaseModel):
    jawaban: str

    @field_validator("jawaban")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Jawaban tidak boleh kosong")
        return v

class GradeRequest(BaseModel):
    nilai: int
    feedback: Optional[str] = ""

    @field_validator("nilai")
    @classmethod
    def in_range(cls, v: int) -> int:
        if v < 0 or v > 100:
            raise ValueError("Nilai harus antara 0-100")
        return v

class TugasRef(BaseModel):
    id: int
    judul: str
    materi_id: int
    deadline: datetime

    class Config:
        from_attributes = True

class TugasGuruItem(BaseModel):
    id: int
    judul: str
    deskripsi: Optional[str]
    materi_id: int
    materi_judul: str
    deadline: datetime
    kelas: str
    submissions_count: int
    graded_count: int
    created_at: Optional[datetime]

class TugasSiswaItem(BaseModel):
    id: int
    judul: str
    deskripsi: Optional[str]
    materi_id: int
    materi_judul: str
    kelas: str
    deadline: datetime
    created_at: Optional[datetime]
    status: str
    nilai: Optional[int] = None
    feedback: Optional[str] = None
    jawaban: Optional[str] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None

class SubmissionRow(BaseModel):
    siswa_id: int
    siswa_nama: str
    siswa_email: str
    submission_id: Optional[int] = None
    jawaban: Optional[str] = None
    nilai: Optional[int] = None
    feedback: Optional[str] = None
    status: str
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None

class TugasHeader(BaseModel):
    id: int
    judul: str
    deskripsi: Optional[str]
    deadline: datetime
    kelas: str

class TugasSubmissions(BaseModel):
    tugas: TugasHeader
    submissions: List[SubmissionRow]

class QueuedSubmission(BaseModel):
    id: int
    siswa_id: int
    siswa_nama: str
    tugas_id: int
    tugas_judul: str
    jawaban: Optional[str] = None
    nilai: Optional[int] = None
    feedback: Optional[str] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None

class NilaiItem(BaseModel):
    id: int
    tugas_id: int
    tugas_judul: str
    materi_judul: str
    kelas: str
    nilai: int
    feedback: Optional[str]
    jawaban: Optional[str]
    submitted_at: Optional[datetime]
    graded_at: Optional[datetime]

class SiswaTugasItem(BaseModel):
    id: int
    tugas: str
    materi: str
    kelas: str
    status: str
    nilai: Optional[int]
    feedback: Optional[str]
    submitted_at: Optional[datetime]
    graded_at: Optional[datetime]
