from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from typing import Optional

MIN_ISI = 5

def check_isi(v: str) -> str:
    v = v.strip()
    if len(v) < MIN_ISI:
        raise ValueError("Isi diskusi terlalu pendek")
    return v

class DiskusiCreate(BaseModel):
    kelas_id: int
    isi: str = Field(..., max_length=5000)

    @field_validator("isi")
    @classmethod
    def isi_length(cls, v: str) -> str:
        return check_isi(v)

class DiskusiMateriCreate(BaseModel):
    materi_id: int
    isi: str = Field(..., max_length=5000)
    parent_id: Optional[int] = None

    @field_validator("isi")
    @classmethod
    def isi_length(cls, v: str) -> str:
        return check_isi(v)

class ReplyRequest(BaseModel):
    reply: str = Field(..., max_length=5000)

    @field_validator("reply")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Balasan tidak boleh kosong")
        return v

class DiskusiItem(BaseModel):
    id: int
    kelas_id: int
    kelas: str
    isi: str
    user_name: str
    user_role: str
    created_at: Optional[datetime]

class DiskusiMateriItem(BaseModel):
    id: int
    materi_id: int
    materi_judul: str
    kelas: Optional[str] = None
    user_id: int
    user_name: str
    user_role: str
    isi: str
    parent_id: Optional[int] = None
    created_at: Optional[datetime]
