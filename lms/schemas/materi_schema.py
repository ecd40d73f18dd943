from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

from lms.schemas.kelas_schema import KelasRef

class MateriCreate(BaseModel):
    judul: str = Field(..., min_length=1, max_length=200)
    deskripsi: Optional[str] = ""
    konten: str = Field(..., min_length=1)
    kelas_ids: List[int] = Field(..., min_length=1)

    @field_validator("judul", "konten")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Judul, konten, dan minimal satu kelas harus diisi")
        return v

class MateriUpdate(BaseModel):
    judul: str = Field(..., min_length=1, max_length=200)
    deskripsi: Optional[str] = ""
    konten: str = Field(..., min_length=1)
    kelas_ids: Optional[List[int]] = None # None keeps the current class links

    @field_validator("judul", "konten")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Judul dan konten materi harus diisi")
        return v

class MateriGuruItem(BaseModel):
    id: int
    judul: str
    deskripsi: str
    kelas: str
    kelas_ids: List[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

class MateriSiswaItem(BaseModel):
    id: int
    judul: str
    deskripsi: str
    konten: str
    konten_preview: str
    guru_nama: str
    kelas: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    last_accessed: Optional[datetime] = None
    is_completed: bool = False
    progress: int = 0

class MateriDetail(BaseModel):
    id: int
    judul: str
    deskripsi: str
    konten: str
    guru_nama: str
    kelas: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

class MateriKepsekItem(BaseModel):
    id: int
    judul: str
    deskripsi: Optional[str]
    guru: str
    kelas: str
    created_at: Optional[datetime]

class MateriRef(BaseModel):
    id: int
    judul: str
    guru_id: int

    class Config:
        from_attributes = True

class MateriKelasOut(BaseModel):
    materi: MateriRef
    assigned_kelas: List[KelasRef]
