from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import List, Literal, Optional

from lms.schemas.auth_schema import check_password

def required_kelas_text(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Nama kelas, tingkat, dan wali kelas harus diisi")
    return v

class KelasCreate(BaseModel):
    nama: str = Field(..., min_length=1, max_length=50)
    tingkat: str = Field(..., min_length=1, max_length=10)
    wali_kelas_id: int

    @field_validator("nama", "tingkat")
    @classmethod
    def strip(cls, v: str) -> str:
        return required_kelas_text(v)

class KelasUpdate(BaseModel):
    nama: Optional[str] = Field(None, min_length=1, max_length=50)
    tingkat: Optional[str] = Field(None, min_length=1, max_length=10)
    wali_kelas_id: Optional[int] = None

    @field_validator("nama", "tingkat")
    @classmethod
    def strip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return required_kelas_text(v)

class GuruKelasCreate(BaseModel):
    guru_id: int
    mata_pelajaran: str = Field(..., min_length=1, max_length=100)

class SiswaKelasCreate(BaseModel):
    siswa_id: int

class GuruCreate(BaseModel):
    nama: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str
    bidang: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password(v)

class GuruStatusUpdate(BaseModel):
    status: Literal["active", "inactive"]

class KelasRef(BaseModel):
    id: int
    nama: str
    tingkat: str
    wali_kelas_id: Optional[int] = None
    wali_kelas: Optional[str] = None

class PersonRef(BaseModel):
    id: int
    nama: str
    email: str
    status: Optional[str] = None
    last_login: Optional[datetime] = None
    last_activity: Optional[datetime] = None

class GuruPengajar(BaseModel):
    id: int
    nama: str
    email: Optional[str] = None
    bidang: str
    mata_pelajaran: str

class GuruBrief(BaseModel):
    nama: str
    bidang: str

class KelasListItem(BaseModel):
    id: int
    nama: str
    tingkat: str
    wali_kelas: str
    wali_kelas_id: Optional[int]
    jumlah_siswa: int
    jumlah_guru: int
    guru_list: List[GuruBrief]
    created_at: Optional[datetime]

class GuruListItem(BaseModel):
    id: int
    nama: str
    email: str
    bidang: str
    kelas: str
    status: str
    last_login: Optional[datetime]
    login_count: int

class SiswaListItem(BaseModel):
    id: int
    nama: str
    email: str
    kelas: str
    status: str
    last_login: Optional[datetime]

class KelasRoster(BaseModel):
    kelas: KelasRef
    siswa: List[PersonRef]
    guru: List[GuruPengajar]

class PublicKelas(BaseModel):
    id: int
    nama: str
    tingkat: str

    class Config:
        from_attributes = True
