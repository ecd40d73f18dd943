import re
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import List, Optional

PASSWORD_RULE = "Password minimal 6 karakter dan harus mengandung huruf dan angka"

def check_password(value: str) -> str:
    if len(value) < 6 or not re.search(r"[A-Za-z]", value) or not re.search(r"\d", value):
        raise ValueError(PASSWORD_RULE)
    return value

class RegisterBase(BaseModel):
    nama: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str
    confirm_password: str

    @field_validator("nama")
    @classmethod
    def strip_nama(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Nama harus diisi")
        return v

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Password dan konfirmasi password tidak cocok")
        return self

class RegisterSiswa(RegisterBase):
    kelas_id: Optional[int] = None

class RegisterGuru(RegisterBase):
    bidang: str = Field(..., min_length=1, max_length=100)
    kelas_ids: List[int] = Field(default=[])
    wali_kelas_id: Optional[int] = None

    @field_validator("bidang")
    @classmethod
    def strip_bidang(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Bidang harus diisi")
        return v

class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

class UserSummary(BaseModel):
    id: int
    nama: str
    email: str
    role: str
    status: str
    bidang: Optional[str] = None
    last_login: Optional[datetime] = None
    login_count: int = 0

    class Config:
        from_attributes = True

class LoginData(BaseModel):
    user: UserSummary
    redirect: str
