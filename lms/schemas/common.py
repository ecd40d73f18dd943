from pydantic import BaseModel
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[str] = None

class CreatedRef(BaseModel):
    id: int
    judul: Optional[str] = None
    nama: Optional[str] = None

def ok(data=None, message: Optional[str] = None) -> ApiResponse:
    return ApiResponse(success=True, data=data, message=message)
