"""
Error taxonomy for the API.

Every error is an ``HTTPException`` so FastAPI can raise it from any route or
dependency; ``lms.main`` renders it into the ``{success, error}`` envelope.
"""
from typing import Optional

from fastapi import HTTPException


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Data tidak valid"):
        super().__init__(status_code=400, detail=detail)


class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Silakan login terlebih dahulu"):
        super().__init__(status_code=401, detail=detail)


class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Akses ditolak"):
        super().__init__(status_code=403, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Data tidak ditemukan"):
        super().__init__(status_code=404, detail=detail)


class RateLimitError(HTTPException):
    def __init__(self, retry_after: int, detail: Optional[str] = None):
        self.retry_after = retry_after
        if detail is None:
            detail = f"Akun dikunci sementara. Coba lagi dalam {retry_after} detik."
        super().__init__(
            status_code=429,
            detail=detail,
            headers={"Retry-After": str(retry_after)},
        )
