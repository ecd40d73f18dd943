import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from lms.config import Config
from lms.database import init_db, SessionLocal
from lms.routes import auth, kepsek, guru, siswa

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SERVER_ERROR = "Terjadi kesalahan server"

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Init DB
    await init_db()
    if Config.SEED_DEMO_DATA:
        from lms.seed import seed_demo_data
        async with SessionLocal() as db:
            await seed_demo_data(db)
    logger.info("LMS backend started")
    yield

app = FastAPI(title="LMS Sekolah Backend", lifespan=lifespan)

origins = [
    Config.FRONTEND_URL,
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

def _envelope(status_code: int, error: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error}, headers=headers)

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _envelope(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Data tidak valid") if errors else "Data tidak valid"
    # pydantic prefixes messages raised from validators
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return _envelope(400, message)

# Global Exception Handler to ensure CORS headers are present even on 500 errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    response = _envelope(500, SERVER_ERROR)
    origin = request.headers.get("origin")
    if origin in origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response

# 1. Proxy & Session Middleware
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

app.add_middleware(
    SessionMiddleware,
    secret_key=Config.SECRET_KEY,
    max_age=Config.SESSION_MAX_AGE,
    https_only=Config.ENV == "PRODUCTION",
    same_site="lax",
    domain=Config.SESSION_COOKIE_DOMAIN
)

# 2. CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True, # Allow Cookies
    allow_methods=["*"],
    allow_headers=["*"],
)

# 3. Routes
app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(kepsek.router, prefix="/kepsek", tags=["Kepsek"])
app.include_router(guru.router, prefix="/guru", tags=["Guru"])
app.include_router(siswa.router, prefix="/siswa", tags=["Siswa"])

@app.get("/")
def root():
    return {"success": True, "message": "LMS Sekolah Backend Online"}
