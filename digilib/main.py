import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from digilib.core.config import settings
from digilib.core.database import init_db
from digilib.core.errors import LibraryError
from digilib.api import loans, routes

logging.basicConfig(level=settings.log_level,
                    format="%(asctime)s %(levelname)s %(name)s - %(message)s")
logger = logging.getLogger("digilib")

init_db()
app = FastAPI(title="Digital Library Management System")
app.add_middleware(SessionMiddleware, secret_key=settings.secret_key,
                   session_cookie=settings.session_cookie, same_site="lax")
app.include_router(routes.router)
app.include_router(loans.router)


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health():
    return {"status": "ok", "time": datetime.utcnow().isoformat()}
