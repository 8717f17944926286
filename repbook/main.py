from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import init_db
from .deps import get_auth_client, get_registry
from .errors import AuthError, DuplicateExerciseError, StoreError, ValidationError
from .routers.auth import router as auth_router
from .routers.data import router as data_router

app = FastAPI(title="Repbook")

app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(data_router, prefix="/api", tags=["data"])


@app.exception_handler(DuplicateExerciseError)
async def duplicate_handler(request: Request, exc: DuplicateExerciseError):
    return JSONResponse(status_code=409, content={"detail": exc.message, "field": exc.field})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": exc.message, "field": exc.field})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if isinstance(exc, AuthError) and exc.status is not None and exc.status < 500:
        status = exc.status
    elif exc.status in (401, 403):
        status = 401
    else:
        status = 502
    return JSONResponse(status_code=status, content={"detail": exc.message, "code": exc.code})


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.on_event("startup")
async def on_startup() -> None:
    await init_db()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await get_registry().close_all()
    await get_auth_client().close()
