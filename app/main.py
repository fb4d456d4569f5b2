import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.db import init_schema
from app.errors import TournamentError
from app.routers import tournaments_admin, tournaments_public
from app.settings import CORS_ORIGINS, LOG_LEVEL, engine

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=LOG_LEVEL,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_schema(engine)
    logger.info("Esquema verificado (%s)", engine.dialect.name)
    yield


# ✅ UNA sola instancia
app = FastAPI(title="Torneos API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TournamentError)
async def tournament_error_handler(request: Request, exc: TournamentError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check():
    try:
        with engine.connect() as conn:
            res = conn.execute(text("SELECT CURRENT_TIMESTAMP AS now")).mappings().first()
        return {"db": "ok", "now": str(res["now"])}
    except SQLAlchemyError as e:
        logger.exception("db-check falló")
        return JSONResponse(status_code=500, content={"db": "error", "detail": str(e)})


app.include_router(tournaments_admin.router)
app.include_router(tournaments_public.router)
