
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .routers import admin, cap_table, companies, documents, signing
from .config import LOG_JSON, LOG_LEVEL
from .db import init_db
from .errors import EquityBoardError
from .logger import get_logger, setup_logging

logger = get_logger(__name__)

app = FastAPI(title="Equity board API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
def on_startup():
    setup_logging(LOG_LEVEL, use_json=LOG_JSON)
    init_db()

@app.exception_handler(EquityBoardError)
async def equityboard_error_handler(request: Request, exc: EquityBoardError):
    if exc.status_code >= 500:
        logger.error("dependency failure", path=request.url.path, error=exc.message, **exc.details)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__, **exc.details},
    )

app.include_router(companies.router, prefix="/api/companies", tags=["companies"])
app.include_router(documents.router, prefix="/api", tags=["documents"])
app.include_router(signing.router, prefix="/api/sign", tags=["signing"])
app.include_router(cap_table.router, prefix="/api", tags=["cap-table"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])

@app.get("/")
def root():
    return {"ok": True, "service": "equityboard-api"}
