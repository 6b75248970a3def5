import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from attendanceiq.config import (
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_ORIGINS,
    LOG_LEVEL,
)
from attendanceiq.routers import admin, assistant, attendance, auth, core, reports
from database.db import create_tables

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="AttendanceIQ API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)


# -----------------------------
# Startup
# -----------------------------
@app.on_event("startup")
def _startup():
    create_tables()
    logger.info("Database schema ready")


app.include_router(core.router)
app.include_router(auth.router)
app.include_router(attendance.router)
app.include_router(reports.router)
app.include_router(admin.router)
app.include_router(assistant.router)
