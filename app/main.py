from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

# --- LECTURER ROUTES ---
from app.api.v1.lecturer import courses as lecturer_courses

# --- USER ROUTES ---
from app.api.v1.user import certificates, learning, quiz
from app.api.v1.user import course_enroll as course_enroll
from app.core.scheduler import scheduler, start_scheduler
from app.core.settings import settings

# --- MIDDLEWARE ---
from app.middleware.request_context import RequestContextMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):

    # ================================
    # 1) START APSCHEDULER
    # ================================
    if settings.PROGRESS_RESYNC_MINUTES > 0:
        start_scheduler()
        logger.info("⏱ Scheduler started")

    # App chạy
    try:
        yield
    finally:
        # ================================
        # 2) STOP SCHEDULER
        # ================================
        if scheduler.running:
            try:
                scheduler.shutdown(wait=False)
                logger.info("🛑 Scheduler stopped")
            except Exception as e:
                logger.warning(f"⚠ Scheduler shutdown error: {e}")


# ===== APP CONFIG =====
app = FastAPI(
    title="E-Learning Progress API",
    description="Tiến độ học tập, chấm quiz và cấp chứng chỉ",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "Retry-After", "X-Request-ID"],
)


app.add_middleware(RequestContextMiddleware)
prefix = "/api/v1"

# ===== REGISTER ROUTERS =====

# --- USER ROUTES ---
app.include_router(course_enroll.router, prefix=prefix)
app.include_router(learning.router, prefix=prefix)
app.include_router(quiz.router, prefix=prefix)
app.include_router(certificates.router, prefix=prefix)

# --- LECTURER ROUTES ---
app.include_router(lecturer_courses.router, prefix=prefix)


# ===== ROOT =====
@app.get("/")
async def hello_world():
    return {"message": "Hello world"}


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
