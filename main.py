import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from core.database import create_db_and_tables
from core.errors import register_error_handlers
from routes.activity import router as activity_router
from routes.catalog import router as catalog_router
from routes.classes import router as classes_router
from routes.enrollments import router as enrollments_router
from routes.payments import router as payments_router
from routes.sessions import router as sessions_router
from routes.students import router as students_router
from routes.webhooks import router as webhooks_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =========================================
# 🏁 Lifespan (DB initialization)
# =========================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    logger.info("✅ Database tables created on startup.")
    yield
    logger.info("✅ Application shutting down.")


# =========================================
#  ✅ FastAPI App
# =========================================
app = FastAPI(lifespan=lifespan, title="BoxFlow Engine", debug=settings.DEBUG)

allowed_origins = list(dict.fromkeys([settings.FRONTEND_URL, *settings.ALLOWED_ORIGINS]))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


# =========================================
# 📦 Routers
# =========================================
app.include_router(catalog_router)
app.include_router(classes_router)
app.include_router(enrollments_router)
app.include_router(sessions_router)
app.include_router(payments_router)
app.include_router(webhooks_router)
app.include_router(students_router)
app.include_router(activity_router)


# =========================================
# 🩺 Health Check
# =========================================
@app.get("/health")
def health_check():
    return {"status": "ok", "message": "Backend is running", "environment": settings.ENVIRONMENT}
