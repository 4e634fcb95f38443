from fastapi import FastAPI
from fastapi.security import HTTPBearer
from database import Base, engine
from config import LOG_LEVEL, LOG_JSON
from config.logging_utils import configure_logging
from routers import health, auth, users, galleries, photos, comments, notifications, public, files, branding

configure_logging(LOG_LEVEL, LOG_JSON)

app = FastAPI(
    title="Gallery Album API",
    description="Gallery Album Backend API",
    version="1.0.0"
)

# Swagger UI用のセキュリティスキーム設定
security = HTTPBearer()

Base.metadata.create_all(bind=engine)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(galleries.router)
app.include_router(photos.router)
app.include_router(comments.router)
app.include_router(notifications.router)
app.include_router(public.router)
app.include_router(files.router)
app.include_router(branding.router)
