from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from database import get_db

router = APIRouter(tags=["health"])


@router.get("/api/health")
def health_check(db: Session = Depends(get_db)):
    result = db.execute(text("SELECT 1")).fetchone()
    if result:
        return {"status": "ok"}
    return {"status": "error", "message": "Database query failed"}
