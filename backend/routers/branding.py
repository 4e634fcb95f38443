from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import BrandingSettings, User, ROLE_ADMIN, DEFAULT_COMPANY_NAME
from schemas import BrandingRequest, BrandingResponse
from dependencies import get_current_user

router = APIRouter(prefix="/api", tags=["branding"])
logger = logging.getLogger(__name__)


def _current_settings(db: Session):
    return db.query(BrandingSettings).order_by(BrandingSettings.id.asc()).first()


@router.get("/branding", response_model=BrandingResponse)
def get_branding(db: Session = Depends(get_db)):
    """ブランディング設定取得API（ログイン不要、未設定の場合は既定の名前）"""
    settings = _current_settings(db)
    if settings is None:
        return BrandingResponse(company_name=DEFAULT_COMPANY_NAME)
    return BrandingResponse(company_name=settings.company_name)


@router.post("/branding", response_model=BrandingResponse)
def update_branding(
    request: BrandingRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    ブランディング設定更新API

    設定は1行だけ保持し、なければ作成する。

    Raises:
        HTTPException:
            - 403: Admin 以外
            - 500: データベースエラー
    """
    if current_user.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Insufficient permissions. Admin access required.")

    settings = _current_settings(db)
    try:
        if settings is None:
            settings = BrandingSettings(company_name=request.company_name)
            db.add(settings)
        else:
            settings.company_name = request.company_name
        db.commit()
        db.refresh(settings)
    except Exception as e:
        logger.error(f"Failed to update branding: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to update branding")

    logger.info(f"Branding updated: Company={settings.company_name}, By={current_user.id}")
    return BrandingResponse(company_name=settings.company_name)
