"""
公開ギャラリーAPI

ログインしていない訪問者がギャラリーを閲覧するためのエンドポイント。
サブギャラリーはルートギャラリーのパスワードを継承する。
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
import logging

from database import get_db
from schemas import PublicGalleryRequest
from exceptions import NotFoundError, PasswordRequiredError, WrongPasswordError
from services.access import AccessResolver
from services import listing
from routers.galleries import gallery_response

router = APIRouter(prefix="/api", tags=["public"])
logger = logging.getLogger(__name__)


async def _public_gallery(db: Session, gallery_id: int, password: Optional[str]):
    resolver = AccessResolver(db)
    gallery = resolver.hierarchy.get(gallery_id)
    if gallery is None:
        raise NotFoundError("Gallery not found")

    if resolver.effective_password(gallery) is not None:
        if not password:
            raise PasswordRequiredError()
        if not resolver.password_matches(gallery, password):
            logger.info(f"Wrong password for public gallery {gallery_id}")
            raise WrongPasswordError()

    photos = await listing.list_with_timeout(gallery.id)
    return {"gallery": gallery_response(gallery), "photos": photos}


@router.get("/gallery/{gallery_id}/public")
async def get_public_gallery(gallery_id: int, db: Session = Depends(get_db)):
    """パスワードのないギャラリーのみ閲覧できる（保護されている場合は403）"""
    return await _public_gallery(db, gallery_id, None)


@router.post("/gallery/{gallery_id}/public")
async def post_public_gallery(
    gallery_id: int,
    request: Optional[PublicGalleryRequest] = None,
    db: Session = Depends(get_db)
):
    """
    公開ギャラリー閲覧API（パスワード付き）

    Raises:
        HTTPException:
            - 401: パスワードが間違っている
            - 403: 保護されたギャラリーでパスワードが未指定
            - 404: ギャラリーが存在しない
    """
    password = request.password if request is not None else None
    return await _public_gallery(db, gallery_id, password)
