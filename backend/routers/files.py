from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from typing import Optional
import logging

from database import get_db
from models import Photo
from config.storage import get_storage_config, StorageConfig
from utils.url_signature import verify_url_signature, get_signature_info, FILE_KINDS

router = APIRouter(prefix="/api", tags=["files"])
logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.heic': 'image/heic',
    '.heif': 'image/heif',
}


@router.get("/files/{kind}/{photo_id}")
def get_photo_file(
    kind: str,
    photo_id: int,
    signature: Optional[str] = Query(None),
    expires: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    storage_config: StorageConfig = Depends(get_storage_config)
):
    """
    画像配信API

    署名付きURLによる安全な画像配信。
    有効な署名と期限内のリクエストのみアクセス可能。

    Args:
        kind: 画像の種類（thumbnail / medium / original）
        photo_id: 写真ID
        signature: URL署名（HMAC-SHA256）
        expires: 有効期限（UNIX時間）

    Raises:
        HTTPException:
            - 403: 署名が無効または期限切れ
            - 404: 写真またはファイルが見つからない
    """
    if kind not in FILE_KINDS:
        raise HTTPException(status_code=404, detail="Unknown file kind")

    sig, exp = get_signature_info(signature, expires)
    if not sig or not exp:
        raise HTTPException(status_code=403, detail="Missing or invalid signature parameters")

    if not verify_url_signature(photo_id, kind, sig, exp):
        raise HTTPException(status_code=403, detail="Invalid or expired signature")

    photo = db.query(Photo).filter(Photo.id == photo_id).first()
    if not photo:
        raise HTTPException(status_code=404, detail="Photo not found")

    relative_path = {
        "thumbnail": photo.thumbnail_path,
        "medium": photo.medium_path,
        "original": photo.file_path,
    }[kind]
    if not relative_path:
        raise HTTPException(status_code=404, detail="File not found")

    try:
        file_path = storage_config.resolve(relative_path)
    except ValueError as e:
        logger.error(f"Invalid file path for photo {photo_id}: {e}")
        raise HTTPException(status_code=404, detail="File not found")

    if not file_path.exists():
        logger.error(f"File not found: {file_path}")
        raise HTTPException(status_code=404, detail="File not found")

    # 派生画像は長期キャッシュ、オリジナルは短めにする
    cache_control = "private, max-age=3600" if kind == "original" else "public, max-age=86400"
    return FileResponse(
        path=str(file_path),
        media_type=MEDIA_TYPES.get(file_path.suffix.lower(), "application/octet-stream"),
        headers={"Cache-Control": cache_control}
    )
