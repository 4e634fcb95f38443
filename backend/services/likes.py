"""
いいね状態

photo_likes は追記型の行として保存し、現在の状態は多数決で求める:
    is_liked = count(is_liked=true) > count(is_liked=false)

トグル操作はその写真の既存行をすべて削除してから1行だけ挿入するため、
トグル後は常に1写真あたり1行以下になる。
"""

import logging
from typing import Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import PhotoLike

logger = logging.getLogger(__name__)


def add_like(db: Session, photo_id: int, is_liked: bool) -> PhotoLike:
    """いいね行を1行追記する"""
    like = PhotoLike(photo_id=photo_id, is_liked=is_liked)
    db.add(like)
    db.commit()
    db.refresh(like)
    return like


def toggle_like(db: Session, photo_id: int, is_liked: bool) -> PhotoLike:
    """既存行を削除してから新しい行を1行挿入する"""
    try:
        db.query(PhotoLike).filter(PhotoLike.photo_id == photo_id).delete(synchronize_session=False)
        like = PhotoLike(photo_id=photo_id, is_liked=is_liked)
        db.add(like)
        db.commit()
    except Exception as e:
        logger.error(f"Failed to toggle like for photo {photo_id}: {e}")
        db.rollback()
        raise

    db.refresh(like)
    logger.info(f"Like toggled: Photo={photo_id}, Liked={is_liked}")
    return like


def like_status(db: Session, photo_id: int) -> Dict:
    rows = db.query(PhotoLike.is_liked, func.count(PhotoLike.id)).filter(
        PhotoLike.photo_id == photo_id
    ).group_by(PhotoLike.is_liked).all()

    counts = {bool(is_liked): count for is_liked, count in rows}
    like_count = counts.get(True, 0)
    dislike_count = counts.get(False, 0)

    return {
        "is_liked": like_count > dislike_count,
        "like_count": like_count,
        "dislike_count": dislike_count,
    }
