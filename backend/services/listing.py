"""
ギャラリーの写真一覧

写真ごとにいいね状態・コメント・署名付き画像URLをまとめて返す。
写真数の多いギャラリーでは時間がかかるため、呼び出し側で
PHOTO_LIST_TIMEOUT_SECONDS のタイムアウトをかける。
"""

import asyncio
import logging
from collections import defaultdict
from functools import partial
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

import database
from config import PHOTO_LIST_TIMEOUT_SECONDS
from exceptions import GalleryTooLargeError
from models import Photo, PhotoLike, Comment
from utils.url_signature import create_signed_url

logger = logging.getLogger(__name__)


def serialize_comment(comment: Comment) -> Dict:
    return {
        "id": comment.id,
        "author": comment.commenter_name,
        "text": comment.text,
        "timestamp": comment.create_date.isoformat() if comment.create_date else None,
    }


def serialize_photo(photo: Photo, is_liked: bool = False, like_count: int = 0,
                    comments: Optional[List[Dict]] = None) -> Dict:
    return {
        "id": photo.id,
        "gallery_id": photo.gallery_id,
        "alt": photo.alt,
        "rating": photo.rating,
        "is_liked": is_liked,
        "like_count": like_count,
        "comments": comments or [],
        "src": create_signed_url(photo.id, "thumbnail"),
        "medium_src": create_signed_url(photo.id, "medium"),
        "original_src": create_signed_url(photo.id, "original"),
    }


def load_photos_with_data(db: Session, gallery_id: int) -> List[Dict]:
    photos = db.query(Photo).filter(
        Photo.gallery_id == gallery_id
    ).order_by(Photo.create_date.asc(), Photo.id.asc()).all()
    if not photos:
        return []

    photo_ids = [photo.id for photo in photos]

    # いいねの集計（多数決）
    votes = defaultdict(lambda: {True: 0, False: 0})
    for like in db.query(PhotoLike).filter(PhotoLike.photo_id.in_(photo_ids)).all():
        votes[like.photo_id][bool(like.is_liked)] += 1

    comments = defaultdict(list)
    for comment in db.query(Comment).filter(
        Comment.photo_id.in_(photo_ids)
    ).order_by(Comment.create_date.asc(), Comment.id.asc()).all():
        comments[comment.photo_id].append(serialize_comment(comment))

    result = []
    for photo in photos:
        vote = votes[photo.id]
        result.append(serialize_photo(
            photo,
            is_liked=vote[True] > vote[False],
            like_count=vote[True],
            comments=comments[photo.id],
        ))
    return result


def load_photos_in_own_session(gallery_id: int) -> List[Dict]:
    """
    ワーカースレッド用に専用のセッションを開いて写真一覧を取得する

    リクエストのセッションはタイムアウト後に閉じられるため、スレッドでは共有しない。
    """
    # テストで SessionLocal を差し替えられるよう、呼び出し時に解決する
    db = database.SessionLocal()
    try:
        return load_photos_with_data(db, gallery_id)
    finally:
        db.close()


async def list_with_timeout(gallery_id: int, timeout: float = None) -> List[Dict]:
    """
    タイムアウト付きで写真一覧を取得する

    Raises:
        GalleryTooLargeError: タイムアウトした場合（408）
    """
    timeout = PHOTO_LIST_TIMEOUT_SECONDS if timeout is None else timeout
    # タイムアウト時はスレッドの完了を待たずに打ち切る
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, partial(load_photos_in_own_session, gallery_id)),
            timeout=timeout
        )
    except asyncio.TimeoutError:
        logger.error(f"Photo listing timed out for gallery {gallery_id} after {timeout}s")
        raise GalleryTooLargeError()
