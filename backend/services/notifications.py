"""
通知

ギャラリーの所有者向けに、評価・いいね・コメント・ダウンロードの
アクティビティを記録する。

NotificationEmitter.submit() は FastAPI の BackgroundTasks に書き込みを
登録するだけで、レスポンス送信後に別セッションで実行される。
書き込みの失敗はここでログに残して握りつぶし、呼び出し元の操作には
一切影響させない。
"""

import logging
from typing import Callable, List, Optional, Sequence

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

import database
from config import NOTIFICATION_LIMIT
from models import Notification

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "Someone"
ANONYMOUS_ACTOR = "Anonymous visitor"


class NotificationEmitter:
    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory

    def _open_session(self) -> Session:
        # テストで SessionLocal を差し替えられるよう、呼び出し時に解決する
        factory = self._session_factory or database.SessionLocal
        return factory()

    def emit(self, user_id: int, gallery_id: Optional[int], photo_id: Optional[int],
             type: str, message: str, actor_name: Optional[str] = None) -> None:
        """
        通知を1件書き込む

        どんな例外もログに残すだけで送出しない。
        """
        db = None
        try:
            db = self._open_session()
            db.add(Notification(
                user_id=user_id,
                gallery_id=gallery_id,
                photo_id=photo_id,
                type=type,
                message=message,
                actor_name=actor_name,
            ))
            db.commit()
            logger.info(f"Notification created: User={user_id}, Type={type}, Photo={photo_id}")
        except Exception as e:
            logger.error(f"Failed to create notification for user {user_id}: {e}")
            if db is not None:
                try:
                    db.rollback()
                except Exception as rollback_error:
                    logger.error(f"Failed to rollback notification session: {rollback_error}")
        finally:
            if db is not None:
                db.close()

    def submit(self, background_tasks: Optional[BackgroundTasks], **kwargs) -> None:
        """通知の書き込みをバックグラウンドタスクとして登録する"""
        if background_tasks is None:
            self.emit(**kwargs)
            return
        background_tasks.add_task(self.emit, **kwargs)


def get_notification_emitter() -> NotificationEmitter:
    return NotificationEmitter()


def list_for_user(db: Session, user_id: int, limit: int = NOTIFICATION_LIMIT) -> List[Notification]:
    return db.query(Notification).filter(
        Notification.user_id == user_id
    ).order_by(
        Notification.create_date.desc(),
        Notification.id.desc()
    ).limit(limit).all()


def _stars(rating: int) -> str:
    return f"{rating} star" if rating == 1 else f"{rating} stars"


def rating_message(actor: Optional[str], photo_alt: str, gallery_name: str, rating: int,
                   requested_ids: Sequence[int] = ()) -> str:
    """
    評価通知のメッセージを作る

    複数枚のバッチ評価では先頭の写真名に「and N others」を付ける。
    N はリクエストされたID数から1を引いた値。
    """
    who = actor or DEFAULT_ACTOR
    if len(requested_ids) > 1:
        others = len(requested_ids) - 1
        return (f'{who} rated photo "{photo_alt}" and {others} others '
                f'in gallery "{gallery_name}" with {_stars(rating)}')
    return f'{who} rated photo "{photo_alt}" in gallery "{gallery_name}" with {_stars(rating)}'


def like_message(actor: Optional[str], photo_alt: str, gallery_name: str, is_liked: bool) -> str:
    who = actor or DEFAULT_ACTOR
    verb = "liked" if is_liked else "unliked"
    return f'{who} {verb} photo "{photo_alt}" in gallery "{gallery_name}"'


def comment_message(actor: Optional[str], photo_alt: str, gallery_name: str) -> str:
    who = actor or DEFAULT_ACTOR
    return f'{who} commented on photo "{photo_alt}" in gallery "{gallery_name}"'


def download_message(actor: Optional[str], count: int, gallery_name: str) -> str:
    who = actor or DEFAULT_ACTOR
    noun = "photo" if count == 1 else "photos"
    return f'{who} downloaded {count} {noun} from gallery "{gallery_name}"'
