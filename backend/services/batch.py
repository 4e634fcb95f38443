"""
写真のバッチ操作（評価の一括設定・一括削除）

全体を1つのトランザクションにはせず、IDごとに順番にコミットする。
途中で失敗しても、それ以前の更新は確定したまま残る。
個別の失敗は例外ではなく結果データ（errors）として返す。
"""

import logging
from typing import Dict, List, Optional, Sequence

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from exceptions import ValidationError, ForbiddenError
from models import Gallery, Photo
from services.access import AccessResolver, Principal
from services.hierarchy import CascadeDeleter
from services.notifications import NotificationEmitter, rating_message

logger = logging.getLogger(__name__)

MIN_RATING = 0
MAX_RATING = 5


def validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be an integer between 0 and 5")
    if rating < MIN_RATING or rating > MAX_RATING:
        raise ValidationError("Rating must be between 0 and 5")
    return rating


def normalize_ids(photo_ids: Optional[Sequence[int]]) -> List[int]:
    """重複を除いたID一覧（順序は保持）。空の場合はValidationError"""
    if not photo_ids:
        raise ValidationError("photo_ids must be a non-empty list")
    seen = set()
    ordered = []
    for photo_id in photo_ids:
        if photo_id in seen:
            continue
        seen.add(photo_id)
        ordered.append(photo_id)
    return ordered


class BatchMutationCoordinator:
    def __init__(self, db: Session, resolver: AccessResolver, deleter: CascadeDeleter,
                 emitter: NotificationEmitter, background_tasks: Optional[BackgroundTasks] = None):
        self.db = db
        self.resolver = resolver
        self.deleter = deleter
        self.emitter = emitter
        self.background_tasks = background_tasks

    def set_rating(self, principal: Principal, photo_ids: Sequence[int], rating,
                   actor_name: Optional[str] = None) -> Dict:
        """
        複数の写真に同じ評価を設定する

        存在しない・読み取れない写真は黙ってスキップし、レスポンスの
        photos には含めない。更新に失敗しても残っている写真は、
        保存されている評価のまま photos に含める。

        Returns:
            dict: {"success": True, "message": str, "photos": [{"id", "rating"}]}
        """
        rating = validate_rating(rating)
        requested = normalize_ids(photo_ids)

        readable_ids: List[int] = []
        updated = 0
        first_photo: Optional[Dict] = None
        for photo_id in requested:
            photo = self.resolver.find_readable_photo(principal, photo_id)
            if photo is None:
                logger.info(f"Batch rating skipped missing photo {photo_id}")
                continue
            # コミット後は属性が失効するため先に控えておく
            snapshot = {"id": photo.id, "alt": photo.alt, "gallery_id": photo.gallery_id}
            readable_ids.append(snapshot["id"])
            try:
                photo.rating = rating
                self.db.commit()
            except Exception as e:
                logger.error(f"Batch rating failed for photo {photo_id}: {e}")
                self.db.rollback()
                continue
            updated += 1
            if first_photo is None:
                first_photo = snapshot

        # 処理後にまだ存在する写真を、保存されている評価とともに返す
        photos = []
        if readable_ids:
            rows = self.db.query(Photo.id, Photo.rating).filter(Photo.id.in_(readable_ids)).all()
            ratings = {row.id: row.rating for row in rows}
            photos = [{"id": pid, "rating": ratings[pid]} for pid in readable_ids if pid in ratings]

        if first_photo is not None:
            self._notify_rating(principal, first_photo, rating, requested, actor_name)

        logger.info(f"Batch rating applied: Requested={len(requested)}, Updated={updated}, Rating={rating}")
        return {
            "success": True,
            "message": f"Updated rating for {updated} photo(s)",
            "photos": photos,
        }

    def batch_delete(self, principal: Principal, photo_ids: Sequence[int]) -> Dict:
        """
        複数の写真を削除する

        存在しない写真は削除済みとして成功扱いにする。

        Returns:
            dict: {"deleted": [ids], "errors": [{"photo_id", "error"}],
                   "success": int, "failed": int}
        """
        if not principal.has_write_role:
            raise ForbiddenError("Creator or Admin role required")
        requested = normalize_ids(photo_ids)

        deleted: List[int] = []
        errors: List[Dict] = []
        for photo_id in requested:
            try:
                photo = self.resolver.find_readable_photo(principal, photo_id)
                if photo is None:
                    deleted.append(photo_id)
                    continue
                self.deleter.delete_photo(photo)
                deleted.append(photo_id)
            except Exception as e:
                logger.error(f"Batch delete failed for photo {photo_id}: {e}")
                self.db.rollback()
                errors.append({"photo_id": photo_id, "error": str(e)})

        logger.info(f"Batch delete finished: Deleted={len(deleted)}, Failed={len(errors)}")
        return {
            "deleted": deleted,
            "errors": errors,
            "success": len(deleted),
            "failed": len(errors),
        }

    def _notify_rating(self, principal: Principal, photo: Dict, rating: int,
                       requested: Sequence[int], actor_name: Optional[str]):
        try:
            gallery = self.db.query(Gallery).filter(Gallery.id == photo["gallery_id"]).first()
            if gallery is None:
                return
            actor = actor_name or principal.name
            message = rating_message(actor, photo["alt"], gallery.name, rating, requested)
            self.emitter.submit(
                self.background_tasks,
                user_id=gallery.owner_id,
                gallery_id=gallery.id,
                photo_id=photo["id"],
                type="rating",
                message=message,
                actor_name=actor,
            )
        except Exception as e:
            logger.error(f"Failed to submit rating notification: {e}")
