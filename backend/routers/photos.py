from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from collections import OrderedDict
from io import BytesIO
import logging
import zipfile

from database import get_db
from models import Gallery
from schemas import (
    BatchRatingRequest, BatchRatingResponse, BatchDeleteRequest, BatchDeleteResponse,
    DownloadRequest, RatingRequest, RatingResponse, LikeRequest, LikeResponse,
)
from dependencies import get_principal, get_authenticated_principal
from exceptions import NotFoundError
from config.storage import get_storage_config, StorageConfig
from services.access import AccessResolver, Principal
from services.batch import BatchMutationCoordinator, normalize_ids
from services.hierarchy import CascadeDeleter
from services.likes import toggle_like, like_status
from services.notifications import (
    NotificationEmitter, get_notification_emitter, like_message, download_message, ANONYMOUS_ACTOR,
)

router = APIRouter(prefix="/api", tags=["photos"])
logger = logging.getLogger(__name__)


def _actor(principal: Principal, user_name: str = None) -> str:
    if user_name and user_name.strip():
        return user_name.strip()
    return principal.name or ANONYMOUS_ACTOR


def _coordinator(db: Session, storage_config: StorageConfig, emitter: NotificationEmitter,
                 background_tasks: BackgroundTasks) -> BatchMutationCoordinator:
    return BatchMutationCoordinator(
        db,
        AccessResolver(db),
        CascadeDeleter(db, storage_config),
        emitter,
        background_tasks,
    )


# /photos/{photo_id} より先に宣言する（パスの衝突を避けるため）
@router.post("/photos/batch/rating", response_model=BatchRatingResponse)
def batch_update_rating(
    request: BatchRatingRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    storage_config: StorageConfig = Depends(get_storage_config),
    emitter: NotificationEmitter = Depends(get_notification_emitter)
):
    """
    評価の一括設定API

    IDごとに順番にコミットする。存在しない・読み取れない写真は
    スキップされ、レスポンスの photos に含まれない。

    Raises:
        HTTPException:
            - 400: 評価値が0〜5の範囲外、または photo_ids が空
    """
    coordinator = _coordinator(db, storage_config, emitter, background_tasks)
    actor = _actor(principal, request.user_name)
    return coordinator.set_rating(principal, request.photo_ids, request.rating, actor_name=actor)


@router.delete("/photos/batch", response_model=BatchDeleteResponse)
def batch_delete_photos(
    request: BatchDeleteRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal),
    storage_config: StorageConfig = Depends(get_storage_config),
    emitter: NotificationEmitter = Depends(get_notification_emitter)
):
    """
    写真の一括削除API

    部分的な失敗は errors として返し、HTTPステータスは常に200。
    存在しない写真は削除済みとして deleted に含める。

    Raises:
        HTTPException:
            - 400: photo_ids が空
            - 403: Creator/Admin 以外
    """
    coordinator = _coordinator(db, storage_config, emitter, background_tasks)
    return coordinator.batch_delete(principal, request.photo_ids)


@router.post("/photos/download")
def download_photos(
    request: DownloadRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    storage_config: StorageConfig = Depends(get_storage_config),
    emitter: NotificationEmitter = Depends(get_notification_emitter)
):
    """
    写真のZIPダウンロードAPI

    読み取れる写真のオリジナルをZIPにまとめて返す。
    ギャラリーの所有者ごとにダウンロード通知を送る。
    """
    resolver = AccessResolver(db)
    photos = []
    for photo_id in normalize_ids(request.photo_ids):
        photo = resolver.find_readable_photo(principal, photo_id)
        if photo is not None:
            photos.append(photo)

    if not photos:
        raise NotFoundError("No downloadable photos found")

    buffer = BytesIO()
    used_names = set()
    per_gallery = OrderedDict()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for photo in photos:
            try:
                path = storage_config.resolve(photo.file_path)
            except ValueError as e:
                logger.error(f"Invalid file path for photo {photo.id}: {e}")
                continue
            if not path.exists():
                logger.error(f"File not found: {path}")
                continue

            # 同名ファイルは写真IDを付けて区別する
            name = photo.original_name or photo.filename
            if name in used_names:
                name = f"{photo.id}_{name}"
            used_names.add(name)

            archive.write(path, arcname=name)
            per_gallery[photo.gallery_id] = per_gallery.get(photo.gallery_id, 0) + 1

    if not per_gallery:
        raise NotFoundError("No downloadable photos found")

    actor = _actor(principal, request.user_name)
    for gallery_id, count in per_gallery.items():
        gallery = db.query(Gallery).filter(Gallery.id == gallery_id).first()
        if gallery is None:
            continue
        emitter.submit(
            background_tasks,
            user_id=gallery.owner_id,
            gallery_id=gallery.id,
            photo_id=None,
            type="download",
            message=download_message(actor, count, gallery.name),
            actor_name=actor,
        )

    buffer.seek(0)
    return StreamingResponse(
        buffer,
        media_type="application/zip",
        headers={"Content-Disposition": 'attachment; filename="photos.zip"'}
    )


@router.delete("/photos/{photo_id}", status_code=204)
def delete_photo(
    photo_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal),
    storage_config: StorageConfig = Depends(get_storage_config)
):
    """
    写真削除API

    コメント・いいね・通知・写真行を削除した後、ファイルを削除する。
    ファイル削除の失敗はログに残すだけでレスポンスには影響しない。
    """
    photo = AccessResolver(db).writable_photo(principal, photo_id)

    try:
        CascadeDeleter(db, storage_config).delete_photo(photo)
    except Exception as e:
        logger.error(f"Failed to delete photo {photo_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete photo")

    logger.info(f"Photo deleted: ID={photo_id}, By={principal.user_id}")
    return Response(status_code=204)


@router.get("/photos/{photo_id}/rating", response_model=RatingResponse)
def get_photo_rating(
    photo_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal)
):
    photo = AccessResolver(db).readable_photo(principal, photo_id)
    return RatingResponse(id=photo.id, rating=photo.rating)


@router.post("/photos/{photo_id}/rating", response_model=RatingResponse)
def update_photo_rating(
    photo_id: int,
    request: RatingRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    storage_config: StorageConfig = Depends(get_storage_config),
    emitter: NotificationEmitter = Depends(get_notification_emitter)
):
    """写真1枚の評価設定API（バッチ評価と同じ処理を1件で行う）"""
    coordinator = _coordinator(db, storage_config, emitter, background_tasks)
    result = coordinator.set_rating(principal, [photo_id], request.rating, actor_name=_actor(principal, request.user_name))
    if not result["photos"]:
        raise NotFoundError("Photo not found")
    return result["photos"][0]


@router.get("/photos/{photo_id}/like", response_model=LikeResponse)
def get_photo_like(
    photo_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal)
):
    photo = AccessResolver(db).readable_photo(principal, photo_id)
    return like_status(db, photo.id)


@router.post("/photos/{photo_id}/like", response_model=LikeResponse)
def update_photo_like(
    photo_id: int,
    request: LikeRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    emitter: NotificationEmitter = Depends(get_notification_emitter)
):
    """
    いいね切り替えAPI

    既存のいいね行を削除してから1行挿入し、多数決で求めた
    正規の状態を返す。
    """
    photo = AccessResolver(db).readable_photo(principal, photo_id)
    photo_alt = photo.alt
    gallery = db.query(Gallery).filter(Gallery.id == photo.gallery_id).first()

    try:
        toggle_like(db, photo.id, request.is_liked)
    except Exception:
        raise HTTPException(status_code=500, detail="Failed to update like")

    if gallery is not None:
        actor = _actor(principal, request.user_name)
        emitter.submit(
            background_tasks,
            user_id=gallery.owner_id,
            gallery_id=gallery.id,
            photo_id=photo_id,
            type="like",
            message=like_message(actor, photo_alt, gallery.name, request.is_liked),
            actor_name=actor,
        )

    return like_status(db, photo_id)
