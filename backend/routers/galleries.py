from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, Response
from sqlalchemy.orm import Session
from sqlalchemy import or_, func
from typing import List, Optional
from pathlib import Path
import json
import logging
import uuid

from database import get_db
from models import Gallery, GalleryAssignment, Photo, Comment, User, ROLE_ADMIN
from schemas import (
    GalleryCreateRequest, GalleryUpdateRequest, GalleryPasswordRequest, GalleryResponse,
    AssignmentRequest, AssignmentResponse,
)
from dependencies import get_principal, get_authenticated_principal
from exceptions import NotFoundError, ForbiddenError, ValidationError
from config.storage import get_storage_config, StorageConfig
from services.access import AccessResolver, Principal
from services.hierarchy import GalleryHierarchy, CascadeDeleter
from services import listing
from utils.thumbnails import ThumbnailGenerator
from utils.url_signature import create_signed_url

router = APIRouter(prefix="/api", tags=["galleries"])
logger = logging.getLogger(__name__)

MIME_TO_EXT = {
    'image/jpeg': '.jpg',
    'image/png': '.png',
    'image/gif': '.gif',
    'image/webp': '.webp',
    'image/heic': '.heic',
    'image/heif': '.heif',
}


def gallery_response(gallery: Gallery, photo_count: Optional[int] = None) -> GalleryResponse:
    # パスワードハッシュは返さず、有無だけを返す
    return GalleryResponse(
        id=gallery.id,
        name=gallery.name,
        owner_id=gallery.owner_id,
        parent_id=gallery.parent_id,
        has_password=gallery.password is not None,
        create_date=gallery.create_date,
        photo_count=photo_count,
    )


def _require_admin(principal: Principal):
    if not principal.is_admin:
        raise ForbiddenError("Insufficient permissions. Admin access required.")


def _readable_roots(db: Session, principal: Principal):
    query = db.query(Gallery).filter(Gallery.parent_id.is_(None))
    if not principal.is_admin:
        assigned = db.query(GalleryAssignment.gallery_id).filter(
            GalleryAssignment.user_id == principal.user_id
        )
        query = query.filter(or_(
            Gallery.owner_id == principal.user_id,
            Gallery.id.in_(assigned)
        ))
    return query


@router.get("/galleries", response_model=List[GalleryResponse])
def list_galleries(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal)
):
    """
    ギャラリー一覧取得API

    呼び出し元が読み取れるルートギャラリーを写真枚数付きで返す。
    - Admin: すべてのルートギャラリー
    - その他: 自分が所有する、または割り当てられたルートギャラリー
    """
    hierarchy = GalleryHierarchy(db)
    galleries = _readable_roots(db, principal).order_by(Gallery.create_date.desc(), Gallery.id.desc()).all()
    return [gallery_response(g, hierarchy.photo_count(g.id)) for g in galleries]


@router.post("/galleries", response_model=GalleryResponse, status_code=201)
def create_gallery(
    request: GalleryCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal)
):
    """
    ギャラリー作成API

    parent_id を指定するとサブギャラリーになる。サブギャラリーには
    パスワードを設定できず、常にルートギャラリーのパスワードに従う。

    Raises:
        HTTPException:
            - 403: Creator/Admin 以外
            - 404: 親ギャラリーが見つからない、または読み取り権限がない
    """
    if not principal.has_write_role:
        raise ForbiddenError("Creator or Admin role required")

    if request.parent_id is not None:
        AccessResolver(db).writable_gallery(principal, request.parent_id)

    gallery = GalleryHierarchy(db).create(
        name=request.name,
        owner_id=principal.user_id,
        parent_id=request.parent_id,
        password=request.password,
    )
    return gallery_response(gallery, 0)


# /galleries/{gallery_id} より先に宣言する
@router.get("/galleries/activities")
def get_gallery_activities(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal)
):
    """
    ギャラリーごとの最新アクティビティ取得API

    読み取れるルートギャラリーとそのサブギャラリーについて、写真の追加・
    コメントのうち最も新しい日時を返す。アクティビティのないギャラリーは含めない。

    Returns:
        dict: {"<gallery_id>": "<ISO 8601 日時>"}
    """
    hierarchy = GalleryHierarchy(db)
    gallery_ids = []
    for root in _readable_roots(db, principal).all():
        gallery_ids.extend(hierarchy.subtree_ids(root.id))
    if not gallery_ids:
        return {}

    latest = {}
    photo_rows = db.query(Photo.gallery_id, func.max(Photo.create_date)).filter(
        Photo.gallery_id.in_(gallery_ids)
    ).group_by(Photo.gallery_id).all()
    comment_rows = db.query(Photo.gallery_id, func.max(Comment.create_date)).join(
        Comment, Comment.photo_id == Photo.id
    ).filter(Photo.gallery_id.in_(gallery_ids)).group_by(Photo.gallery_id).all()

    for gallery_id, timestamp in list(photo_rows) + list(comment_rows):
        if timestamp is None:
            continue
        if gallery_id not in latest or timestamp > latest[gallery_id]:
            latest[gallery_id] = timestamp

    return {str(gallery_id): timestamp.isoformat() for gallery_id, timestamp in latest.items()}


@router.get("/galleries/{gallery_id}", response_model=GalleryResponse)
def get_gallery(
    gallery_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal)
):
    gallery = AccessResolver(db).readable_gallery(principal, gallery_id)
    return gallery_response(gallery, GalleryHierarchy(db).photo_count(gallery.id))


@router.patch("/galleries/{gallery_id}", response_model=GalleryResponse)
def update_gallery(
    gallery_id: int,
    request: GalleryUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal)
):
    """
    ギャラリー更新API（名前変更・移動）

    parent_id を明示的に null にするとルートギャラリーへ移動する。
    親子関係が循環する移動は 400 で拒否する。
    """
    resolver = AccessResolver(db)
    gallery = resolver.writable_gallery(principal, gallery_id)
    hierarchy = resolver.hierarchy

    if request.name is not None:
        gallery = hierarchy.rename(gallery, request.name)

    if "parent_id" in request.model_fields_set:
        if request.parent_id is not None:
            resolver.writable_gallery(principal, request.parent_id)
        gallery = hierarchy.move(gallery, request.parent_id)

    logger.info(f"Gallery updated: ID={gallery.id}, By={principal.user_id}")
    return gallery_response(gallery, hierarchy.photo_count(gallery.id))


@router.patch("/galleries/{gallery_id}/password", response_model=GalleryResponse)
def set_gallery_password(
    gallery_id: int,
    request: GalleryPasswordRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal)
):
    """ルートギャラリーのパスワード設定API（空文字またはnullで解除）"""
    resolver = AccessResolver(db)
    gallery = resolver.writable_gallery(principal, gallery_id)
    gallery = resolver.hierarchy.set_password(gallery, request.password)
    logger.info(f"Gallery password updated: ID={gallery.id}, Protected={gallery.password is not None}")
    return gallery_response(gallery)


@router.delete("/galleries/{gallery_id}", status_code=204)
def delete_gallery(
    gallery_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal),
    storage_config: StorageConfig = Depends(get_storage_config)
):
    """
    ギャラリー削除API

    サブギャラリー・写真・いいね・コメント・通知・割り当てを含めて
    サブツリー全体を削除する。

    Raises:
        HTTPException:
            - 403: Creator/Admin 以外
            - 404: ギャラリーが見つからない、または読み取り権限がない
            - 500: 行削除に失敗した場合
    """
    AccessResolver(db).writable_gallery(principal, gallery_id)

    try:
        deleted = CascadeDeleter(db, storage_config).delete_subtree(gallery_id)
    except Exception as e:
        logger.error(f"Failed to delete gallery {gallery_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete gallery")

    if not deleted:
        raise NotFoundError("Gallery not found")

    logger.info(f"Gallery deleted: ID={gallery_id}, By={principal.user_id}")
    return Response(status_code=204)


@router.get("/galleries/{gallery_id}/sub-galleries", response_model=List[GalleryResponse])
def get_sub_galleries(
    gallery_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal)
):
    resolver = AccessResolver(db)
    gallery = resolver.readable_gallery(principal, gallery_id)
    hierarchy = resolver.hierarchy
    return [gallery_response(child, hierarchy.photo_count(child.id)) for child in hierarchy.children(gallery.id)]


@router.get("/galleries/{gallery_id}/preview")
def get_gallery_preview(
    gallery_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal)
):
    """ギャラリーの先頭写真のサムネイルURLを返す（写真がない場合は404）"""
    gallery = AccessResolver(db).readable_gallery(principal, gallery_id)

    photo = db.query(Photo).filter(
        Photo.gallery_id == gallery.id
    ).order_by(Photo.create_date.asc(), Photo.id.asc()).first()
    if photo is None:
        raise NotFoundError("Gallery has no photos")

    return {"photo_id": photo.id, "src": create_signed_url(photo.id, "thumbnail")}


@router.get("/galleries/{gallery_id}/photos")
async def get_gallery_photos(
    gallery_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal)
):
    """
    ギャラリーの写真一覧取得API

    いいね状態・コメント・署名付きURLを含めて返す。
    PHOTO_LIST_TIMEOUT_SECONDS を超えた場合は 408 を返す。
    """
    gallery = AccessResolver(db).readable_gallery(principal, gallery_id)
    return await listing.list_with_timeout(gallery.id)


@router.get("/galleries/{gallery_id}/assignments", response_model=List[AssignmentResponse])
def list_assignments(
    gallery_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal)
):
    _require_admin(principal)
    gallery = AccessResolver(db).readable_gallery(principal, gallery_id)

    rows = db.query(GalleryAssignment, User).join(
        User, GalleryAssignment.user_id == User.id
    ).filter(GalleryAssignment.gallery_id == gallery.id).order_by(GalleryAssignment.id.asc()).all()

    return [
        AssignmentResponse(
            id=assignment.id,
            gallery_id=assignment.gallery_id,
            user_id=assignment.user_id,
            user_name=user.user_name,
            email=user.email,
        )
        for assignment, user in rows
    ]


@router.post("/galleries/{gallery_id}/assignments", response_model=AssignmentResponse, status_code=201)
def create_assignment(
    gallery_id: int,
    request: AssignmentRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal)
):
    """
    ギャラリー割り当てAPI

    ルートギャラリーにのみ割り当てられる。割り当てられたユーザーは
    そのルート配下のすべてのサブギャラリーを閲覧できる。
    """
    _require_admin(principal)
    gallery = AccessResolver(db).readable_gallery(principal, gallery_id)
    if gallery.parent_id is not None:
        raise ValidationError("Users can only be assigned to root galleries")

    user = db.query(User).filter(User.id == request.user_id).first()
    if user is None:
        raise NotFoundError("User not found")

    existing = db.query(GalleryAssignment).filter(
        GalleryAssignment.gallery_id == gallery.id,
        GalleryAssignment.user_id == user.id
    ).first()
    if existing is not None:
        raise HTTPException(status_code=409, detail="User is already assigned to this gallery")

    assignment = GalleryAssignment(gallery_id=gallery.id, user_id=user.id)
    try:
        db.add(assignment)
        db.commit()
        db.refresh(assignment)
    except Exception as e:
        logger.error(f"Failed to assign user {user.id} to gallery {gallery.id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create assignment")

    logger.info(f"Gallery assigned: Gallery={gallery.id}, User={user.id}")
    return AssignmentResponse(
        id=assignment.id,
        gallery_id=assignment.gallery_id,
        user_id=assignment.user_id,
        user_name=user.user_name,
        email=user.email,
    )


@router.delete("/galleries/{gallery_id}/assignments/{user_id}", status_code=204)
def delete_assignment(
    gallery_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal)
):
    _require_admin(principal)
    AccessResolver(db).readable_gallery(principal, gallery_id)

    deleted = db.query(GalleryAssignment).filter(
        GalleryAssignment.gallery_id == gallery_id,
        GalleryAssignment.user_id == user_id
    ).delete(synchronize_session=False)
    db.commit()

    if not deleted:
        raise NotFoundError("Assignment not found")
    return Response(status_code=204)


def _detect_content_type(file: UploadFile) -> str:
    # HEIC/HEIFファイルはブラウザでContent-Typeが正しく設定されない場合があるため
    # ファイル拡張子もチェックして補完する
    content_type = file.content_type or ""
    file_extension = Path(file.filename).suffix.lower() if file.filename else ""
    if file_extension in ['.heic', '.heif'] and content_type in ['application/octet-stream', '']:
        content_type = 'image/heic' if file_extension == '.heic' else 'image/heif'
    return content_type


def _store_upload(db: Session, gallery: Gallery, filename: str, content_type: str,
                  content: bytes, alt: Optional[str], storage_config: StorageConfig) -> Photo:
    """
    アップロードされた画像1枚を保存する

    Raises:
        HTTPException: 400（検証エラー）/ 500（保存エラー）
    """
    if not content_type:
        raise HTTPException(status_code=400, detail="File content type is required")

    if not storage_config.is_allowed_image_type(content_type):
        raise HTTPException(
            status_code=400,
            detail=f"File type {content_type} is not allowed. "
                   f"Allowed types: {', '.join(storage_config.allowed_image_types)}"
        )

    if not storage_config.is_valid_file_size(len(content)):
        max_size_mb = storage_config.max_upload_size / 1024 / 1024
        raise HTTPException(
            status_code=400,
            detail=f"File size ({len(content)} bytes) is too large. "
                   f"Maximum allowed: {max_size_mb:.1f}MB"
        )

    file_extension = Path(filename).suffix.lower() or MIME_TO_EXT.get(content_type, '.jpg')
    unique_filename = f"{uuid.uuid4().hex}{file_extension}"

    generator = ThumbnailGenerator(storage_config)
    try:
        paths = generator.generate(content, unique_filename, gallery.id)
    except ValueError as e:
        logger.error(f"Image validation failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid image file or unsupported format")
    except OSError as e:
        logger.error(f"File save failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to save image files")

    photo = Photo(
        gallery_id=gallery.id,
        filename=unique_filename,
        original_name=filename,
        alt=(alt or "").strip() or Path(filename).stem,
        rating=0,
        file_path=paths["original"],
        medium_path=paths["medium"],
        thumbnail_path=paths["thumbnail"],
    )
    try:
        db.add(photo)
        db.commit()
        db.refresh(photo)
    except Exception as e:
        logger.error(f"Database save failed: {e}")
        db.rollback()
        CascadeDeleter(db, storage_config).remove_files(None, list(paths.values()))
        raise HTTPException(status_code=500, detail="Failed to save photo information")

    logger.info(f"Photo saved: ID={photo.id}, Gallery={gallery.id}")
    return photo


@router.post("/galleries/{gallery_id}/photos/upload", status_code=201)
async def upload_photo(
    gallery_id: int,
    file: UploadFile = File(...),
    alt: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal),
    storage_config: StorageConfig = Depends(get_storage_config)
):
    """
    画像アップロードAPI

    オリジナルを保存し、サムネイルと中サイズの派生画像を生成する。

    Raises:
        HTTPException:
            - 400: ファイル検証エラー
            - 403: Creator/Admin 以外
            - 404: ギャラリーが見つからない、または読み取り権限がない
            - 500: ファイル保存エラー、データベースエラー
    """
    gallery = AccessResolver(db).writable_gallery(principal, gallery_id)

    content = await file.read()
    photo = _store_upload(
        db, gallery, file.filename or "upload", _detect_content_type(file), content, alt, storage_config
    )
    return listing.serialize_photo(photo)


@router.post("/galleries/{gallery_id}/photos/upload-multiple", status_code=201)
async def upload_multiple_photos(
    gallery_id: int,
    files: List[UploadFile] = File(...),
    alts: Optional[str] = Form(None, description="altテキストのJSON配列（filesと同じ順序）"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal),
    storage_config: StorageConfig = Depends(get_storage_config)
):
    """
    複数画像アップロードAPI

    ファイルごとに保存し、失敗したファイルは errors に入れて処理を続ける。
    """
    gallery = AccessResolver(db).writable_gallery(principal, gallery_id)

    alt_list: List[Optional[str]] = []
    if alts:
        try:
            alt_list = json.loads(alts)
        except ValueError:
            raise ValidationError("alts must be a JSON array of strings")
        if not isinstance(alt_list, list) or any(alt is not None and not isinstance(alt, str) for alt in alt_list):
            raise ValidationError("alts must be a JSON array of strings")

    uploaded = []
    errors = []
    for index, file in enumerate(files):
        alt = alt_list[index] if index < len(alt_list) else None
        filename = file.filename or f"upload_{index}"
        try:
            content = await file.read()
            photo = _store_upload(db, gallery, filename, _detect_content_type(file), content, alt, storage_config)
            uploaded.append(listing.serialize_photo(photo))
        except HTTPException as e:
            errors.append({"filename": filename, "error": e.detail})

    logger.info(f"Multiple upload finished: Gallery={gallery.id}, Uploaded={len(uploaded)}, Failed={len(errors)}")
    return {"photos": uploaded, "errors": errors}
