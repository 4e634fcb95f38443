from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from typing import List
import logging

from database import get_db
from models import Comment, Gallery
from schemas import CommentResponse, CommentCreateRequest, CommentCreateResponse
from dependencies import get_principal, get_authenticated_principal
from exceptions import NotFoundError
from services.access import AccessResolver, Principal
from services.notifications import NotificationEmitter, get_notification_emitter, comment_message
from services.listing import serialize_comment

router = APIRouter(prefix="/api", tags=["comments"])
logger = logging.getLogger(__name__)


@router.get("/photos/{photo_id}/comments", response_model=List[CommentResponse])
def get_photo_comments(
    photo_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal)
):
    """
    写真へのコメント一覧取得API

    コメントは作成日時の昇順でソートされる。

    Raises:
        HTTPException:
            - 404: 写真が見つからない、または読み取り権限がない
    """
    photo = AccessResolver(db).readable_photo(principal, photo_id)

    return db.query(Comment).filter(
        Comment.photo_id == photo.id
    ).order_by(Comment.create_date.asc(), Comment.id.asc()).all()


@router.post("/photos/{photo_id}/comments", response_model=CommentCreateResponse, status_code=201)
def post_photo_comment(
    photo_id: int,
    comment_request: CommentCreateRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    emitter: NotificationEmitter = Depends(get_notification_emitter)
):
    """
    写真へのコメント投稿API

    コメントは追記のみで編集できない。投稿後、ギャラリーの所有者へ
    コメント通知を送る。

    Raises:
        HTTPException:
            - 404: 写真が見つからない、または読み取り権限がない
            - 422: リクエストボディのバリデーションエラー
            - 500: データベース保存エラー
    """
    photo = AccessResolver(db).readable_photo(principal, photo_id)
    photo_alt = photo.alt
    gallery = db.query(Gallery).filter(Gallery.id == photo.gallery_id).first()

    try:
        comment = Comment(
            photo_id=photo.id,
            commenter_name=comment_request.commenter_name,
            text=comment_request.text,
        )
        db.add(comment)
        db.commit()
        db.refresh(comment)
    except Exception as e:
        logger.error(f"Failed to create comment for photo {photo_id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create comment")

    logger.info(f"Comment created: ID={comment.id}, Photo={photo_id}")

    if gallery is not None:
        emitter.submit(
            background_tasks,
            user_id=gallery.owner_id,
            gallery_id=gallery.id,
            photo_id=photo_id,
            type="comment",
            message=comment_message(comment_request.commenter_name, photo_alt, gallery.name),
            actor_name=comment_request.commenter_name,
        )

    saved = serialize_comment(comment)
    return CommentCreateResponse(
        success=True,
        comment_id=saved["id"],
        author=saved["author"],
        text=saved["text"],
        timestamp=saved["timestamp"],
    )


@router.delete("/comments/{comment_id}", status_code=204)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_authenticated_principal)
):
    """
    コメント削除API

    Creator/Admin のみ削除できる。コメントが属する写真を読み取れない
    場合は存在しないものとして扱う。
    """
    comment = db.query(Comment).filter(Comment.id == comment_id).first()
    if comment is None:
        raise NotFoundError("Comment not found")

    AccessResolver(db).writable_photo(principal, comment.photo_id)

    try:
        db.delete(comment)
        db.commit()
    except Exception as e:
        logger.error(f"Failed to delete comment {comment_id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to delete comment")

    logger.info(f"Comment deleted: ID={comment_id}, By={principal.user_id}")
    return Response(status_code=204)
