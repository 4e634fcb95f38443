"""
ギャラリー階層と連鎖削除

GalleryHierarchy:
    ギャラリーの親子関係（parent_id）をたどる操作をまとめる。
    再帰は使わず、明示的なスタック/ループで走査する。

CascadeDeleter:
    ギャラリーのサブツリーと、それに依存する写真・いいね・コメント・通知・
    割り当てを外部キー違反にならない順序で削除する。
    DB行の削除を確定（commit）した後にファイルを削除するため、途中で
    クラッシュしても孤立ファイルは残り得るが孤立行は残らない。
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from auth import hash_password
from config.storage import StorageConfig
from exceptions import ValidationError
from models import Gallery, Photo, PhotoLike, Comment, Notification, GalleryAssignment

logger = logging.getLogger(__name__)


class GalleryHierarchy:
    """ギャラリーの親子ツリー"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, gallery_id: int) -> Optional[Gallery]:
        return self.db.query(Gallery).filter(Gallery.id == gallery_id).first()

    def create(self, name: str, owner_id: int, parent_id: Optional[int] = None,
               password: Optional[str] = None) -> Gallery:
        """
        ギャラリーを作成する

        parent_id が指定された場合（サブギャラリー）は、入力に関わらず
        パスワードをNULLにする。サブギャラリーは常にルートのパスワードに従う。
        """
        if parent_id is not None:
            if self.get(parent_id) is None:
                raise ValidationError(f"Parent gallery {parent_id} does not exist")
            password_hash = None
        else:
            password_hash = hash_password(password) if password and password.strip() else None

        gallery = Gallery(
            name=name.strip(),
            owner_id=owner_id,
            parent_id=parent_id,
            password=password_hash,
        )
        self.db.add(gallery)
        self.db.commit()
        self.db.refresh(gallery)

        logger.info(f"Gallery created: ID={gallery.id}, Owner={owner_id}, Parent={parent_id}")
        return gallery

    def children(self, gallery_id: int) -> List[Gallery]:
        return self.db.query(Gallery).filter(
            Gallery.parent_id == gallery_id
        ).order_by(Gallery.create_date.asc(), Gallery.id.asc()).all()

    def ancestors(self, gallery: Gallery) -> List[Gallery]:
        """
        親から順にルートまでの祖先一覧を返す（自身は含まない）

        Raises:
            ValidationError: 親子関係が循環している場合
        """
        chain = []
        seen = {gallery.id}
        current = gallery
        while current.parent_id is not None:
            if current.parent_id in seen:
                raise ValidationError(f"Gallery hierarchy contains a cycle at {current.parent_id}")
            parent = self.get(current.parent_id)
            if parent is None:
                # 親が消えている場合はそこをルートとみなす
                logger.warning(f"Gallery {current.id} references missing parent {current.parent_id}")
                break
            seen.add(parent.id)
            chain.append(parent)
            current = parent
        return chain

    def root_of(self, gallery: Gallery) -> Gallery:
        chain = self.ancestors(gallery)
        return chain[-1] if chain else gallery

    def subtree_ids(self, gallery_id: int) -> List[int]:
        """
        サブツリーに含まれるギャラリーIDを子→親の順で返す

        深さ優先の行きがけ順をスタックで作り、逆順にすることで
        すべての子孫が祖先より先に並ぶ。
        """
        order = []
        stack = [gallery_id]
        seen = set()
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            order.append(current)
            child_ids = [row.id for row in self.db.query(Gallery.id).filter(Gallery.parent_id == current).all()]
            stack.extend(child_ids)
        order.reverse()
        return order

    def move(self, gallery: Gallery, new_parent_id: Optional[int]) -> Gallery:
        """
        ギャラリーの親を変更する

        新しい親の祖先チェーンをたどり、自身が含まれる場合（循環）は拒否する。
        サブギャラリーになる場合はパスワードを消去する。
        """
        if new_parent_id is not None:
            if new_parent_id == gallery.id:
                raise ValidationError("A gallery cannot be its own parent")
            new_parent = self.get(new_parent_id)
            if new_parent is None:
                raise ValidationError(f"Parent gallery {new_parent_id} does not exist")
            if any(ancestor.id == gallery.id for ancestor in self.ancestors(new_parent)):
                raise ValidationError("Moving the gallery there would create a cycle")
            gallery.password = None

        gallery.parent_id = new_parent_id
        self.db.commit()
        self.db.refresh(gallery)
        logger.info(f"Gallery moved: ID={gallery.id}, Parent={new_parent_id}")
        return gallery

    def rename(self, gallery: Gallery, name: str) -> Gallery:
        gallery.name = name.strip()
        self.db.commit()
        self.db.refresh(gallery)
        return gallery

    def set_password(self, gallery: Gallery, password: Optional[str]) -> Gallery:
        """ルートギャラリーのパスワードを設定する（空文字/NoneでNULL）"""
        if gallery.parent_id is not None:
            raise ValidationError("Sub-galleries inherit the password of their root gallery")
        gallery.password = hash_password(password.strip()) if password and password.strip() else None
        self.db.commit()
        self.db.refresh(gallery)
        return gallery

    def photo_count(self, gallery_id: int) -> int:
        return self.db.query(Photo).filter(Photo.gallery_id == gallery_id).count()


class CascadeDeleter:
    """ギャラリーのサブツリーと依存エンティティの削除"""

    def __init__(self, db: Session, storage: StorageConfig):
        self.db = db
        self.storage = storage
        self.hierarchy = GalleryHierarchy(db)

    def delete_subtree(self, gallery_id: int) -> bool:
        """
        ギャラリーとその子孫をすべて削除する

        Returns:
            bool: ギャラリーが存在しなかった場合はFalse

        Raises:
            SQLAlchemyError: 行削除に失敗した場合（ロールバック後に再送出）
        """
        if self.hierarchy.get(gallery_id) is None:
            return False

        for current_id in self.hierarchy.subtree_ids(gallery_id):
            self._delete_gallery(current_id)

        logger.info(f"Gallery subtree deleted: root={gallery_id}")
        return True

    def _delete_gallery(self, gallery_id: int):
        photos = self.db.query(Photo).filter(Photo.gallery_id == gallery_id).all()
        for photo in photos:
            self.delete_photo(photo)

        try:
            self.db.query(Notification).filter(Notification.gallery_id == gallery_id).delete(synchronize_session=False)
            self.db.query(GalleryAssignment).filter(GalleryAssignment.gallery_id == gallery_id).delete(synchronize_session=False)
            self.db.query(Gallery).filter(Gallery.id == gallery_id).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete gallery {gallery_id}: {e}")
            self.db.rollback()
            raise

        self._remove_gallery_dirs(gallery_id)

    def delete_photo(self, photo: Photo):
        """
        写真1枚を削除する（コメント→いいね→通知→写真行→ファイルの順）

        ファイル削除の失敗はログに残すだけで処理は継続する。
        """
        photo_id = photo.id
        paths = [photo.file_path, photo.medium_path, photo.thumbnail_path]

        try:
            self.db.query(Comment).filter(Comment.photo_id == photo_id).delete(synchronize_session=False)
            self.db.query(PhotoLike).filter(PhotoLike.photo_id == photo_id).delete(synchronize_session=False)
            self.db.query(Notification).filter(Notification.photo_id == photo_id).delete(synchronize_session=False)
            self.db.query(Photo).filter(Photo.id == photo_id).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete photo {photo_id}: {e}")
            self.db.rollback()
            raise

        self.remove_files(photo_id, paths)

    def remove_files(self, photo_id: int, relative_paths: List[Optional[str]]):
        for relative_path in relative_paths:
            if not relative_path:
                continue
            try:
                self.storage.resolve(relative_path).unlink(missing_ok=True)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to delete file {relative_path} of photo {photo_id}: {e}")

    def _remove_gallery_dirs(self, gallery_id: int):
        for directory in (self.storage.get_gallery_dir(gallery_id), self.storage.get_thumbnail_dir(gallery_id)):
            if not directory.exists():
                continue
            try:
                directory.rmdir()
            except OSError as e:
                logger.info(f"Could not remove directory {directory}: {e}")
