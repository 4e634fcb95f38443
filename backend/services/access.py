"""
アクセス判定

プリンシパル（認証済みユーザー、またはパスワードを提示した匿名訪問者）と
ギャラリーから、読み取り/書き込み可否と実効パスワードを決定する。

- 読み取り拒否は「存在しない」と同じ NotFoundError として返す
- 書き込み拒否は ForbiddenError として返す
"""

from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.orm import Session

from auth import verify_password
from exceptions import NotFoundError, ForbiddenError
from models import Gallery, GalleryAssignment, Photo, ROLE_ADMIN, WRITE_ROLES
from services.hierarchy import GalleryHierarchy


@dataclass
class Principal:
    user_id: Optional[int] = None
    role: Optional[str] = None
    name: Optional[str] = None
    password: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def has_write_role(self) -> bool:
        return self.role in WRITE_ROLES

    @classmethod
    def from_user(cls, user, password: Optional[str] = None) -> "Principal":
        return cls(user_id=user.id, role=user.role, name=user.user_name, password=password)

    @classmethod
    def anonymous(cls, password: Optional[str] = None) -> "Principal":
        return cls(password=password)


class AccessResolver:
    """ギャラリー階層に対するアクセス判定"""

    def __init__(self, db: Session):
        self.db = db
        self.hierarchy = GalleryHierarchy(db)
        self._roots: Dict[int, Gallery] = {}

    def root_of(self, gallery: Gallery) -> Gallery:
        # バッチ処理で同じギャラリーを何度もたどらないようにキャッシュする
        if gallery.id not in self._roots:
            self._roots[gallery.id] = self.hierarchy.root_of(gallery)
        return self._roots[gallery.id]

    def effective_password(self, gallery: Gallery) -> Optional[str]:
        """ルートギャラリーのパスワードハッシュ（なければNone）"""
        return self.root_of(gallery).password

    def password_matches(self, gallery: Gallery, password: Optional[str]) -> bool:
        effective = self.effective_password(gallery)
        if effective is None:
            return True
        if not password:
            return False
        return verify_password(password, effective)

    def can_read(self, principal: Principal, gallery: Gallery) -> bool:
        if principal.is_anonymous:
            return self.password_matches(gallery, principal.password)

        if principal.is_admin:
            return True

        root = self.root_of(gallery)
        if root.owner_id == principal.user_id:
            return True

        assignment = self.db.query(GalleryAssignment).filter(
            GalleryAssignment.gallery_id == root.id,
            GalleryAssignment.user_id == principal.user_id
        ).first()
        return assignment is not None

    def can_write(self, principal: Principal, gallery: Gallery) -> bool:
        return principal.has_write_role and self.can_read(principal, gallery)

    def readable_gallery(self, principal: Principal, gallery_id: int) -> Gallery:
        gallery = self.hierarchy.get(gallery_id)
        if gallery is None or not self.can_read(principal, gallery):
            raise NotFoundError("Gallery not found")
        return gallery

    def writable_gallery(self, principal: Principal, gallery_id: int) -> Gallery:
        gallery = self.readable_gallery(principal, gallery_id)
        if not principal.has_write_role:
            raise ForbiddenError("Creator or Admin role required")
        return gallery

    def find_readable_photo(self, principal: Principal, photo_id: int) -> Optional[Photo]:
        """読み取り可能な写真を返す。存在しない・権限がない場合はNone"""
        photo = self.db.query(Photo).filter(Photo.id == photo_id).first()
        if photo is None:
            return None
        gallery = self.hierarchy.get(photo.gallery_id)
        if gallery is None or not self.can_read(principal, gallery):
            return None
        return photo

    def readable_photo(self, principal: Principal, photo_id: int) -> Photo:
        photo = self.find_readable_photo(principal, photo_id)
        if photo is None:
            raise NotFoundError("Photo not found")
        return photo

    def writable_photo(self, principal: Principal, photo_id: int) -> Photo:
        photo = self.readable_photo(principal, photo_id)
        if not principal.has_write_role:
            raise ForbiddenError("Creator or Admin role required")
        return photo
