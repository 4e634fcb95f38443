"""
共有写真コレクション

画面上の複数のコンポーネントが同じ写真一覧を参照するための入れ物。
変更があるたびに購読者（subscribe したコールバック）へ通知する。
スレッドは使わず、単一のイベントループ上から同期的に更新する。
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass
class CommentState:
    id: Union[int, str]
    author: str
    text: str
    timestamp: Optional[str] = None
    pending: bool = False

    @classmethod
    def from_api(cls, data: Dict) -> "CommentState":
        return cls(
            id=data["id"],
            author=data.get("author", ""),
            text=data.get("text", ""),
            timestamp=data.get("timestamp"),
        )


@dataclass
class PhotoState:
    id: int
    alt: str = ""
    rating: int = 0
    is_liked: bool = False
    like_count: int = 0
    gallery_id: Optional[int] = None
    src: Optional[str] = None
    medium_src: Optional[str] = None
    original_src: Optional[str] = None
    comments: List[CommentState] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict) -> "PhotoState":
        return cls(
            id=data["id"],
            alt=data.get("alt", ""),
            rating=data.get("rating", 0),
            is_liked=data.get("is_liked", False),
            like_count=data.get("like_count", 0),
            gallery_id=data.get("gallery_id"),
            src=data.get("src"),
            medium_src=data.get("medium_src"),
            original_src=data.get("original_src"),
            comments=[CommentState.from_api(c) for c in data.get("comments", [])],
        )


Subscriber = Callable[["PhotoCollection"], None]


class PhotoCollection:
    def __init__(self, photos: Iterable[PhotoState] = ()):
        self._photos: List[PhotoState] = list(photos)
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """変更通知を購読する。戻り値を呼ぶと購読を解除する"""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self):
        for callback in list(self._subscribers):
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Photo collection subscriber failed: {e}")

    @property
    def photos(self) -> List[PhotoState]:
        return list(self._photos)

    def ids(self) -> List[int]:
        return [photo.id for photo in self._photos]

    def get(self, photo_id: int) -> Optional[PhotoState]:
        for photo in self._photos:
            if photo.id == photo_id:
                return photo
        return None

    def _index_of(self, photo_id: int) -> Optional[int]:
        for index, photo in enumerate(self._photos):
            if photo.id == photo_id:
                return index
        return None

    def replace_all(self, photos: Iterable[PhotoState]):
        self._photos = list(photos)
        self._notify()

    def update(self, photo_id: int, **changes) -> bool:
        """
        写真のフィールドを更新する

        Returns:
            bool: 写真がコレクションに存在しなかった場合はFalse
        """
        index = self._index_of(photo_id)
        if index is None:
            return False
        self._photos[index] = replace(self._photos[index], **changes)
        self._notify()
        return True

    def remove(self, photo_id: int) -> Optional[Tuple[int, PhotoState]]:
        """写真を取り除き、元の位置と内容を返す"""
        index = self._index_of(photo_id)
        if index is None:
            return None
        photo = self._photos.pop(index)
        self._notify()
        return index, photo

    def restore(self, index: int, photo: PhotoState):
        if self._index_of(photo.id) is not None:
            return
        self._photos.insert(min(index, len(self._photos)), photo)
        self._notify()

    def add_comment(self, photo_id: int, comment: CommentState) -> bool:
        photo = self.get(photo_id)
        if photo is None:
            return False
        return self.update(photo_id, comments=photo.comments + [comment])

    def replace_comment(self, photo_id: int, comment_id: Union[int, str], comment: CommentState) -> bool:
        photo = self.get(photo_id)
        if photo is None:
            return False
        comments = [comment if c.id == comment_id else c for c in photo.comments]
        return self.update(photo_id, comments=comments)

    def remove_comment(self, photo_id: int, comment_id: Union[int, str]) -> bool:
        photo = self.get(photo_id)
        if photo is None:
            return False
        return self.update(photo_id, comments=[c for c in photo.comments if c.id != comment_id])
