"""
楽観的更新エンジン

評価・いいね・コメントなどの操作を、サーバーの応答を待たずに
共有コレクションへ反映し、応答に応じて確定またはロールバックする。

操作ごとの状態遷移:
    IDLE -> SPECULATIVE -> RECONCILED (2xx) / ROLLED_BACK (失敗) -> IDLE

同じ写真への操作が並行した場合のフェンシング（バージョン番号など）は
行わない。後から完了した操作の結果が残る。
"""

import itertools
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import httpx

from photo_client.collection import PhotoCollection, PhotoState, CommentState
from photo_client.errors import SyncError, TransientNetworkError

logger = logging.getLogger(__name__)


class OperationState(Enum):
    IDLE = "idle"
    SPECULATIVE = "speculative"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"


class PendingOperation:
    """
    写真1枚・1操作分の楽観的更新

    speculate() の時点のフィールド値をスナップショットとして保持し、
    reconcile() ではサーバーの正規値で上書き、rollback() では
    スナップショットへ戻す。
    """

    def __init__(self, collection: PhotoCollection, photo_id: int, operation: str):
        self.collection = collection
        self.photo_id = photo_id
        self.operation = operation
        self.state = OperationState.IDLE
        self.history: List[OperationState] = [OperationState.IDLE]
        self.snapshot: Dict[str, Any] = {}

    def _transition(self, expected: OperationState, new_state: OperationState):
        if self.state != expected:
            raise RuntimeError(
                f"Invalid transition for {self.operation} on photo {self.photo_id}: "
                f"{self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    def speculate(self, **changes):
        photo = self.collection.get(self.photo_id)
        if photo is not None:
            self.snapshot = {name: getattr(photo, name) for name in changes}
        self._transition(OperationState.IDLE, OperationState.SPECULATIVE)
        self.collection.update(self.photo_id, **changes)

    def reconcile(self, **canonical):
        self._transition(OperationState.SPECULATIVE, OperationState.RECONCILED)
        if canonical:
            self.collection.update(self.photo_id, **canonical)
        self._finish()

    def rollback(self):
        self._transition(OperationState.SPECULATIVE, OperationState.ROLLED_BACK)
        if self.snapshot:
            self.collection.update(self.photo_id, **self.snapshot)
        self._finish()

    def _finish(self):
        self.state = OperationState.IDLE
        self.history.append(OperationState.IDLE)


class OptimisticSyncEngine:
    def __init__(self, client: httpx.AsyncClient, collection: Optional[PhotoCollection] = None,
                 token: Optional[str] = None, gallery_password: Optional[str] = None):
        self.client = client
        self.collection = collection if collection is not None else PhotoCollection()
        self.token = token
        self.gallery_password = gallery_password
        self._temp_ids = itertools.count(1)

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.gallery_password:
            headers["X-Gallery-Password"] = self.gallery_password
        return headers

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        """
        APIを呼び出してJSONを返す

        Raises:
            SyncError: 2xx以外の応答、またはJSONとして読めない応答
            TransientNetworkError: 通信エラー
        """
        try:
            response = await self.client.request(method, path, json=json, headers=self._headers())
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise TransientNetworkError(f"{method} {path} failed: {e}")

        if not response.is_success:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            logger.warning(f"{method} {path} returned {response.status_code}: {detail}")
            raise SyncError(f"{method} {path} returned {response.status_code}",
                            status_code=response.status_code, detail=detail)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning(f"{method} {path} returned a non-JSON body")
            raise SyncError(f"{method} {path} returned a non-JSON body",
                            status_code=response.status_code, detail=response.text)

    @staticmethod
    def _require(data: Any, *keys: str) -> Dict:
        """応答に必要なキーがそろっているか確認する"""
        if not isinstance(data, dict) or any(key not in data for key in keys):
            raise SyncError(f"Malformed response: expected keys {', '.join(keys)}", detail=data)
        return data

    async def load_gallery(self, gallery_id: int) -> List[PhotoState]:
        data = await self._request("GET", f"/api/galleries/{gallery_id}/photos")
        photos = [PhotoState.from_api(item) for item in data]
        self.collection.replace_all(photos)
        return photos

    async def load_public_gallery(self, gallery_id: int, password: Optional[str] = None) -> Dict:
        body = {"password": password} if password else {}
        data = self._require(
            await self._request("POST", f"/api/gallery/{gallery_id}/public", json=body), "gallery", "photos"
        )
        self.collection.replace_all(PhotoState.from_api(item) for item in data["photos"])
        return data["gallery"]

    async def update_rating(self, photo_id: int, rating: int, user_name: Optional[str] = None) -> int:
        op = PendingOperation(self.collection, photo_id, "rating")
        op.speculate(rating=rating)
        try:
            data = self._require(
                await self._request("POST", f"/api/photos/{photo_id}/rating",
                                    json={"rating": rating, "user_name": user_name}),
                "rating"
            )
        except BaseException:
            # キャンセルを含め、正規値を受け取れなかった場合は必ず戻す
            op.rollback()
            raise
        op.reconcile(rating=data["rating"])
        return data["rating"]

    async def update_like(self, photo_id: int, is_liked: bool, user_name: Optional[str] = None) -> bool:
        """
        いいねを切り替える

        サーバーのいいね状態は多数決で決まるため、応答の is_liked が
        送った値と異なる場合でも応答の値を採用する。
        """
        op = PendingOperation(self.collection, photo_id, "like")
        op.speculate(is_liked=is_liked)
        try:
            data = self._require(
                await self._request("POST", f"/api/photos/{photo_id}/like",
                                    json={"is_liked": is_liked, "user_name": user_name}),
                "is_liked", "like_count"
            )
        except BaseException:
            op.rollback()
            raise
        op.reconcile(is_liked=data["is_liked"], like_count=data["like_count"])
        return data["is_liked"]

    async def add_comment(self, photo_id: int, commenter_name: str, text: str) -> CommentState:
        """
        コメントを追加する

        一時ID（temp-N）のプレースホルダーを先に追加し、成功時はサーバーが
        保存した内容（ID・本文・投稿日時）に置き換え、失敗時は取り除く。
        """
        temp_id = f"temp-{next(self._temp_ids)}"
        placeholder = CommentState(id=temp_id, author=commenter_name, text=text, pending=True)
        self.collection.add_comment(photo_id, placeholder)

        try:
            data = self._require(
                await self._request("POST", f"/api/photos/{photo_id}/comments",
                                    json={"commenter_name": commenter_name, "text": text}),
                "comment_id"
            )
        except BaseException:
            self.collection.remove_comment(photo_id, temp_id)
            raise

        comment = CommentState(
            id=data["comment_id"],
            author=data.get("author", commenter_name),
            text=data.get("text", text),
            timestamp=data.get("timestamp"),
        )
        self.collection.replace_comment(photo_id, temp_id, comment)
        return comment

    async def update_ratings(self, photo_ids: Iterable[int], rating: int,
                             user_name: Optional[str] = None) -> List[Dict]:
        """
        複数の写真の評価を一括で変更する

        応答の photos に含まれなかった写真はスナップショットへ戻す。
        """
        ops = {}
        for photo_id in photo_ids:
            if photo_id in ops:
                continue
            op = PendingOperation(self.collection, photo_id, "rating")
            op.speculate(rating=rating)
            ops[photo_id] = op

        try:
            data = self._require(
                await self._request("POST", "/api/photos/batch/rating",
                                    json={"photo_ids": list(ops), "rating": rating, "user_name": user_name}),
                "photos"
            )
            confirmed = {item["id"]: item["rating"] for item in data["photos"]}
        except BaseException:
            for op in ops.values():
                op.rollback()
            raise

        for photo_id, op in ops.items():
            if photo_id in confirmed:
                op.reconcile(rating=confirmed[photo_id])
            else:
                op.rollback()
        return data["photos"]

    async def delete_photos(self, photo_ids: Iterable[int]) -> Dict:
        """
        複数の写真を削除する

        先にコレクションから取り除き、errors に含まれた写真は元の位置に戻す。
        通信エラー・2xx以外・読めない応答の場合はすべて戻す。
        """
        removed = {}
        for photo_id in photo_ids:
            if photo_id in removed:
                continue
            entry = self.collection.remove(photo_id)
            removed[photo_id] = entry

        try:
            data = self._require(
                await self._request("DELETE", "/api/photos/batch", json={"photo_ids": list(removed)}),
                "errors"
            )
            failed_ids = [item["photo_id"] for item in data["errors"]]
        except BaseException:
            self._restore(removed, list(removed))
            raise

        self._restore(removed, failed_ids)
        return data

    def _restore(self, removed: Dict, photo_ids: List[int]):
        # 取り除いた位置は直前の削除後の並びを基準にしているため、逆順で戻す
        to_restore = set(photo_ids)
        for photo_id in reversed(list(removed)):
            entry = removed[photo_id]
            if entry is None or photo_id not in to_restore:
                continue
            index, photo = entry
            self.collection.restore(index, photo)
