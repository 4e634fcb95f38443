from typing import Optional


class SyncError(Exception):
    """サーバーが2xx以外を返した場合のエラー"""

    def __init__(self, message: str, status_code: Optional[int] = None, detail=None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class TransientNetworkError(SyncError):
    """接続失敗・タイムアウトなどの通信エラー（自動リトライはしない）"""

    def __init__(self, message: str):
        super().__init__(message, status_code=None)
