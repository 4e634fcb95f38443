"""
エラー分類

サービス層から送出し、FastAPIがそのままHTTPレスポンスへ変換する。
- NotFoundError: 存在しない、または読み取り権限がない（存在を隠すため同一扱い）
- ForbiddenError: 認証済みだがロールが不足
- ValidationError: 不正な評価値、空のID一覧、循環する親子関係など
- GalleryTooLargeError: 写真一覧取得のタイムアウト
- PasswordRequiredError / WrongPasswordError: 公開ギャラリーのパスワード確認

バッチ処理の部分失敗は例外ではなく結果データとして返す。
"""

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "Insufficient permissions"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ValidationError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class GalleryTooLargeError(HTTPException):
    def __init__(self, detail: str = "Gallery too large - request aborted"):
        super().__init__(status_code=status.HTTP_408_REQUEST_TIMEOUT, detail=detail)


class PasswordRequiredError(HTTPException):
    def __init__(self, detail: str = "Gallery is password protected"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class WrongPasswordError(HTTPException):
    def __init__(self, detail: str = "Wrong password"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)
