"""
URL署名ユーティリティ

画像配信用の署名付きURLを生成・検証する機能を提供。
写真IDと画像の種類（thumbnail / medium / original）に対して、
HMAC-SHA256 で時限付きの署名を付与する。

使用例:
    # 署名付きURL生成（30分有効）
    signed_url = create_signed_url(12, "thumbnail", expires_in=1800)

    # 署名検証
    is_valid = verify_url_signature(12, "thumbnail", signature, expires)
"""

import hmac
import hashlib
import time
from typing import Optional

from config import SECRET_KEY, SIGNED_URL_EXPIRES_SECONDS

FILE_KINDS = ("thumbnail", "medium", "original")


def _sign(photo_id: int, kind: str, expires: int) -> str:
    # 署名対象データ: "photo_id:kind:expires"
    payload = f"{photo_id}:{kind}:{expires}"
    return hmac.new(
        SECRET_KEY.encode(),
        payload.encode(),
        hashlib.sha256
    ).hexdigest()


def create_signed_url(photo_id: int, kind: str = "thumbnail", expires_in: int = SIGNED_URL_EXPIRES_SECONDS) -> str:
    """
    署名付きURLを生成する

    Args:
        photo_id: 写真ID
        kind: 画像の種類（"thumbnail" / "medium" / "original"）
        expires_in: 有効期限（秒）

    Returns:
        str: 署名付きURL（例: "/api/files/thumbnail/12?signature=xxx&expires=xxx"）

    Raises:
        ValueError: 無効なkindが指定された場合
    """
    if kind not in FILE_KINDS:
        raise ValueError(f"kind must be one of {', '.join(FILE_KINDS)}")

    expires = int(time.time()) + expires_in
    signature = _sign(photo_id, kind, expires)
    return f"/api/files/{kind}/{photo_id}?signature={signature}&expires={expires}"


def verify_url_signature(photo_id: int, kind: str, signature: str, expires: int) -> bool:
    """
    URL署名を検証する

    検証項目:
        1. 有効期限チェック
        2. 署名の正当性チェック（timing attack対策でcompare_digest使用）
    """
    if time.time() > expires:
        return False

    expected_signature = _sign(photo_id, kind, expires)
    return hmac.compare_digest(signature, expected_signature)


def get_signature_info(signature: Optional[str], expires: Optional[str]) -> tuple[Optional[str], Optional[int]]:
    """
    クエリパラメータから署名情報を取得する

    Returns:
        tuple[Optional[str], Optional[int]]: (署名, 有効期限のint) または (None, None)
    """
    if not signature or not expires:
        return None, None

    try:
        expires_int = int(expires)
        return signature, expires_int
    except ValueError:
        return None, None
