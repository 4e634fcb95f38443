"""
Configuration module for Gallery Album Backend

Provides environment-specific configuration for:
- JWT / password reset settings
- Gallery listing and notification limits
- File storage paths
- Upload limits and restrictions
- Mail (SMTP) and logging settings
"""

import os

# JWT Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "your-secret-key-here")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "10080"))  # 7日

# パスワードリセットトークンの有効期限（秒）
PASSWORD_RESET_EXPIRE_SECONDS = int(os.getenv("PASSWORD_RESET_EXPIRE_SECONDS", "3600"))

# 大きなギャラリーの写真一覧取得のタイムアウト（秒）
PHOTO_LIST_TIMEOUT_SECONDS = float(os.getenv("PHOTO_LIST_TIMEOUT_SECONDS", "30"))

# 通知の取得上限
NOTIFICATION_LIMIT = 50

# 署名付き画像URLの有効期限（秒）
SIGNED_URL_EXPIRES_SECONDS = int(os.getenv("SIGNED_URL_EXPIRES_SECONDS", "1800"))

# メール送信設定
APP_URL = os.getenv("APP_URL", "http://localhost:5000")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER)

# ログ設定
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "false").lower() == "true"

from .storage import storage_config, get_storage_config, StorageConfig

__all__ = [
    "SECRET_KEY", "ALGORITHM", "ACCESS_TOKEN_EXPIRE_MINUTES",
    "PASSWORD_RESET_EXPIRE_SECONDS", "PHOTO_LIST_TIMEOUT_SECONDS", "NOTIFICATION_LIMIT",
    "SIGNED_URL_EXPIRES_SECONDS", "APP_URL", "SMTP_HOST", "SMTP_PORT", "SMTP_USER",
    "SMTP_PASSWORD", "SMTP_FROM", "LOG_LEVEL", "LOG_JSON",
    "storage_config", "get_storage_config", "StorageConfig",
]
