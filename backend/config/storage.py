"""
ファイルストレージ設定モジュール

環境に応じて画像保存先を適切に設定し、必要なディレクトリを自動作成する。
- オリジナル画像: {UPLOADS_PATH}/galleries/{gallery_id}/{filename}
- 派生画像（サムネイル・中サイズ）: {UPLOADS_PATH}/galleries/thumbnails/{gallery_id}/

DBにはストレージルートからの相対パスを保存し、参照時に絶対パスへ解決する。
"""

import os
from pathlib import Path
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


class StorageConfig:
    """ファイルストレージ設定クラス"""

    def __init__(self, uploads_path: Optional[Path] = None):
        self.environment = os.getenv("ENVIRONMENT", "development")
        self.uploads_path = Path(uploads_path or os.getenv("UPLOADS_PATH", "./uploads"))
        self.auto_create_dirs = os.getenv("AUTO_CREATE_DIRS", "true").lower() == "true"
        self.max_upload_size = int(os.getenv("MAX_UPLOAD_SIZE", "52428800"))  # 50MB
        self.allowed_image_types = self._parse_allowed_types()

        # 初期化時にディレクトリを作成
        if self.auto_create_dirs:
            self._ensure_directories_exist()

    def _parse_allowed_types(self) -> List[str]:
        """許可する画像タイプの解析"""
        types_str = os.getenv("ALLOWED_IMAGE_TYPES", "image/jpeg,image/png,image/gif,image/webp,image/heic,image/heif")
        return [t.strip() for t in types_str.split(",")]

    def _ensure_directories_exist(self):
        """必要なディレクトリが存在することを確認し、なければ作成"""
        directories = [self.galleries_path, self.thumbnails_root]

        for directory in directories:
            try:
                directory.mkdir(parents=True, exist_ok=True)
                logger.info(f"Ensured directory exists: {directory}")
            except Exception as e:
                logger.error(f"Failed to create directory {directory}: {e}")
                raise

    @property
    def galleries_path(self) -> Path:
        return self.uploads_path / "galleries"

    @property
    def thumbnails_root(self) -> Path:
        return self.galleries_path / "thumbnails"

    def get_gallery_dir(self, gallery_id: int, create: bool = False) -> Path:
        """ギャラリーのオリジナル画像ディレクトリを取得"""
        directory = self.galleries_path / str(gallery_id)
        if create:
            directory.mkdir(parents=True, exist_ok=True)
        return directory

    def get_thumbnail_dir(self, gallery_id: int, create: bool = False) -> Path:
        """ギャラリーの派生画像ディレクトリを取得"""
        directory = self.thumbnails_root / str(gallery_id)
        if create:
            directory.mkdir(parents=True, exist_ok=True)
        return directory

    def get_derived_paths(self, filename: str, gallery_id: int) -> dict:
        """
        写真1枚分の3つのファイルパス（ストレージルートからの相対パス）を返す

        Returns:
            dict: {"thumbnail": ..., "medium": ..., "original": ...}
        """
        base_name = Path(filename).stem
        return {
            "thumbnail": f"galleries/thumbnails/{gallery_id}/{base_name}_thumb.jpg",
            "medium": f"galleries/thumbnails/{gallery_id}/{base_name}_medium.jpg",
            "original": f"galleries/{gallery_id}/{filename}",
        }

    def resolve(self, relative_path: str) -> Path:
        """相対パスを絶対パスへ解決する（ストレージルート外は拒否）"""
        root = self.uploads_path.resolve()
        path = (root / relative_path).resolve()
        if root != path and root not in path.parents:
            raise ValueError(f"Path escapes storage root: {relative_path}")
        return path

    def is_allowed_image_type(self, mime_type: str) -> bool:
        """許可されている画像タイプかチェック"""
        return mime_type in self.allowed_image_types

    def is_valid_file_size(self, file_size: int) -> bool:
        """ファイルサイズが制限内かチェック"""
        return file_size <= self.max_upload_size


# グローバルインスタンス
storage_config = StorageConfig()


def get_storage_config() -> StorageConfig:
    """ストレージ設定インスタンスを取得（dependency injection用）"""
    return storage_config
