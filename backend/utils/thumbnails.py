"""
画像の派生ファイル生成

アップロードされたオリジナル画像から、サムネイル（高さ最大500px）と
中サイズ（高さ最大1800px）の JPEG を Pillow で生成する。
HEIC/HEIF は pillow-heif で読み込む。
"""

import logging
from io import BytesIO
from pathlib import Path
from typing import Dict

from PIL import Image, ImageOps
from pillow_heif import register_heif_opener

from config.storage import StorageConfig

logger = logging.getLogger(__name__)

# HEIC画像サポートを有効化
register_heif_opener()

THUMBNAIL_MAX_HEIGHT = 500
MEDIUM_MAX_HEIGHT = 1800


class ThumbnailGenerator:
    def __init__(self, storage: StorageConfig):
        self.storage = storage

    def open_image(self, content: bytes) -> Image.Image:
        """
        画像として開けるか検証する

        Raises:
            ValueError: 画像として読み込めない場合
        """
        try:
            image = Image.open(BytesIO(content))
            image.load()
        except Exception as e:
            raise ValueError(f"Invalid image file: {e}")
        return image

    def _resize(self, image: Image.Image, max_height: int) -> Image.Image:
        resized = image.copy()
        if resized.height > max_height:
            width = max(1, round(resized.width * max_height / resized.height))
            resized = resized.resize((width, max_height), Image.Resampling.LANCZOS)
        if resized.mode != "RGB":
            resized = resized.convert("RGB")
        return resized

    def generate(self, content: bytes, filename: str, gallery_id: int) -> Dict[str, str]:
        """
        オリジナルを保存し、サムネイルと中サイズを生成する

        Returns:
            dict: ストレージルートからの相対パス {"thumbnail", "medium", "original"}

        Raises:
            ValueError: 画像として読み込めない場合
            OSError: ファイル保存に失敗した場合（途中まで書いたファイルは削除済み）
        """
        image = self.open_image(content)
        # 回転情報を反映してから縮小する
        image = ImageOps.exif_transpose(image)

        paths = self.storage.get_derived_paths(filename, gallery_id)
        self.storage.get_gallery_dir(gallery_id, create=True)
        self.storage.get_thumbnail_dir(gallery_id, create=True)

        written = []
        try:
            original_path = self.storage.resolve(paths["original"])
            original_path.write_bytes(content)
            written.append(original_path)

            for kind, max_height in (("thumbnail", THUMBNAIL_MAX_HEIGHT), ("medium", MEDIUM_MAX_HEIGHT)):
                target = self.storage.resolve(paths[kind])
                self._resize(image, max_height).save(target, format="JPEG", quality=85)
                written.append(target)
        except OSError as e:
            logger.error(f"Failed to write derived files for {filename}: {e}")
            for path in written:
                self._cleanup(path)
            raise

        logger.info(f"Derived files created: {paths['thumbnail']}, {paths['medium']}")
        return paths

    def _cleanup(self, path: Path):
        try:
            path.unlink(missing_ok=True)
            logger.info(f"Cleaned up file: {path}")
        except OSError as cleanup_error:
            logger.error(f"Failed to cleanup file {path}: {cleanup_error}")
