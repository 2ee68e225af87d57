"""
文件存储工具
处理知识库文件的校验、落盘、读取与删除
"""

import uuid
import logging
from pathlib import Path
from typing import Optional, Tuple
from datetime import datetime

import filetype

from core.config import get_settings

logger = logging.getLogger(__name__)

# 无法通过文件头识别的纯文本格式
TEXT_EXTENSIONS = {'txt', 'md', 'json', 'xml', 'csv', 'html', 'htm'}

# 同一格式的扩展名别名
EXTENSION_ALIASES = {
    'jpeg': 'jpg',
    'tif': 'tiff',
}


class StorageManager:
    """文件存储管理器"""

    def __init__(self, upload_dir: Optional[str] = None, max_size: Optional[int] = None):
        settings = get_settings()
        # 使用绝对路径，避免工作目录差异导致多处生成 storage
        self.upload_dir = Path(upload_dir or settings.upload_dir).resolve()
        self.max_size = max_size if max_size is not None else settings.max_upload_size
        self.allowed_extensions = {
            # 图片
            'jpg', 'jpeg', 'png', 'gif', 'webp', 'svg', 'bmp',
            # 文档
            'pdf', 'doc', 'docx', 'xls', 'xlsx', 'ppt', 'pptx', 'epub',
            # 音视频
            'mp3', 'mp4', 'webm',
            # 压缩文件
            'zip', 'tar', 'gz',
        } | TEXT_EXTENSIONS

        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def generate_filename(self, original_filename: str, user_id: int) -> Tuple[str, Path]:
        """
        生成唯一存储路径

        Returns:
            (相对路径, 完整路径)，结构为 brain/{user_id}/YYYY/MM/{uuid}.{ext}
        """
        ext = Path(original_filename).suffix.lower().lstrip('.')
        file_id = uuid.uuid4().hex
        filename = f"{file_id}.{ext}" if ext else file_id

        date_dir = datetime.now().strftime("%Y/%m")
        relative_path = f"brain/{user_id}/{date_dir}/{filename}"
        full_path = self.upload_dir / relative_path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return relative_path, full_path

    def validate_file(self, filename: str, size: int, content: Optional[bytes] = None) -> Tuple[bool, Optional[str]]:
        """
        验证文件大小、扩展名，并用文件头校验真实类型

        Returns:
            (是否有效, 错误信息)
        """
        if size > self.max_size:
            return False, f"文件大小超过限制（最大 {self.max_size / 1024 / 1024:.1f}MB）"

        ext = Path(filename).suffix.lower().lstrip('.')
        if not ext:
            return False, "文件缺少扩展名"
        if ext not in self.allowed_extensions:
            return False, f"不支持的文件类型: {ext}"

        if content:
            kind = filetype.guess(content)
            if kind is None:
                if ext not in TEXT_EXTENSIONS:
                    # 扩展名已在白名单内，仅记录
                    logger.warning(f"无法识别文件真实类型: {filename}")
            else:
                detected = EXTENSION_ALIASES.get(kind.extension.lower(), kind.extension.lower())
                expected = EXTENSION_ALIASES.get(ext, ext)
                # docx/xlsx/pptx/epub 的文件头与 zip 相同
                if detected != expected and not (detected == 'zip' and expected in {'docx', 'xlsx', 'pptx', 'epub'}):
                    return False, f"文件类型不匹配：扩展名为 {ext}，实际为 {kind.extension}（{kind.mime}）"

        return True, None

    def guess_mime(self, content: bytes) -> Optional[str]:
        kind = filetype.guess(content) if content else None
        return kind.mime if kind else None

    def save_file(self, content: bytes, original_filename: str, user_id: int) -> str:
        """写入文件并返回相对路径"""
        relative_path, full_path = self.generate_filename(original_filename, user_id)
        full_path.write_bytes(content)
        logger.debug(f"文件已保存: {relative_path} ({len(content)} 字节)")
        return relative_path

    def _is_safe_path(self, path: Path) -> bool:
        """检查路径是否位于上传目录内（防止路径遍历）"""
        return path.resolve().is_relative_to(self.upload_dir)

    def _resolve(self, relative_path: str) -> Optional[Path]:
        if '..' in relative_path or relative_path.startswith('/'):
            logger.warning(f"检测到可疑路径: {relative_path}")
            return None

        full_path = self.upload_dir / relative_path
        if not self._is_safe_path(full_path):
            logger.warning(f"路径遍历尝试被阻止: {relative_path}")
            return None
        return full_path

    def get_file_path(self, relative_path: str) -> Optional[Path]:
        """获取文件完整路径，不存在或路径不安全返回 None"""
        full_path = self._resolve(relative_path)
        if full_path and full_path.is_file():
            return full_path
        return None

    def delete_file(self, relative_path: str) -> bool:
        """
        删除文件（尽力而为）

        删除失败只记录日志并返回 False，调用方的数据删除不受影响
        """
        full_path = self._resolve(relative_path)
        if full_path is None:
            return False

        try:
            if not full_path.exists():
                return False
            full_path.unlink()
            # 清理空目录
            parent = full_path.parent
            if parent != self.upload_dir and not any(parent.iterdir()):
                parent.rmdir()
            return True
        except OSError as e:
            logger.error(f"删除文件失败 {relative_path}: {e}")
            return False


# 全局存储管理器实例
_storage_manager: Optional[StorageManager] = None


def get_storage_manager() -> StorageManager:
    """获取存储管理器实例"""
    global _storage_manager
    if _storage_manager is None:
        _storage_manager = StorageManager()
    return _storage_manager
