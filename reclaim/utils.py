# utils.py: Timing, progress tracking and upload validation helpers

import logging
import os
import time
from typing import Optional

from tqdm import tqdm

logger = logging.getLogger("reclaim")

IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.bmp', '.tif', '.tiff', '.webp'}
VIDEO_EXTENSIONS = {'.mp4', '.mov', '.mkv', '.webm'}

IMAGE_TYPES = {"image/png", "image/jpeg", "image/jpg"}
VIDEO_TYPES = {"video/mp4", "video/quicktime", "video/webm", "video/x-matroska"}


def progress_wrapper(iterable, desc: str = "Processing", disable: bool = False):
    """Wrapper for tqdm progress bars"""
    return tqdm(iterable, desc=desc, disable=disable,
                bar_format='{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]')


class Timer:
    """Context manager for timing operations"""
    def __init__(self, name: str = "Operation"):
        self.name = name
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, *args):
        self.duration = time.time() - self.start_time
        logger.info(f"{self.name} completed in {self.duration:.2f}s")


def media_kind(path: Optional[str] = None, content_type: Optional[str] = None) -> Optional[str]:
    """'image', 'video' or None, from a content type or a file extension"""
    if content_type:
        if content_type in IMAGE_TYPES:
            return "image"
        if content_type in VIDEO_TYPES:
            return "video"
    if path:
        _, ext = os.path.splitext(path.lower())
        if ext in IMAGE_EXTENSIONS:
            return "image"
        if ext in VIDEO_EXTENSIONS:
            return "video"
    return None


def validate_media_file(file_path: str, max_size_mb: int = 50) -> bool:
    """Validate file existence, size and extension"""
    if not os.path.exists(file_path):
        return False

    size_mb = os.path.getsize(file_path) / (1024 * 1024)
    if size_mb > max_size_mb:
        return False

    return media_kind(file_path) is not None
