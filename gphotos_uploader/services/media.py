"""
Media type checks - which local files the photo service accepts.
"""
from pathlib import Path

VIDEO_EXTENSIONS = {
    '.mp4', '.avi', '.mkv', '.mov', '.wmv', '.flv', '.webm', '.m4v',
    '.3gp', '.ogv', '.mts', '.m2ts', '.ts', '.mpeg', '.mpg',
}
IMAGE_EXTENSIONS = {
    '.jpg', '.jpeg', '.png', '.webp', '.gif', '.bmp', '.tiff', '.tif',
    '.heic', '.heif', '.ico', '.avif',
}
RAW_EXTENSIONS = {
    '.arw', '.cr2', '.cr3', '.dng', '.nef', '.nrw', '.orf', '.raf', '.rw2',
}


def is_video(path) -> bool:
    return Path(path).suffix.lower() in VIDEO_EXTENSIONS


def is_image(path) -> bool:
    suffix = Path(path).suffix.lower()
    return suffix in IMAGE_EXTENSIONS or suffix in RAW_EXTENSIONS


def is_media(path) -> bool:
    return is_video(path) or is_image(path)
