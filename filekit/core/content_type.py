"""Content-type detection: extension table first, then magic-byte sniffing."""
from __future__ import annotations

DEFAULT_CONTENT_TYPE = "application/octet-stream"

EXTENSION_TYPES: dict[str, str] = {
    # images
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "avif": "image/avif",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "ico": "image/x-icon",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    # documents
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    # text
    "txt": "text/plain",
    "md": "text/markdown",
    "csv": "text/csv",
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "js": "text/javascript",
    "json": "application/json",
    "xml": "application/xml",
    # archives
    "zip": "application/zip",
    "gz": "application/gzip",
    "tar": "application/x-tar",
    "7z": "application/x-7z-compressed",
    # audio
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "flac": "audio/flac",
    "m4a": "audio/mp4",
    # video
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    # fonts
    "woff": "font/woff",
    "woff2": "font/woff2",
    "ttf": "font/ttf",
    "otf": "font/otf",
}

# Evaluated in order; first prefix match wins.
MAGIC_SIGNATURES: list[tuple[bytes, str]] = [
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG", "image/png"),
    (b"GIF", "image/gif"),
    (b"%PDF", "application/pdf"),
    (b"PK\x03\x04", "application/zip"),
]


def content_type_from_extension(key: str) -> str | None:
    """Look up the MIME type for the key's extension, or None."""
    name = key.rsplit("/", 1)[-1]
    if "." not in name:
        return None
    ext = name.rsplit(".", 1)[-1].lower()
    return EXTENSION_TYPES.get(ext)


def sniff_content_type(payload: bytes) -> str | None:
    """Match the first bytes of *payload* against MAGIC_SIGNATURES."""
    head = bytes(payload[:8])
    for signature, mime in MAGIC_SIGNATURES:
        if head.startswith(signature):
            return mime
    return None


def detect_content_type(key: str, payload: bytes) -> str:
    """Best-effort MIME type for an object. Never raises."""
    try:
        return (
            content_type_from_extension(key)
            or sniff_content_type(payload)
            or DEFAULT_CONTENT_TYPE
        )
    except (TypeError, ValueError):
        return DEFAULT_CONTENT_TYPE
