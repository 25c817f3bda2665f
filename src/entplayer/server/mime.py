"""拡張子からMIMEタイプを推定するモジュール"""

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES: dict[str, str] = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".txt": "text/plain",
    ".xml": "application/xml",
    ".wasm": "application/wasm",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".mp4": "video/mp4",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
}


def guess_mime_type(name: str) -> str:
    """ファイル名の拡張子からMIMEタイプを推定する

    Args:
        name: ファイル名またはパス

    Returns:
        MIMEタイプ（不明な場合は application/octet-stream）
    """
    dot = name.rfind(".")
    if dot == -1 or "/" in name[dot:]:
        return DEFAULT_MIME_TYPE
    return MIME_TYPES.get(name[dot:].lower(), DEFAULT_MIME_TYPE)
