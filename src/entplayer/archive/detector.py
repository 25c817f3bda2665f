"""アーカイブ形式判定モジュール

ファイル拡張子は信用せず、先頭バイト列（マジックナンバー）のみから
アーカイブ形式を判定する。
"""

import tarfile
from enum import Enum

ZIP_MAGIC = b"PK"
GZIP_MAGIC = b"\x1f\x8b"

# tarヘッダーは先頭512バイトのブロック
TAR_BLOCK_SIZE = tarfile.BLOCKSIZE

# 判定に必要な先頭バイト数
HEADER_SIZE = TAR_BLOCK_SIZE


class ArchiveFormat(Enum):
    """検出可能なアーカイブ形式"""

    ZIP = "zip"
    """ZIPアーカイブ"""

    TAR = "tar"
    """非圧縮tarアーカイブ"""

    TAR_GZ = "tar.gz"
    """gzip圧縮されたtarアーカイブ"""

    UNSUPPORTED = "unsupported"
    """未対応または破損した形式"""


def detect_format(header: bytes) -> ArchiveFormat:
    """先頭バイト列からアーカイブ形式を判定する

    ZIP・gzipはシグネチャで判定する。どちらでもない場合は先頭ブロックを
    tarヘッダーとして解釈し、チェックサムまで検証できた場合のみTARとみなす。

    Args:
        header: ファイル先頭のバイト列（tar判定には512バイト必要）

    Returns:
        判定されたアーカイブ形式
    """
    if header.startswith(ZIP_MAGIC):
        return ArchiveFormat.ZIP
    if header.startswith(GZIP_MAGIC):
        return ArchiveFormat.TAR_GZ
    if _is_tar_header(header):
        return ArchiveFormat.TAR
    return ArchiveFormat.UNSUPPORTED


def _is_tar_header(header: bytes) -> bool:
    """先頭ブロックが有効なtarヘッダーか判定する

    Args:
        header: ファイル先頭のバイト列

    Returns:
        有効なtarヘッダーの場合True
    """
    if len(header) < TAR_BLOCK_SIZE:
        return False
    try:
        tarfile.TarInfo.frombuf(header[:TAR_BLOCK_SIZE], tarfile.ENCODING, "surrogateescape")
    except tarfile.HeaderError:
        return False
    return True
