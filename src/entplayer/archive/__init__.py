"""Archive module for entplayer.

.entプロジェクトアーカイブの形式判定と安全な展開を行うモジュール。
"""

from entplayer.archive.detector import ArchiveFormat, detect_format
from entplayer.archive.extractor import (
    DEFAULT_MANIFEST_NAME,
    ArchiveError,
    ArchiveExtractor,
    ExtractedProject,
    MissingManifestError,
    UnsupportedFormatError,
)
from entplayer.paths import SecurityViolationError

__all__ = [
    "ArchiveError",
    "ArchiveExtractor",
    "ArchiveFormat",
    "DEFAULT_MANIFEST_NAME",
    "ExtractedProject",
    "MissingManifestError",
    "SecurityViolationError",
    "UnsupportedFormatError",
    "detect_format",
]
