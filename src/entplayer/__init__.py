"""entplayer - .entプロジェクトをローカルHTTPサーバーで配信するツール"""

from entplayer.archive import ArchiveExtractor, ArchiveFormat, ExtractedProject
from entplayer.logger import LogConfig, PlayerLogger, ProgressDisplay, VerboseLevel
from entplayer.manifest import ManifestRewriter, RewriteReport
from entplayer.pipeline import (
    LoadPhase,
    LoadPipeline,
    LoadProgress,
    LoadResult,
    ProgressCallback,
)
from entplayer.server import LocalServer, ServerState

__version__ = "0.1.0"

__all__ = [
    "ArchiveExtractor",
    "ArchiveFormat",
    "ExtractedProject",
    "LoadPhase",
    "LoadPipeline",
    "LoadProgress",
    "LoadResult",
    "LocalServer",
    "LogConfig",
    "ManifestRewriter",
    "PlayerLogger",
    "ProgressCallback",
    "ProgressDisplay",
    "RewriteReport",
    "ServerState",
    "VerboseLevel",
]
