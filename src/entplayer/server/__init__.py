"""Server module for entplayer.

プレイヤーと展開済みプロジェクトをループバックHTTPで配信するモジュール。
"""

from entplayer.server.local import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    LocalServer,
    ProjectRootRef,
    ServerResponse,
    ServerState,
)
from entplayer.server.mime import DEFAULT_MIME_TYPE, guess_mime_type

__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_MIME_TYPE",
    "DEFAULT_PORT",
    "LocalServer",
    "ProjectRootRef",
    "ServerResponse",
    "ServerState",
    "guess_mime_type",
]
