"""Manifest module for entplayer.

project.json内のアセット参照をローカルサーバーURLへ書き換えるモジュール。
"""

from entplayer.manifest.rewriter import (
    ASSET_EXTENSIONS,
    ManifestParseError,
    ManifestRewriter,
    RewriteReport,
    is_asset_candidate,
    load_manifest,
    save_manifest,
)

__all__ = [
    "ASSET_EXTENSIONS",
    "ManifestParseError",
    "ManifestRewriter",
    "RewriteReport",
    "is_asset_candidate",
    "load_manifest",
    "save_manifest",
]
