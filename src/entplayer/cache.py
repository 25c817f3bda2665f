"""Cache module for entplayer.

展開済みプロジェクトを置く作業ディレクトリの場所と管理を扱う。
"""

from __future__ import annotations

import os
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path

from entplayer.pipeline import GENERATION_PREFIX

WORK_DIR_NAME = "current_project"


@dataclass(frozen=True)
class CacheInfo:
    """キャッシュ情報"""

    directory: Path
    size_bytes: int
    project_count: int


def get_cache_dir() -> Path:
    """OSごとのキャッシュディレクトリを取得する"""
    system = platform.system()

    if system == "Linux":
        xdg_cache = os.environ.get("XDG_CACHE_HOME")
        base = Path(xdg_cache) if xdg_cache else Path.home() / ".cache"
    elif system == "Darwin":
        base = Path.home() / "Library" / "Caches"
    elif system == "Windows":
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            base = Path(local_app_data) / "entplayer"
        else:
            base = Path.home() / "AppData" / "Local" / "entplayer"
        return base / "cache"
    else:
        base = Path.home() / ".cache"

    return base / "entplayer"


def get_work_dir() -> Path:
    """プロジェクト展開用の作業ディレクトリを取得する"""
    return get_cache_dir() / WORK_DIR_NAME


def clear_cache(work_dir: Path | None = None) -> None:
    """作業ディレクトリを削除する

    Args:
        work_dir: 削除するディレクトリ（Noneの場合はデフォルトの作業ディレクトリ）
    """
    target = work_dir if work_dir is not None else get_work_dir()
    if target.exists():
        shutil.rmtree(target)


def get_cache_info(work_dir: Path | None = None) -> CacheInfo:
    """作業ディレクトリの情報を取得する

    Args:
        work_dir: 対象ディレクトリ（Noneの場合はデフォルトの作業ディレクトリ）
    """
    target = work_dir if work_dir is not None else get_work_dir()

    if not target.exists():
        return CacheInfo(directory=target, size_bytes=0, project_count=0)

    total_size = sum(f.stat().st_size for f in target.rglob("*") if f.is_file())
    project_count = sum(
        1 for d in target.iterdir() if d.is_dir() and d.name.startswith(GENERATION_PREFIX)
    )

    return CacheInfo(directory=target, size_bytes=total_size, project_count=project_count)
