"""Configuration module for entplayer."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from entplayer.archive.extractor import DEFAULT_MANIFEST_NAME
from entplayer.server.local import DEFAULT_HOST, DEFAULT_PORT

LOOPBACK_HOSTS = ("127.0.0.1", "localhost")

class ConfigError(Exception):
    """設定ファイル読み込みエラー"""

    pass

@dataclass(frozen=True)
class ServerConfig:
    """ローカルサーバー設定"""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

@dataclass(frozen=True)
class EntplayerConfig:
    """ルート設定"""

    server: ServerConfig = field(default_factory=ServerConfig)
    player_dir: Path | None = None
    work_dir: Path | None = None
    manifest_name: str = DEFAULT_MANIFEST_NAME

def load_config(path: Path) -> EntplayerConfig:
    """設定ファイルを読み込む

    Args:
        path: 設定ファイルパス

    Returns:
        EntplayerConfig: 読み込んだ設定（デフォルトとマージ済み）

    Raises:
        ConfigError: ファイル読み込み、パース、または値の検証エラー
    """
    if not path.exists():
        raise ConfigError(f"設定ファイルが見つかりません: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML解析エラー: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("設定ファイルはYAMLのマッピング形式である必要があります")

    default = get_default_config()

    return EntplayerConfig(
        server=_merge_server_config(data.get("server", {}), default.server),
        player_dir=_parse_path(data.get("player_dir"), path.parent, default.player_dir),
        work_dir=_parse_path(data.get("work_dir"), path.parent, default.work_dir),
        manifest_name=_parse_manifest_name(data.get("manifest_name"), default.manifest_name),
    )

def get_default_config() -> EntplayerConfig:
    """デフォルト設定を取得する"""
    return EntplayerConfig()

def _merge_server_config(data: dict[str, Any], default: ServerConfig) -> ServerConfig:
    """サーバー設定をマージする"""
    if not isinstance(data, dict):
        return default
    host = data.get("host", default.host)
    if host not in LOOPBACK_HOSTS:
        raise ConfigError(f"server.hostにはループバックアドレスのみ指定できます: {host}")
    port = data.get("port", default.port)
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
        raise ConfigError(f"server.portが不正です: {port}")
    return ServerConfig(host=host, port=port)

def _parse_path(value: Any, base_dir: Path, default: Path | None) -> Path | None:
    """パス設定を解釈する（相対パスは設定ファイルの場所を基準にする）"""
    if value is None:
        return default
    path = Path(str(value)).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path

def _parse_manifest_name(value: Any, default: str) -> str:
    """マニフェストファイル名を検証する"""
    if value is None:
        return default
    if not isinstance(value, str) or not value or "/" in value or "\\" in value:
        raise ConfigError(f"manifest_nameが不正です: {value}")
    return value
