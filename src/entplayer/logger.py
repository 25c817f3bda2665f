"""進捗表示およびログ出力のインターフェース定義

このモジュールは、プロジェクト読み込みの進捗表示とログ出力を扱う。
VerboseLevel (詳細ログレベル)に応じてコンソール出力を制御し、
サーバーやパイプラインが使う標準loggingの出力先も設定する。
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, TextIO

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from entplayer.pipeline import LoadPhase


class VerboseLevel(IntEnum):
    """詳細ログレベル

    QUIET: エラーのみ出力
    NORMAL: 進捗とサマリ出力
    VERBOSE: 書き換えできなかったアセットなども出力（-vオプション）
    DEBUG: リクエストログも出力（-vvオプション）
    """

    QUIET = -1
    NORMAL = 0
    VERBOSE = 1
    DEBUG = 2


# VerboseLevelと標準loggingのレベルの対応
_LOGGING_LEVELS: dict[VerboseLevel, int] = {
    VerboseLevel.QUIET: logging.ERROR,
    VerboseLevel.NORMAL: logging.WARNING,
    VerboseLevel.VERBOSE: logging.INFO,
    VerboseLevel.DEBUG: logging.DEBUG,
}


class ProgressDisplay(Protocol):
    """進捗表示のプロトコル"""

    def start(self, phase: LoadPhase) -> None:
        """フェーズ開始を表示する"""
        ...

    def finish(self, success: bool, message: str = "") -> None:
        """フェーズ終了を表示する"""
        ...


@dataclass
class LogConfig:
    """ログ設定

    Attributes:
        verbose_level: ログの詳細度レベル
        log_file: ログ出力先ファイルパス（Noneの場合はファイル出力なし）
        use_emoji: emoji表示を使用するか
    """

    verbose_level: VerboseLevel = VerboseLevel.NORMAL
    log_file: Path | None = None
    use_emoji: bool = True


def setup_logging(verbose_level: VerboseLevel, console: Console | None = None) -> None:
    """標準loggingの出力をrichのハンドラーに設定する

    Args:
        verbose_level: ログの詳細度レベル
        console: 出力先のConsole（Noneの場合は標準エラー出力）
    """
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
    )
    logging.basicConfig(
        level=_LOGGING_LEVELS[verbose_level],
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


class PlayerLogger:
    """コンソールログ出力クラス

    VerboseLevelに応じてメッセージのフィルタリングを行い、
    読み込み進捗の表示インスタンスの作成も担当する。

    使用例:
        >>> config = LogConfig(verbose_level=VerboseLevel.VERBOSE)
        >>> logger = PlayerLogger(config)
        >>> logger.info("サーバーを開始します")
    """

    _ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

    def __init__(self, config: LogConfig) -> None:
        """ロガーを初期化する

        Args:
            config: ログ設定
        """
        self._config = config
        self._log_file: TextIO | None = None
        if config.log_file:
            # クラス自体がコンテキストマネージャとして動作し、__exit__でファイルを閉じる
            self._log_file = open(config.log_file, "w", encoding="utf-8")  # noqa: SIM115

    def __enter__(self) -> PlayerLogger:
        return self

    def __exit__(self, *args: object) -> None:
        if self._log_file:
            self._log_file.close()
            self._log_file = None

    @property
    def config(self) -> LogConfig:
        """ログ設定を取得する"""
        return self._config

    def _print(self, message: str, file: TextIO | None = None) -> None:
        if file is None:
            file = sys.stdout
        print(message, file=file)

    def _log_to_file(self, level: str, message: str) -> None:
        if self._log_file:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            clean_message = self._ANSI_ESCAPE_PATTERN.sub("", message)
            self._log_file.write(f"[{timestamp}] {level}: {clean_message}\n")
            self._log_file.flush()

    def info(self, message: str) -> None:
        """情報メッセージを出力する（NORMAL以上）"""
        if self._config.verbose_level >= VerboseLevel.NORMAL:
            self._print(message)
        self._log_to_file("INFO", message)

    def verbose(self, message: str) -> None:
        """詳細メッセージを出力する（VERBOSE以上）"""
        if self._config.verbose_level >= VerboseLevel.VERBOSE:
            self._print(message)
        self._log_to_file("VERBOSE", message)

    def debug(self, message: str) -> None:
        """デバッグメッセージを出力する（DEBUG以上）"""
        if self._config.verbose_level >= VerboseLevel.DEBUG:
            self._print(message)
        self._log_to_file("DEBUG", message)

    def error(self, message: str) -> None:
        """エラーメッセージを標準エラー出力に出力する（常に出力）"""
        self._print(f"エラー: {message}", file=sys.stderr)
        self._log_to_file("ERROR", message)

    def warning(self, message: str) -> None:
        """警告メッセージを出力する（QUIET以外）"""
        if self._config.verbose_level > VerboseLevel.QUIET:
            self._print(f"警告: {message}")
        self._log_to_file("WARNING", message)

    def create_progress(self) -> ProgressDisplay:
        """進捗表示インスタンスを作成する

        Returns:
            進捗表示インスタンス
        """
        return ConsoleProgressDisplay(use_emoji=self._config.use_emoji)

    def log_load_summary(self, statistics: dict[str, Any], manifest_url: str) -> None:
        """読み込みサマリを出力する（NORMAL以上）

        Args:
            statistics: 読み込み統計情報
            manifest_url: マニフェストのURL
        """
        emoji = "✅" if self._config.use_emoji else "[OK]"
        self.info(f"{emoji} Project loaded!")
        self.info(f"   Manifest: {manifest_url}")
        if "archive_format" in statistics:
            self.info(
                f"   Archive: {statistics['archive_format']} "
                f"({statistics.get('entry_count', 0)} entries)"
            )
        if "rewritten_count" in statistics:
            self.info(f"   Rewritten assets: {statistics['rewritten_count']}")
        unresolved = statistics.get("unresolved_count", 0)
        if unresolved:
            self.warning(f"ファイルが見つからないアセットが{unresolved}件あります")
        if "total_time_seconds" in statistics:
            self.verbose(f"   Time: {statistics['total_time_seconds']}s")


class ConsoleProgressDisplay:
    """コンソール進捗表示

    読み込みパイプラインの各フェーズの開始と終了をコンソールに表示する。
    """

    PHASE_EMOJI: dict[str, str] = {
        "extract": "\U0001f4e6",
        "rewrite": "\U0001f504",
        "publish": "\U0001f310",
    }

    PHASE_NAME: dict[str, str] = {
        "extract": "Extracting project",
        "rewrite": "Rewriting asset paths",
        "publish": "Publishing project",
    }

    def __init__(self, use_emoji: bool = True) -> None:
        self._use_emoji = use_emoji

    def start(self, phase: LoadPhase) -> None:
        """フェーズ開始を表示する"""
        emoji = self.PHASE_EMOJI.get(phase.value, "") if self._use_emoji else ""
        name = self.PHASE_NAME.get(phase.value, str(phase))
        prefix = f"{emoji} " if emoji else ""
        print(f"{prefix}{name}...")

    def finish(self, success: bool, message: str = "") -> None:
        """フェーズ終了を表示する"""
        if success:
            mark = "✓" if self._use_emoji else "done"
            print(f"   {mark}")
        else:
            mark = "✗" if self._use_emoji else "failed"
            msg_part = f": {message}" if message else ""
            print(f"   {mark}{msg_part}")
