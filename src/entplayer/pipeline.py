"""プロジェクト読み込みパイプライン

ArchiveExtractor -> ManifestRewriter -> LocalServer の各コンポーネントを連携させ、
.entアーカイブを展開・書き換えしてローカルサーバーに公開する。

読み込みは作業ディレクトリ内の ``incoming`` に展開してから世代ディレクトリへ移動し、
最後にプロジェクトルートを差し替える。途中で失敗しても公開中のプロジェクトはそのまま残る。
"""

from __future__ import annotations

import logging
import shutil
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from entplayer.archive.extractor import (
    DEFAULT_MANIFEST_NAME,
    ArchiveExtractor,
    ArchiveSource,
    ExtractedProject,
)
from entplayer.manifest.rewriter import ManifestRewriter, RewriteReport
from entplayer.server.local import LocalServer

logger = logging.getLogger(__name__)

INCOMING_DIR_NAME = "incoming"
GENERATION_PREFIX = "project-"


class LoadPhase(Enum):
    """読み込みフェーズ

    パイプラインは以下の順序で実行される:
    1. EXTRACT: アーカイブ展開
    2. REWRITE: マニフェスト書き換え
    3. PUBLISH: プロジェクトルート差し替え
    """

    EXTRACT = "extract"
    REWRITE = "rewrite"
    PUBLISH = "publish"


@dataclass(frozen=True)
class LoadProgress:
    """読み込み進捗情報

    Attributes:
        phase: 現在実行中のフェーズ
        current: 現在の進捗
        total: 総数
        message: 追加の進捗メッセージ（オプション）
    """

    phase: LoadPhase
    current: int
    total: int
    message: str = ""


class ProgressCallback(Protocol):
    """進捗コールバックのプロトコル"""

    def __call__(self, progress: LoadProgress) -> None:
        """進捗情報を受け取るコールバック

        Args:
            progress: 現在の進捗情報
        """
        ...


@dataclass
class LoadResult:
    """読み込み結果

    Attributes:
        success: 読み込みが成功したか
        project_root: 公開したプロジェクトルート（失敗時はNone）
        manifest_url: マニフェストのURL（失敗時は空文字列）
        error_message: エラーメッセージ（成功時は空文字列）
        error: 発生した例外（成功時はNone）
        failed_phase: 失敗したフェーズ（成功時はNone）
        phases_completed: 完了したフェーズのリスト
        statistics: 実行統計情報
    """

    success: bool
    project_root: Path | None
    manifest_url: str = ""
    error_message: str = ""
    error: Exception | None = None
    failed_phase: LoadPhase | None = None
    phases_completed: list[LoadPhase] = field(default_factory=list)
    statistics: dict[str, Any] = field(default_factory=dict)


@dataclass
class _LoadContext:
    """1回の読み込み処理の状態"""

    source: ArchiveSource
    incoming_dir: Path
    project: ExtractedProject | None = None
    report: RewriteReport | None = None
    published_root: Path | None = None
    manifest_url: str = ""


class LoadPipeline:
    """プロジェクト読み込みオーケストレーター

    使用例:
        >>> server = LocalServer(Path("player"))
        >>> server.start()
        >>> pipeline = LoadPipeline(server, Path("work"))
        >>> result = pipeline.submit(Path("game.ent")).result()
        >>> result.manifest_url
        'http://127.0.0.1:18080/project/project.json'
    """

    def __init__(
        self,
        server: LocalServer,
        work_dir: Path,
        manifest_name: str = DEFAULT_MANIFEST_NAME,
    ) -> None:
        """パイプラインを初期化する

        Args:
            server: プロジェクトを公開するローカルサーバー
            work_dir: 作業ディレクトリ
            manifest_name: マニフェストファイル名
        """
        self._server = server
        self._work_dir = work_dir
        self._extractor = ArchiveExtractor(manifest_name)
        self._rewriter = ManifestRewriter()
        self._executor: ThreadPoolExecutor | None = None
        self._published_generation: Path | None = None

    def __enter__(self) -> LoadPipeline:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    @property
    def work_dir(self) -> Path:
        """作業ディレクトリを取得する"""
        return self._work_dir

    def submit(
        self, source: ArchiveSource, progress_callback: ProgressCallback | None = None
    ) -> Future[LoadResult]:
        """バックグラウンドで読み込みを実行する

        Args:
            source: アーカイブのバイト列、バイナリストリーム、またはファイルパス
            progress_callback: 進捗通知用コールバック（オプション）

        Returns:
            読み込み結果のFuture
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="entplayer-load")
        return self._executor.submit(self.run, source, progress_callback)

    def shutdown(self, wait: bool = True) -> None:
        """バックグラウンド実行用のワーカーを停止する

        Args:
            wait: 実行中の読み込みの完了を待つか
        """
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def run(
        self, source: ArchiveSource, progress_callback: ProgressCallback | None = None
    ) -> LoadResult:
        """読み込みを実行する

        各フェーズ（展開、書き換え、公開）を順次実行する。
        失敗した場合は例外を送出せず、失敗を表すLoadResultを返す。

        Args:
            source: アーカイブのバイト列、バイナリストリーム、またはファイルパス
            progress_callback: 進捗通知用コールバック（オプション）

        Returns:
            読み込み結果
        """
        start_time = time.time()
        context = _LoadContext(source=source, incoming_dir=self._work_dir / INCOMING_DIR_NAME)
        phases_completed: list[LoadPhase] = []
        statistics: dict[str, Any] = {}
        current_phase: LoadPhase | None = None

        try:
            for phase in LoadPhase:
                current_phase = phase
                phase_start = time.time()

                if progress_callback is not None:
                    progress_callback(
                        LoadProgress(
                            phase=phase,
                            current=0,
                            total=1,
                            message=f"{phase.value}フェーズを開始...",
                        )
                    )

                self._execute_phase(phase, context, statistics)

                phases_completed.append(phase)
                statistics[f"{phase.value}_time_seconds"] = round(time.time() - phase_start, 2)

                if progress_callback is not None:
                    progress_callback(
                        LoadProgress(
                            phase=phase,
                            current=1,
                            total=1,
                            message=f"{phase.value}フェーズが完了",
                        )
                    )

            statistics["total_time_seconds"] = round(time.time() - start_time, 2)
            logger.info(f"プロジェクトを読み込みました: {context.manifest_url}")

            return LoadResult(
                success=True,
                project_root=context.published_root,
                manifest_url=context.manifest_url,
                phases_completed=phases_completed,
                statistics=statistics,
            )
        except Exception as e:
            logger.warning(f"プロジェクトの読み込みに失敗しました: {e}")
            return LoadResult(
                success=False,
                project_root=None,
                error_message=str(e),
                error=e,
                failed_phase=current_phase,
                phases_completed=phases_completed,
                statistics=statistics,
            )

    def _execute_phase(
        self, phase: LoadPhase, context: _LoadContext, statistics: dict[str, Any]
    ) -> None:
        """個別フェーズを実行する

        Args:
            phase: 実行するフェーズ
            context: 読み込み処理の状態
            statistics: 統計情報の格納先
        """
        match phase:
            case LoadPhase.EXTRACT:
                self._execute_extract(context, statistics)
            case LoadPhase.REWRITE:
                self._execute_rewrite(context, statistics)
            case LoadPhase.PUBLISH:
                self._execute_publish(context)

    def _execute_extract(self, context: _LoadContext, statistics: dict[str, Any]) -> None:
        """EXTRACTフェーズ: incomingディレクトリを作り直して展開する"""
        if context.incoming_dir.exists():
            shutil.rmtree(context.incoming_dir)
        context.incoming_dir.mkdir(parents=True)

        project = self._extractor.extract(context.source, context.incoming_dir)
        context.project = project
        statistics["archive_format"] = project.archive_format.value
        statistics["entry_count"] = project.entry_count

    def _execute_rewrite(self, context: _LoadContext, statistics: dict[str, Any]) -> None:
        """REWRITEフェーズ: マニフェストのアセットパスを書き換える

        Raises:
            ValueError: 展開フェーズが完了していない場合
        """
        if context.project is None:
            raise ValueError("展開フェーズが完了していません")

        report = self._rewriter.rewrite(
            context.project.manifest_path,
            context.project.root,
            self._server.project_base_url,
        )
        context.report = report
        statistics["rewritten_count"] = report.rewritten
        statistics["unresolved_count"] = len(report.unresolved)

    def _execute_publish(self, context: _LoadContext) -> None:
        """PUBLISHフェーズ: 世代ディレクトリへ移動してプロジェクトルートを差し替える

        Raises:
            ValueError: 展開フェーズが完了していない場合
        """
        project = context.project
        if project is None:
            raise ValueError("展開フェーズが完了していません")

        generation_dir = self._work_dir / f"{GENERATION_PREFIX}{uuid.uuid4().hex[:12]}"
        context.incoming_dir.rename(generation_dir)

        root = generation_dir / project.root.relative_to(context.incoming_dir)
        manifest_rel = project.manifest_path.relative_to(project.root).as_posix()

        self._server.set_project_root(root)
        context.published_root = root
        context.manifest_url = self._server.project_base_url + manifest_rel

        previous = self._published_generation
        self._published_generation = generation_dir
        self._remove_old_generations(keep={generation_dir, previous})

    def _remove_old_generations(self, keep: set[Path | None]) -> None:
        """公開中と直前の世代以外の世代ディレクトリを削除する

        差し替え前のルートを読んだリクエストが処理中でも、
        直前の世代のファイルは次の読み込みまで残る。

        Args:
            keep: 残す世代ディレクトリ
        """
        for child in self._work_dir.iterdir():
            if child.is_dir() and child.name.startswith(GENERATION_PREFIX) and child not in keep:
                logger.debug(f"古いプロジェクトを削除します: {child}")
                shutil.rmtree(child, ignore_errors=True)
