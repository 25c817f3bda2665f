"""CLI entry point for entplayer."""

import time
from collections.abc import Callable
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from entplayer import __version__
from entplayer.archive import DEFAULT_MANIFEST_NAME, ArchiveError, ArchiveExtractor
from entplayer.cache import clear_cache, get_cache_info, get_work_dir
from entplayer.config import (
    ConfigError,
    EntplayerConfig,
    ServerConfig,
    get_default_config,
    load_config,
)
from entplayer.logger import LogConfig, PlayerLogger, ProgressDisplay, VerboseLevel, setup_logging
from entplayer.manifest import ManifestParseError, ManifestRewriter
from entplayer.paths import SecurityViolationError
from entplayer.pipeline import LoadPipeline, LoadProgress
from entplayer.server import DEFAULT_HOST, DEFAULT_PORT, LocalServer, ServerState
from entplayer.types import ExitCode

app = typer.Typer(help=".entプロジェクトを展開してローカルHTTPサーバーで配信するCLIツール")
console = Console()

DEFAULT_PLAYER_DIR = Path(__file__).parent / "player"
DEFAULT_PROJECT_BASE_URL = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}/project/"


def _format_size(size_bytes: int) -> str:
    """バイト数を人間が読みやすい形式に変換する"""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"


def _load_settings(
    config_path: Path | None,
    port: int | None,
    player_dir: Path | None,
    work_dir: Path | None,
) -> EntplayerConfig:
    """設定ファイルとCLIオプションをマージする"""
    try:
        config = load_config(config_path) if config_path is not None else get_default_config()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(ExitCode.INVALID_INPUT) from e

    return EntplayerConfig(
        server=ServerConfig(
            host=config.server.host,
            port=port if port is not None else config.server.port,
        ),
        player_dir=player_dir or config.player_dir or DEFAULT_PLAYER_DIR,
        work_dir=work_dir or config.work_dir or get_work_dir(),
        manifest_name=config.manifest_name,
    )


def _wait_for_interrupt(server: LocalServer) -> None:
    """Ctrl+Cが押されるまで待機する"""
    try:
        while server.state is ServerState.LISTENING:
            time.sleep(0.5)
    except KeyboardInterrupt:
        console.print("\n[yellow]停止しています...[/yellow]")


@app.command()
def serve(
    archive: Annotated[
        Path | None, typer.Argument(help="読み込む.entファイル（省略時はサーバーのみ起動）")
    ] = None,
    config_path: Annotated[Path | None, typer.Option("--config", help="設定ファイル")] = None,
    port: Annotated[int | None, typer.Option(help="待ち受けポート")] = None,
    player_dir: Annotated[Path | None, typer.Option(help="プレイヤー静的リソース")] = None,
    work_dir: Annotated[Path | None, typer.Option(help="展開用作業ディレクトリ")] = None,
    verbose: Annotated[int, typer.Option("-v", "--verbose", count=True, help="詳細ログ出力")] = 0,
    log_file: Annotated[Path | None, typer.Option(help="ログファイル出力先")] = None,
) -> None:
    """ローカルサーバーを起動してプロジェクトを配信する"""
    if archive is not None and not archive.is_file():
        console.print(f"[red]Error: ファイルが見つかりません: {archive}[/red]")
        raise typer.Exit(ExitCode.INVALID_INPUT)

    settings = _load_settings(config_path, port, player_dir, work_dir)
    assert settings.player_dir is not None and settings.work_dir is not None

    level = VerboseLevel(min(verbose, VerboseLevel.DEBUG))
    setup_logging(level)

    with PlayerLogger(LogConfig(verbose_level=level, log_file=log_file)) as logger:
        server = LocalServer(settings.player_dir, settings.server.host, settings.server.port)
        try:
            server.start()
        except OSError as e:
            logger.error(f"サーバーを起動できません: {e}")
            raise typer.Exit(ExitCode.ERROR) from e

        logger.info(f"ローカルサーバー開始: {server.base_url}")
        logger.info(f"Player: {server.player_base_url}index.html")
        logger.debug(f"作業ディレクトリ: {settings.work_dir}")

        with LoadPipeline(server, settings.work_dir, settings.manifest_name) as pipeline:
            try:
                if archive is not None:
                    display = logger.create_progress()
                    result = pipeline.submit(
                        archive, progress_callback=_progress_printer(display)
                    ).result()
                    if not result.success:
                        if result.failed_phase is not None:
                            display.finish(False, result.error_message)
                        logger.error(f"読み込み失敗: {result.error_message}")
                        raise typer.Exit(ExitCode.ERROR)
                    logger.log_load_summary(result.statistics, result.manifest_url)
                _wait_for_interrupt(server)
            finally:
                server.stop()

    raise typer.Exit(ExitCode.SUCCESS)


def _progress_printer(display: ProgressDisplay) -> Callable[[LoadProgress], None]:
    """進捗表示へ転送するコールバックを作成する"""

    def callback(progress: LoadProgress) -> None:
        if progress.current == 0:
            display.start(progress.phase)
        else:
            display.finish(True)

    return callback


@app.command()
def extract(
    archive: Annotated[Path, typer.Argument(help="展開する.entファイル")],
    output_dir: Annotated[Path, typer.Argument(help="展開先ディレクトリ")],
    base_url: Annotated[
        str, typer.Option(help="書き換え後のアセットURLプレフィックス")
    ] = DEFAULT_PROJECT_BASE_URL,
    manifest_name: Annotated[
        str, typer.Option(help="マニフェストファイル名")
    ] = DEFAULT_MANIFEST_NAME,
) -> None:
    """.entファイルを展開し、アセットパスを書き換える（配信はしない）"""
    if not archive.is_file():
        console.print(f"[red]Error: ファイルが見つかりません: {archive}[/red]")
        raise typer.Exit(ExitCode.INVALID_INPUT)

    if not base_url.endswith("/"):
        base_url += "/"

    try:
        project = ArchiveExtractor(manifest_name).extract(archive, output_dir)
        report = ManifestRewriter().rewrite(project.manifest_path, project.root, base_url)
    except (ArchiveError, SecurityViolationError, ManifestParseError, OSError) as e:
        console.print(f"[red]展開失敗: {e}[/red]")
        raise typer.Exit(ExitCode.ERROR) from e

    table = Table(title="Extracted Project")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Format", project.archive_format.value)
    table.add_row("Entries", str(project.entry_count))
    table.add_row("Root", str(project.root))
    table.add_row("Manifest", str(project.manifest_path))
    table.add_row("Rewritten", str(report.rewritten))
    table.add_row("Unresolved", str(len(report.unresolved)))

    console.print(table)
    for value in report.unresolved:
        console.print(f"[yellow]未解決: {value}[/yellow]")
    raise typer.Exit(ExitCode.SUCCESS)


# cache サブコマンドグループ
cache_app = typer.Typer(help="作業ディレクトリ管理")
app.add_typer(cache_app, name="cache")


@cache_app.command("clean")
def cache_clean(
    force: Annotated[bool, typer.Option("-f", "--force", help="確認なしで削除")] = False,
    work_dir: Annotated[Path | None, typer.Option(help="対象の作業ディレクトリ")] = None,
) -> None:
    """作業ディレクトリを削除する"""
    if not force:
        confirmed = typer.confirm("展開済みプロジェクトを削除しますか?")
        if not confirmed:
            console.print("[yellow]キャンセルしました[/yellow]")
            raise typer.Exit(ExitCode.SUCCESS)

    clear_cache(work_dir)
    console.print("[green]展開済みプロジェクトを削除しました[/green]")
    raise typer.Exit(ExitCode.SUCCESS)


@cache_app.command("info")
def cache_info(
    work_dir: Annotated[Path | None, typer.Option(help="対象の作業ディレクトリ")] = None,
) -> None:
    """作業ディレクトリの情報を表示する"""
    info = get_cache_info(work_dir)

    table = Table(title="キャッシュ情報", show_header=False)
    table.add_column("項目", style="cyan")
    table.add_column("値", style="white")

    table.add_row("ディレクトリ", str(info.directory))
    table.add_row("サイズ", _format_size(info.size_bytes))
    table.add_row("プロジェクト", str(info.project_count))

    console.print(Panel(table, border_style="blue"))
    raise typer.Exit(ExitCode.SUCCESS)


def version_callback(value: bool) -> None:
    """バージョン表示コールバック"""
    if value:
        typer.echo(f"entplayer {__version__}")
        raise typer.Exit(ExitCode.SUCCESS)


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="バージョンを表示する",
        ),
    ] = False,
) -> None:
    """entplayer CLI - .entプロジェクトをローカルで配信"""
    pass
