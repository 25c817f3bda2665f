"""プロジェクトアーカイブ展開モジュール

.entプロジェクトファイル（ZIP / tar / tar.gz）を作業ディレクトリへ安全に展開し、
project.jsonの位置からプロジェクトルートを決定する機能を提供する。
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import IO, BinaryIO

from entplayer.archive.detector import HEADER_SIZE, ArchiveFormat, detect_format
from entplayer.paths import SecurityViolationError, resolve_within

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_NAME = "project.json"

# メモリ上に保持する入力データの上限（超えた分は一時ファイルへ退避する）
_SPOOL_MAX_SIZE = 8 * 1024 * 1024

ArchiveSource = bytes | BinaryIO | Path


class ArchiveError(Exception):
    """アーカイブ展開エラーの基底クラス"""

    pass


class UnsupportedFormatError(ArchiveError):
    """未対応または破損したアーカイブ形式の場合に発生する例外"""

    pass


class MissingManifestError(ArchiveError):
    """展開結果にマニフェストファイルが存在しない場合に発生する例外"""

    pass


@dataclass(frozen=True)
class ExtractedProject:
    """展開済みプロジェクト

    Attributes:
        root: プロジェクトルート（マニフェストを直接含むディレクトリ）
        manifest_path: マニフェストファイルのパス
        archive_format: 展開元のアーカイブ形式
        entry_count: 展開したエントリ数
    """

    root: Path
    manifest_path: Path
    archive_format: ArchiveFormat
    entry_count: int


@dataclass(frozen=True)
class _PlannedEntry:
    """展開先を検証済みのエントリ"""

    name: str
    destination: Path
    is_dir: bool


class ArchiveExtractor:
    """プロジェクトアーカイブを展開するクラス

    先頭バイトで形式を判定し、全エントリの展開先を検証してから書き込みを行う。
    1つでも展開先ディレクトリ外を指すエントリがあれば、何も書き込まずに中断する。

    使用例:
        >>> extractor = ArchiveExtractor()
        >>> project = extractor.extract(Path("game.ent"), Path("work"))
        >>> project.manifest_path.name
        'project.json'
    """

    def __init__(self, manifest_name: str = DEFAULT_MANIFEST_NAME) -> None:
        """展開器を初期化する

        Args:
            manifest_name: マニフェストファイル名（大文字小文字は区別しない）
        """
        self._manifest_name = manifest_name

    @property
    def manifest_name(self) -> str:
        """マニフェストファイル名を取得する"""
        return self._manifest_name

    def extract(self, source: ArchiveSource, output_dir: Path) -> ExtractedProject:
        """アーカイブを展開してプロジェクトを返す

        Args:
            source: アーカイブのバイト列、バイナリストリーム、またはファイルパス
            output_dir: 展開先ディレクトリ

        Returns:
            展開済みプロジェクト

        Raises:
            UnsupportedFormatError: 未対応または破損した形式の場合
            SecurityViolationError: 展開先ディレクトリ外を指すエントリがある場合
            MissingManifestError: マニフェストファイルが見つからない場合
            OSError: 読み書きに失敗した場合
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        with tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_SIZE) as spool:
            _copy_source(source, spool)
            spool.seek(0)
            header = spool.read(HEADER_SIZE)
            spool.seek(0)

            archive_format = detect_format(header)
            logger.debug(f"アーカイブ形式を判定しました: {archive_format.value}")

            match archive_format:
                case ArchiveFormat.ZIP:
                    entry_count = self._extract_zip(spool, output_dir)
                case ArchiveFormat.TAR:
                    entry_count = self._extract_tar(spool, output_dir, "r:")
                case ArchiveFormat.TAR_GZ:
                    entry_count = self._extract_tar(spool, output_dir, "r:gz")
                case _:
                    raise UnsupportedFormatError("未対応または破損した.entフォーマットです")

        manifest_path = self.find_manifest(output_dir)
        if manifest_path is None:
            raise MissingManifestError(f"{self._manifest_name}が見つかりません: {output_dir}")

        return ExtractedProject(
            root=manifest_path.parent,
            manifest_path=manifest_path,
            archive_format=archive_format,
            entry_count=entry_count,
        )

    def find_manifest(self, root: Path) -> Path | None:
        """ディレクトリツリーからマニフェストファイルを探す

        深さ優先で走査し、最初に見つかったファイルを返す。
        複数存在する場合にどれが返るかは走査順に依存する。

        Args:
            root: 探索するディレクトリ

        Returns:
            見つかったマニフェストファイルのパス、見つからない場合None
        """
        target = self._manifest_name.lower()
        for dirpath, _dirnames, filenames in os.walk(root):
            for filename in filenames:
                if filename.lower() == target:
                    return Path(dirpath) / filename
        return None

    def _extract_zip(self, stream: IO[bytes], output_dir: Path) -> int:
        """ZIPアーカイブを展開する

        Args:
            stream: アーカイブのストリーム
            output_dir: 展開先ディレクトリ

        Returns:
            展開したエントリ数
        """
        try:
            with zipfile.ZipFile(stream) as zf:
                members = zf.infolist()
                plan = _plan_entries(output_dir, [(m.filename, m.is_dir()) for m in members])
                for member, entry in zip(members, plan, strict=True):
                    if entry.is_dir:
                        entry.destination.mkdir(parents=True, exist_ok=True)
                        continue
                    entry.destination.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(member) as src, open(entry.destination, "wb") as dst:
                        shutil.copyfileobj(src, dst)
        except (zipfile.BadZipFile, zlib.error, RuntimeError, NotImplementedError) as e:
            # 暗号化エントリ(RuntimeError)と未対応の圧縮方式(NotImplementedError)も展開不能として扱う
            raise UnsupportedFormatError(f"ZIPアーカイブが破損しています: {e}") from e
        return len(plan)

    def _extract_tar(self, stream: IO[bytes], output_dir: Path, mode: str) -> int:
        """tarアーカイブ（gzip圧縮を含む）を展開する

        Args:
            stream: アーカイブのストリーム
            output_dir: 展開先ディレクトリ
            mode: tarfileのオープンモード

        Returns:
            展開したエントリ数
        """
        try:
            with tarfile.open(fileobj=stream, mode=mode) as tf:
                members = [m for m in tf.getmembers() if _is_supported_tar_member(m)]
                plan = _plan_entries(output_dir, [(m.name, m.isdir()) for m in members])
                for member, entry in zip(members, plan, strict=True):
                    if entry.is_dir:
                        entry.destination.mkdir(parents=True, exist_ok=True)
                        continue
                    entry.destination.parent.mkdir(parents=True, exist_ok=True)
                    src = tf.extractfile(member)
                    if src is None:
                        continue
                    with src, open(entry.destination, "wb") as dst:
                        shutil.copyfileobj(src, dst)
        except (tarfile.TarError, EOFError) as e:
            raise UnsupportedFormatError(f"tarアーカイブが破損しています: {e}") from e
        return len(plan)


def _copy_source(source: ArchiveSource, dest: IO[bytes]) -> None:
    """入力ソースを一時領域へコピーする

    Args:
        source: アーカイブのバイト列、バイナリストリーム、またはファイルパス
        dest: コピー先ストリーム
    """
    if isinstance(source, (bytes, bytearray)):
        dest.write(source)
    elif isinstance(source, Path):
        with source.open("rb") as f:
            shutil.copyfileobj(f, dest)
    else:
        shutil.copyfileobj(source, dest)


def _is_supported_tar_member(member: tarfile.TarInfo) -> bool:
    """展開対象のtarエントリか判定する

    シンボリックリンク等はツリー外を指し得るため展開しない。

    Args:
        member: tarエントリ

    Returns:
        通常ファイルまたはディレクトリの場合True
    """
    if member.isfile() or member.isdir():
        return True
    logger.warning(f"通常ファイル以外のエントリをスキップしました: {member.name}")
    return False


def _plan_entries(output_dir: Path, entries: list[tuple[str, bool]]) -> list[_PlannedEntry]:
    """全エントリの展開先を検証する

    Args:
        output_dir: 展開先ディレクトリ
        entries: (エントリ名, ディレクトリか) のリスト

    Returns:
        展開先を検証済みのエントリリスト

    Raises:
        SecurityViolationError: 展開先ディレクトリ外を指すエントリがある場合
    """
    plan: list[_PlannedEntry] = []
    for name, is_dir in entries:
        try:
            destination = resolve_within(output_dir, name)
        except SecurityViolationError:
            logger.warning(f"展開先ディレクトリ外を指すエントリを検出しました: {name}")
            raise
        plan.append(_PlannedEntry(name=name, destination=destination, is_dir=is_dir))
    return plan
