"""マニフェストのアセットパス書き換えモジュール

project.jsonに含まれる画像・音声ファイルへの参照を、ローカルサーバーの
/project/ エンドポイントを指す絶対URLへ書き換える機能を提供する。
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import chardet

from entplayer.paths import SecurityViolationError, resolve_within

logger = logging.getLogger(__name__)

ASSET_EXTENSIONS: tuple[str, ...] = (
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".webp",
    ".svg",
    ".mp3",
    ".wav",
    ".ogg",
    ".m4a",
)

# 解決済みとみなすプレフィックス（再書き換えを防ぐ）
RESOLVED_PREFIXES: tuple[str, ...] = ("http://", "https://", "data:")


class ManifestParseError(ValueError):
    """マニフェストの解析に失敗した場合に発生する例外"""

    pass


@dataclass(frozen=True)
class RewriteReport:
    """書き換え結果

    Attributes:
        rewritten: 書き換えた値の数
        unresolved: 候補だったがファイルが見つからなかった値
    """

    rewritten: int
    unresolved: tuple[str, ...] = ()


def is_asset_candidate(value: str) -> bool:
    """書き換え候補のアセットパスか判定する

    Args:
        value: マニフェスト内の文字列値

    Returns:
        既知のメディア拡張子で終わり、URLでない場合True
    """
    if value.startswith(RESOLVED_PREFIXES):
        return False
    return value.lower().endswith(ASSET_EXTENSIONS)


@dataclass
class _RewriteContext:
    """1回の書き換え処理の状態"""

    project_root: Path
    base_url: str
    rewritten: int = 0
    unresolved: list[str] = field(default_factory=list)
    _basename_index: dict[str, str] | None = None

    def basename_index(self) -> dict[str, str]:
        """ファイル名からルート相対パスへの索引を取得する（初回のみ走査）"""
        if self._basename_index is None:
            index: dict[str, str] = {}
            for dirpath, _dirnames, filenames in os.walk(self.project_root):
                for filename in filenames:
                    rel = (Path(dirpath) / filename).relative_to(self.project_root)
                    index.setdefault(filename, rel.as_posix())
            self._basename_index = index
        return self._basename_index


class ManifestRewriter:
    """マニフェスト内のアセットパスを書き換えるクラス

    JSONツリーを再帰的に走査し、アセットパスらしい文字列を
    ``base_url + ルート相対パス`` に置き換えてファイルへ書き戻す。
    URL形式の値は書き換え対象外のため、何度実行しても結果は変わらない。

    使用例:
        >>> rewriter = ManifestRewriter()
        >>> report = rewriter.rewrite(
        ...     Path("work/project.json"),
        ...     Path("work"),
        ...     "http://127.0.0.1:18080/project/",
        ... )
    """

    def rewrite(self, manifest_path: Path, project_root: Path, base_url: str) -> RewriteReport:
        """マニフェストファイルを書き換える

        走査がすべて成功した場合に限り、ファイルを一度だけ上書きする。

        Args:
            manifest_path: マニフェストファイルのパス
            project_root: プロジェクトルート
            base_url: 書き換え後URLのプレフィックス（末尾の "/" を含む）

        Returns:
            書き換え結果

        Raises:
            ManifestParseError: マニフェストが不正なJSONの場合
            OSError: 読み書きに失敗した場合
        """
        document = load_manifest(manifest_path)

        context = _RewriteContext(project_root=project_root, base_url=base_url)
        rewritten_document = self._rewrite_value(document, context)

        save_manifest(manifest_path, rewritten_document)
        for value in context.unresolved:
            logger.debug(f"アセットが見つかりませんでした: {value}")

        return RewriteReport(rewritten=context.rewritten, unresolved=tuple(context.unresolved))

    def _rewrite_value(self, value: Any, context: _RewriteContext) -> Any:
        """JSON値を再帰的に書き換えた新しい値を返す

        Args:
            value: JSON値
            context: 書き換え処理の状態

        Returns:
            書き換え後の値
        """
        match value:
            case dict():
                return {key: self._rewrite_value(item, context) for key, item in value.items()}
            case list():
                return [self._rewrite_value(item, context) for item in value]
            case str() if is_asset_candidate(value):
                resolved = self._resolve_asset(value, context)
                if resolved is None:
                    context.unresolved.append(value)
                    return value
                context.rewritten += 1
                return resolved
            case _:
                return value

    def _resolve_asset(self, value: str, context: _RewriteContext) -> str | None:
        """アセットパスをローカルサーバーURLに解決する

        Args:
            value: 書き換え候補の文字列
            context: 書き換え処理の状態

        Returns:
            解決後のURL、見つからない場合None
        """
        rel = value.replace("\\", "/").removeprefix("./").removeprefix("/")

        try:
            candidate = resolve_within(context.project_root, rel)
        except SecurityViolationError:
            candidate = None
        if candidate is not None and candidate.is_file():
            return context.base_url + rel

        # フォールバック: ファイル名のみで検索（同名ファイルが複数ある場合は最初の1件）
        basename = rel.rsplit("/", 1)[-1]
        match_rel = context.basename_index().get(basename)
        if match_rel is not None:
            return context.base_url + match_rel
        return None


def load_manifest(manifest_path: Path) -> Any:
    """マニフェストファイルを読み込む

    UTF-8（BOM付きを含む）で読めない場合はchardetで文字コードを推定する。

    Args:
        manifest_path: マニフェストファイルのパス

    Returns:
        JSONツリー

    Raises:
        ManifestParseError: デコードまたはJSON解析に失敗した場合
        OSError: 読み込みに失敗した場合
    """
    data = manifest_path.read_bytes()
    text = _decode_manifest(data)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"JSON解析エラー: {manifest_path.name}: {e}") from e


def save_manifest(manifest_path: Path, document: Any) -> None:
    """マニフェストファイルをアトミックに上書きする

    同じディレクトリの一時ファイルへ書き込んでから置き換えるため、
    書き込み途中の内容が元のファイル名で見えることはない。

    Args:
        manifest_path: マニフェストファイルのパス
        document: JSONツリー

    Raises:
        OSError: 書き込みに失敗した場合
    """
    text = json.dumps(document, ensure_ascii=False, separators=(",", ":"))
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{manifest_path.name}.", suffix=".tmp", dir=manifest_path.parent
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, manifest_path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _decode_manifest(data: bytes) -> str:
    """マニフェストのバイト列を文字列にデコードする

    Args:
        data: マニフェストのバイト列

    Returns:
        デコードされた文字列

    Raises:
        ManifestParseError: デコードできない場合
    """
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass

    detected = chardet.detect(data).get("encoding")
    if detected is None:
        raise ManifestParseError("マニフェストの文字コードを判定できません")
    logger.debug(f"マニフェストの文字コードを推定しました: {detected}")
    try:
        return data.decode(detected)
    except (UnicodeDecodeError, LookupError) as e:
        raise ManifestParseError(f"マニフェストをデコードできません ({detected}): {e}") from e
