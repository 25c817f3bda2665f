"""パストラバーサル防止モジュール

アーカイブ展開とHTTP配信の両方で同じ判定を行うための共通ガードを提供する。
判定は「正規化してから、基準ディレクトリ配下にあるか確認する」の一種類のみ。
"""

from __future__ import annotations

from pathlib import Path


class SecurityViolationError(Exception):
    """基準ディレクトリ外を指すパスが検出された場合に発生する例外

    Attributes:
        name: 問題のあったパス文字列（アーカイブエントリ名やURLパス）
    """

    def __init__(self, name: str) -> None:
        """問題のあったパス文字列を指定して初期化する

        Args:
            name: 問題のあったパス文字列
        """
        self.name = name
        super().__init__(f"パストラバーサルを検出しました (Zip Slip): {name}")


def resolve_within(base: Path, name: str) -> Path:
    """基準ディレクトリ配下に収まるパスを解決する

    nameを基準ディレクトリに連結して正規化し、結果が基準ディレクトリの
    正規化パス配下に留まることを確認する。比較はパス要素単位で行うため、
    ``/tmp/out`` に対する ``/tmp/outside`` のような兄弟ディレクトリは拒否される。

    Args:
        base: 基準ディレクトリ
        name: 基準ディレクトリからの相対パス（先頭の "/" は無視される）

    Returns:
        正規化済みの絶対パス

    Raises:
        SecurityViolationError: 正規化後のパスが基準ディレクトリ外を指す場合
    """
    base_resolved = base.resolve()
    try:
        target = (base_resolved / name.lstrip("/\\")).resolve()
    except ValueError as e:
        # NULバイトを含む名前などはOSレベルで解決できない
        raise SecurityViolationError(name) from e
    if target != base_resolved and not target.is_relative_to(base_resolved):
        raise SecurityViolationError(name)
    return target
