"""作業ディレクトリ管理のテスト"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from entplayer.cache import (
    WORK_DIR_NAME,
    CacheInfo,
    clear_cache,
    get_cache_dir,
    get_cache_info,
    get_work_dir,
)


class TestCacheInfo:
    """CacheInfo型のテスト"""

    def test_cache_info_is_frozen(self) -> None:
        """CacheInfoは変更不可"""
        info = CacheInfo(directory=Path("/tmp"), size_bytes=0, project_count=0)
        with pytest.raises(AttributeError):
            info.size_bytes = 999  # type: ignore


class TestGetCacheDir:
    """get_cache_dir関数のテスト"""

    def test_get_cache_dir_returns_path(self) -> None:
        """get_cache_dirがPathを返す"""
        result = get_cache_dir()
        assert isinstance(result, Path)
        assert "entplayer" in str(result)

    @pytest.mark.parametrize(
        "system, xdg_cache, expected_suffix",
        [
            pytest.param(
                "Linux",
                None,
                ".cache/entplayer",
                id="正常系: Linuxでデフォルトキャッシュディレクトリ",
            ),
            pytest.param(
                "Linux",
                "/custom/cache",
                "/custom/cache/entplayer",
                id="正常系: LinuxでXDG_CACHE_HOME設定時",
            ),
            pytest.param(
                "Darwin",
                None,
                "Library/Caches/entplayer",
                id="正常系: macOSのキャッシュディレクトリ",
            ),
        ],
    )
    def test_get_cache_dir_platform_specific(
        self, monkeypatch: pytest.MonkeyPatch, system: str, xdg_cache: str | None, expected_suffix: str
    ) -> None:
        """OSごとのキャッシュディレクトリが正しく決定される"""
        if xdg_cache is None:
            monkeypatch.delenv("XDG_CACHE_HOME", raising=False)
        else:
            monkeypatch.setenv("XDG_CACHE_HOME", xdg_cache)

        with patch("entplayer.cache.platform.system", return_value=system):
            result = get_cache_dir()

        assert result.as_posix().endswith(expected_suffix)

    def test_get_cache_dir_windows(self) -> None:
        """Windowsのキャッシュディレクトリが正しく決定される"""
        with (
            patch("entplayer.cache.platform.system", return_value="Windows"),
            patch.dict(os.environ, {"LOCALAPPDATA": "C:\\Users\\Test\\AppData\\Local"}),
        ):
            result = get_cache_dir()
            assert "entplayer" in str(result)
            assert "cache" in str(result)


class TestGetWorkDir:
    """get_work_dir関数のテスト"""

    def test_work_dir_is_under_cache_dir(self) -> None:
        """作業ディレクトリはキャッシュディレクトリ配下"""
        assert get_work_dir() == get_cache_dir() / WORK_DIR_NAME


class TestClearCache:
    """clear_cache関数のテスト"""

    def test_clear_removes_directory(self, tmp_path: Path) -> None:
        """作業ディレクトリが削除される"""
        work_dir = tmp_path / "work"
        (work_dir / "project-abc").mkdir(parents=True)
        (work_dir / "project-abc" / "project.json").write_text("{}")

        clear_cache(work_dir)

        assert not work_dir.exists()

    def test_clear_missing_directory(self, tmp_path: Path) -> None:
        """存在しない場合は何もしない"""
        clear_cache(tmp_path / "missing")


class TestGetCacheInfo:
    """get_cache_info関数のテスト"""

    def test_missing_directory(self, tmp_path: Path) -> None:
        """存在しない場合はサイズ0"""
        info = get_cache_info(tmp_path / "missing")
        assert info == CacheInfo(directory=tmp_path / "missing", size_bytes=0, project_count=0)

    def test_counts_size_and_generations(self, tmp_path: Path) -> None:
        """ファイルサイズと展開済みプロジェクト数が集計される"""
        work_dir = tmp_path / "work"
        (work_dir / "project-abc" / "images").mkdir(parents=True)
        (work_dir / "project-abc" / "project.json").write_bytes(b"x" * 10)
        (work_dir / "project-abc" / "images" / "cat.png").write_bytes(b"y" * 5)
        (work_dir / "incoming").mkdir()
        (work_dir / "incoming" / "partial.bin").write_bytes(b"z" * 3)

        info = get_cache_info(work_dir)

        assert info.size_bytes == 18
        assert info.project_count == 1
