"""プロジェクトアーカイブ展開のテスト"""

import io
import tarfile
from pathlib import Path

import pytest

from entplayer.archive import (
    ArchiveError,
    ArchiveExtractor,
    ArchiveFormat,
    ExtractedProject,
    MissingManifestError,
    SecurityViolationError,
    UnsupportedFormatError,
)


def _all_files(root: Path) -> list[Path]:
    return sorted(p for p in root.rglob("*") if p.is_file())


class TestExtractedProject:
    """ExtractedProjectデータクラスのテスト"""

    def test_is_immutable(self, tmp_path: Path) -> None:
        """ExtractedProjectはイミュータブル"""
        project = ExtractedProject(
            root=tmp_path,
            manifest_path=tmp_path / "project.json",
            archive_format=ArchiveFormat.ZIP,
            entry_count=1,
        )
        with pytest.raises(AttributeError):
            project.root = tmp_path / "other"  # type: ignore[misc]


class TestExceptions:
    """例外階層のテスト"""

    @pytest.mark.parametrize(
        "error_cls",
        [
            pytest.param(UnsupportedFormatError, id="正常系: UnsupportedFormatError"),
            pytest.param(MissingManifestError, id="正常系: MissingManifestError"),
        ],
    )
    def test_archive_errors_share_base(self, error_cls: type[Exception]) -> None:
        """展開エラーはArchiveErrorのサブクラス"""
        assert issubclass(error_cls, ArchiveError)


class TestExtract:
    """ArchiveExtractor.extractのテスト"""

    @pytest.mark.parametrize(
        "builder_name, expected_format",
        [
            pytest.param("make_zip", ArchiveFormat.ZIP, id="正常系: ZIP"),
            pytest.param("make_tar", ArchiveFormat.TAR, id="正常系: tar"),
            pytest.param("make_tar_gz", ArchiveFormat.TAR_GZ, id="正常系: tar.gz"),
        ],
    )
    def test_extract_each_format(
        self,
        request: pytest.FixtureRequest,
        tmp_path: Path,
        sample_project: dict[str, bytes | None],
        builder_name: str,
        expected_format: ArchiveFormat,
    ) -> None:
        """各形式のアーカイブが展開される"""
        data = request.getfixturevalue(builder_name)(sample_project)
        output_dir = tmp_path / "out"

        project = ArchiveExtractor().extract(data, output_dir)

        assert project.archive_format == expected_format
        assert project.manifest_path == output_dir / "project.json"
        assert project.root == output_dir
        assert (output_dir / "images" / "cat.png").read_bytes() == sample_project["images/cat.png"]
        assert (output_dir / "sounds" / "meow.mp3").is_file()
        assert project.entry_count == len(sample_project)

    def test_extract_from_path(self, tmp_path: Path, make_zip, sample_project) -> None:
        """ファイルパスから展開できる（拡張子は判定に使わない）"""
        archive = tmp_path / "game.tar"
        archive.write_bytes(make_zip(sample_project))

        project = ArchiveExtractor().extract(archive, tmp_path / "out")

        assert project.archive_format == ArchiveFormat.ZIP

    def test_extract_from_stream(self, tmp_path: Path, make_tar_gz, sample_project) -> None:
        """バイナリストリームから展開できる"""
        stream = io.BytesIO(make_tar_gz(sample_project))

        project = ArchiveExtractor().extract(stream, tmp_path / "out")

        assert project.archive_format == ArchiveFormat.TAR_GZ
        assert project.manifest_path.is_file()

    def test_root_is_normalized_to_wrapper_directory(
        self, tmp_path: Path, make_zip, sample_project
    ) -> None:
        """トップレベルのラッパーディレクトリがルートになる"""
        wrapped = {f"MyGame/{name}": data for name, data in sample_project.items()}
        output_dir = tmp_path / "out"

        project = ArchiveExtractor().extract(make_zip(wrapped), output_dir)

        assert project.root == output_dir / "MyGame"
        assert project.manifest_path == output_dir / "MyGame" / "project.json"

    def test_manifest_name_is_case_insensitive(self, tmp_path: Path, make_zip) -> None:
        """マニフェスト名は大文字小文字を区別しない"""
        data = make_zip({"Project.JSON": b"{}"})

        project = ArchiveExtractor().extract(data, tmp_path / "out")

        assert project.manifest_path.name == "Project.JSON"

    def test_overwrites_existing_file(self, tmp_path: Path, make_zip) -> None:
        """既存ファイルは上書きされる"""
        output_dir = tmp_path / "out"
        output_dir.mkdir()
        (output_dir / "project.json").write_text("old")

        ArchiveExtractor().extract(make_zip({"project.json": b"{\"new\": 1}"}), output_dir)

        assert (output_dir / "project.json").read_text() == "{\"new\": 1}"

    def test_custom_manifest_name(self, tmp_path: Path, make_zip) -> None:
        """マニフェスト名を変更できる"""
        data = make_zip({"data/manifest.json": b"{}"})

        project = ArchiveExtractor(manifest_name="manifest.json").extract(data, tmp_path / "out")

        assert project.root == tmp_path / "out" / "data"

    def test_missing_manifest(self, tmp_path: Path, make_zip) -> None:
        """マニフェストがない場合MissingManifestError"""
        data = make_zip({"images/cat.png": b"png"})

        with pytest.raises(MissingManifestError):
            ArchiveExtractor().extract(data, tmp_path / "out")

    @pytest.mark.parametrize(
        "data",
        [
            pytest.param(b"", id="異常系: 空データ"),
            pytest.param(b"not an archive at all" * 40, id="異常系: テキスト"),
        ],
    )
    def test_unsupported_format(self, tmp_path: Path, data: bytes) -> None:
        """判定できない形式はUnsupportedFormatError"""
        with pytest.raises(UnsupportedFormatError):
            ArchiveExtractor().extract(data, tmp_path / "out")

    @pytest.mark.parametrize(
        "data",
        [
            pytest.param(b"PK\x03\x04" + b"\x00" * 40, id="異常系: 壊れたZIP"),
            pytest.param(b"\x1f\x8b" + b"\xff" * 40, id="異常系: 壊れたgzip"),
        ],
    )
    def test_corrupt_archive(self, tmp_path: Path, data: bytes) -> None:
        """シグネチャだけ正しい破損データはUnsupportedFormatError"""
        with pytest.raises(UnsupportedFormatError):
            ArchiveExtractor().extract(data, tmp_path / "out")

    @pytest.mark.parametrize(
        "damage",
        [
            pytest.param("deflate", id="異常系: 圧縮データの破損"),
            pytest.param("encrypted", id="異常系: 暗号化エントリ"),
            pytest.param("method", id="異常系: 未対応の圧縮方式"),
        ],
    )
    def test_unreadable_zip_entry(self, tmp_path: Path, make_damaged_zip, damage: str) -> None:
        """目次は読めてもエントリを読み出せないZIPはUnsupportedFormatError"""
        with pytest.raises(UnsupportedFormatError, match="ZIP"):
            ArchiveExtractor().extract(make_damaged_zip(damage), tmp_path / "out")


class TestZipSlip:
    """パストラバーサル（Zip Slip）防止のテスト"""

    @pytest.mark.parametrize(
        "builder_name",
        [
            pytest.param("make_zip", id="異常系: ZIP"),
            pytest.param("make_tar", id="異常系: tar"),
            pytest.param("make_tar_gz", id="異常系: tar.gz"),
        ],
    )
    def test_traversal_entry_aborts_extraction(
        self, request: pytest.FixtureRequest, tmp_path: Path, builder_name: str
    ) -> None:
        """ルート外を指すエントリがあれば何も書き込まずに中断する"""
        data = request.getfixturevalue(builder_name)(
            {
                "project.json": b"{}",
                "images/cat.png": b"png",
                "../../evil": b"evil",
            }
        )
        output_dir = tmp_path / "a" / "b" / "out"

        with pytest.raises(SecurityViolationError):
            ArchiveExtractor().extract(data, output_dir)

        assert not (tmp_path / "a" / "evil").exists()
        assert _all_files(tmp_path) == []

    def test_traversal_entry_in_subdirectory(self, tmp_path: Path, make_zip) -> None:
        """サブディレクトリから脱出するエントリも拒否される"""
        data = make_zip({"project.json": b"{}", "images/../../evil.png": b"evil"})
        output_dir = tmp_path / "out"

        with pytest.raises(SecurityViolationError):
            ArchiveExtractor().extract(data, output_dir)

        assert not (tmp_path / "evil.png").exists()

    def test_tar_symlink_is_skipped(self, tmp_path: Path) -> None:
        """tarのシンボリックリンクは展開されない"""
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as tf:
            manifest = tarfile.TarInfo("project.json")
            manifest.size = 2
            tf.addfile(manifest, io.BytesIO(b"{}"))
            link = tarfile.TarInfo("escape")
            link.type = tarfile.SYMTYPE
            link.linkname = "/etc"
            tf.addfile(link)

        output_dir = tmp_path / "out"
        project = ArchiveExtractor().extract(buffer.getvalue(), output_dir)

        assert not (output_dir / "escape").exists()
        assert not (output_dir / "escape").is_symlink()
        assert project.entry_count == 1


class TestFindManifest:
    """ArchiveExtractor.find_manifestのテスト"""

    def test_finds_nested_manifest(self, tmp_path: Path) -> None:
        """入れ子のディレクトリからも見つかる"""
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        (nested / "project.json").write_text("{}")

        assert ArchiveExtractor().find_manifest(tmp_path) == nested / "project.json"

    def test_returns_none_when_missing(self, tmp_path: Path) -> None:
        """見つからない場合はNone"""
        (tmp_path / "readme.txt").write_text("hello")

        assert ArchiveExtractor().find_manifest(tmp_path) is None

    def test_ignores_directory_with_manifest_name(self, tmp_path: Path) -> None:
        """マニフェスト名のディレクトリはファイルとして扱わない"""
        (tmp_path / "project.json").mkdir()

        assert ArchiveExtractor().find_manifest(tmp_path) is None

    def test_one_of_multiple_manifests_is_returned(self, tmp_path: Path) -> None:
        """複数ある場合はいずれか1つが返る"""
        for name in ("x", "y"):
            (tmp_path / name).mkdir()
            (tmp_path / name / "project.json").write_text("{}")

        found = ArchiveExtractor().find_manifest(tmp_path)

        assert found in (tmp_path / "x" / "project.json", tmp_path / "y" / "project.json")
