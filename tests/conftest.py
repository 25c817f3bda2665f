"""テスト共通フィクスチャ

テスト用の.entアーカイブ（ZIP / tar / tar.gz）をメモリ上で組み立てる。
エントリの値がNoneの場合はディレクトリエントリとして追加する。
"""

import io
import json
import struct
import tarfile
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

ArchiveBuilder = Callable[[dict[str, bytes | None]], bytes]

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def build_zip(entries: dict[str, bytes | None]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries.items():
            if data is None:
                zf.writestr(zipfile.ZipInfo(name.rstrip("/") + "/"), b"")
            else:
                zf.writestr(zipfile.ZipInfo(name), data)
    return buffer.getvalue()


def build_tar(entries: dict[str, bytes | None], compress: bool = False) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz" if compress else "w") as tf:
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            if data is None:
                info.type = tarfile.DIRTYPE
                tf.addfile(info)
            else:
                info.size = len(data)
                tf.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def manifest_bytes(document: object) -> bytes:
    return json.dumps(document).encode("utf-8")


def build_damaged_zip(damage: str) -> bytes:
    """シグネチャと目次は正しく、エントリの読み出しで失敗するZIPを組み立てる

    damage:
        "deflate": 圧縮データの先頭を壊す
        "encrypted": 暗号化フラグを立てる
        "method": 未対応の圧縮方式番号に書き換える
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("project.json", manifest_bytes({"objects": ["x" * 64] * 8}))
    data = bytearray(buffer.getvalue())

    central = data.find(b"PK\x01\x02")
    match damage:
        case "deflate":
            name_len, extra_len = struct.unpack_from("<HH", data, 26)
            offset = 30 + name_len + extra_len
            data[offset : offset + 8] = b"\xff" * 8
        case "encrypted":
            data[6] |= 0x01
            data[central + 8] |= 0x01
        case "method":
            struct.pack_into("<H", data, 8, 99)
            struct.pack_into("<H", data, central + 10, 99)
        case _:
            raise ValueError(damage)
    return bytes(data)


@pytest.fixture
def make_zip() -> ArchiveBuilder:
    """ZIPアーカイブを組み立てる関数"""
    return build_zip


@pytest.fixture
def make_tar() -> ArchiveBuilder:
    """非圧縮tarアーカイブを組み立てる関数"""
    return build_tar


@pytest.fixture
def make_damaged_zip() -> Callable[[str], bytes]:
    """読み出し時に失敗するZIPを組み立てる関数"""
    return build_damaged_zip


@pytest.fixture
def make_tar_gz() -> ArchiveBuilder:
    """tar.gzアーカイブを組み立てる関数"""
    return lambda entries: build_tar(entries, compress=True)


@pytest.fixture
def sample_project() -> dict[str, bytes | None]:
    """project.jsonと画像・音声を含む最小構成のプロジェクト"""
    return {
        "project.json": manifest_bytes(
            {
                "objects": [
                    {"sprite": {"pictures": [{"fileurl": "images/cat.png"}]}},
                ],
                "sounds": [{"fileurl": "./sounds/meow.mp3"}],
                "speed": 60,
            }
        ),
        "images/": None,
        "images/cat.png": PNG_BYTES,
        "sounds/meow.mp3": b"ID3" + b"\x00" * 8,
    }


@pytest.fixture
def player_dir(tmp_path: Path) -> Path:
    """プレイヤー静的リソースのディレクトリ"""
    directory = tmp_path / "player"
    directory.mkdir()
    (directory / "index.html").write_text("<html>player</html>", encoding="utf-8")
    (directory / "player.js").write_text("console.log('player');", encoding="utf-8")
    return directory
