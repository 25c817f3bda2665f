"""ローカルHTTPサーバーモジュール

ループバックアドレスでのみ待ち受け、次の2つの名前空間を配信する。

- ``/player/``: プレイヤーの静的リソース（プロセス存続中は固定）
- ``/project/``: 展開済みプロジェクト（読み込みのたびに差し替えられる）
"""

from __future__ import annotations

import ipaddress
import logging
import os
import shutil
import threading
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import BinaryIO
from urllib.parse import unquote, urlsplit

from entplayer.paths import SecurityViolationError, resolve_within
from entplayer.server.mime import guess_mime_type

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 18080

PLAYER_PREFIX = "/player/"
PROJECT_PREFIX = "/project/"

ROOT_MESSAGE = "Entry Player Local Server"
NO_PROJECT_MESSAGE = "No project loaded"
FILE_NOT_FOUND_MESSAGE = "File not found"
NOT_FOUND_MESSAGE = "Not Found"

# 成功レスポンスに必ず付与するヘッダー
SUCCESS_HEADERS: tuple[tuple[str, str], ...] = (
    ("Cache-Control", "no-store"),
    ("Access-Control-Allow-Origin", "*"),
)


class ServerState(Enum):
    """サーバーのライフサイクル状態"""

    NOT_STARTED = "not_started"
    LISTENING = "listening"
    STOPPED = "stopped"


@dataclass
class ServerResponse:
    """ルーティング結果

    Attributes:
        status: HTTPステータス
        content_type: Content-Typeヘッダー値
        body: 固定長の本文（ファイル配信時は空）
        stream: 配信するファイルのストリーム（固定長本文の場合None）
        content_length: 本文の長さ
        headers: 追加ヘッダー
    """

    status: HTTPStatus
    content_type: str
    body: bytes = b""
    stream: BinaryIO | None = None
    content_length: int = 0
    headers: tuple[tuple[str, str], ...] = ()

    def close(self) -> None:
        """ストリームを閉じる"""
        if self.stream is not None:
            self.stream.close()
            self.stream = None


def text_response(status: HTTPStatus, message: str) -> ServerResponse:
    """テキスト本文のレスポンスを作成する

    Args:
        status: HTTPステータス
        message: 本文

    Returns:
        text/plainのレスポンス
    """
    body = message.encode("utf-8")
    return ServerResponse(
        status=status, content_type="text/plain", body=body, content_length=len(body)
    )


class ProjectRootRef:
    """差し替え可能なプロジェクトルートの参照

    書き込みは単一の代入で行い、読み出し側は常に差し替え前か後の
    どちらか一方の値を受け取る。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._root: Path | None = None

    def get(self) -> Path | None:
        """現在のプロジェクトルートを取得する（未設定ならNone）"""
        with self._lock:
            return self._root

    def set(self, root: Path) -> None:
        """プロジェクトルートを差し替える"""
        resolved = root.resolve()
        with self._lock:
            self._root = resolved


class _LocalHTTPServer(ThreadingHTTPServer):
    """LocalServerへの参照を保持するHTTPサーバー"""

    daemon_threads = True

    def __init__(self, address: tuple[str, int], app: LocalServer) -> None:
        self.app = app
        super().__init__(address, _RequestHandler)


class _RequestHandler(BaseHTTPRequestHandler):
    """GETリクエストをLocalServerへ委譲するハンドラー"""

    server: _LocalHTTPServer

    def do_GET(self) -> None:  # noqa: N802
        try:
            response = self.server.app.handle(self.path)
        except Exception as e:
            logger.exception(f"リクエスト処理中にエラーが発生しました: {self.path}")
            response = text_response(HTTPStatus.INTERNAL_SERVER_ERROR, f"Server Error: {e}")

        try:
            self._send(response)
        except (BrokenPipeError, ConnectionResetError):
            logger.debug(f"クライアントが切断しました: {self.path}")
        finally:
            response.close()

    def _send(self, response: ServerResponse) -> None:
        self.send_response(response.status)
        self.send_header("Content-Type", response.content_type)
        self.send_header("Content-Length", str(response.content_length))
        for name, value in response.headers:
            self.send_header(name, value)
        self.end_headers()
        if response.stream is not None:
            shutil.copyfileobj(response.stream, self.wfile)
        else:
            self.wfile.write(response.body)

    def log_message(self, format: str, *args: object) -> None:
        logger.debug(f"{self.address_string()} - {format % args}")


class LocalServer:
    """プレイヤーとプロジェクトを配信するローカルHTTPサーバー

    接続ごとにワーカースレッドで処理するため、ファイルI/Oで待たされる
    リクエストがあっても他のリクエストの受付は止まらない。

    使用例:
        >>> server = LocalServer(Path("player"), port=18080)
        >>> server.start()
        >>> server.set_project_root(Path("work/project"))
        >>> server.stop()
    """

    def __init__(
        self, player_root: Path, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT
    ) -> None:
        """サーバーを初期化する（待ち受けはstart()で開始する）

        Args:
            player_root: /player/ で配信する静的リソースのディレクトリ
            host: 待ち受けアドレス（ループバックのみ）
            port: 待ち受けポート（0の場合は空きポートを割り当てる）

        Raises:
            ValueError: ループバック以外のアドレスが指定された場合
        """
        if not _is_loopback(host):
            raise ValueError(f"ループバックアドレス以外では待ち受けできません: {host}")
        self._player_root = player_root.resolve()
        self._host = host
        self._port = port
        self._project_root = ProjectRootRef()
        self._state = ServerState.NOT_STARTED
        self._httpd: _LocalHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def __enter__(self) -> LocalServer:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()

    @property
    def state(self) -> ServerState:
        """ライフサイクル状態を取得する"""
        return self._state

    @property
    def host(self) -> str:
        """待ち受けアドレスを取得する"""
        return self._host

    @property
    def port(self) -> int:
        """待ち受けポートを取得する（start()後は実際に割り当てられたポート）"""
        return self._port

    @property
    def base_url(self) -> str:
        """サーバーのベースURLを取得する（末尾 "/" 付き）"""
        return f"http://{self._host}:{self._port}/"

    @property
    def player_base_url(self) -> str:
        """/player/ 名前空間のURLを取得する"""
        return self.base_url + PLAYER_PREFIX.lstrip("/")

    @property
    def project_base_url(self) -> str:
        """/project/ 名前空間のURLを取得する"""
        return self.base_url + PROJECT_PREFIX.lstrip("/")

    @property
    def player_root(self) -> Path:
        """静的リソースのディレクトリを取得する"""
        return self._player_root

    @property
    def project_root(self) -> Path | None:
        """現在のプロジェクトルートを取得する"""
        return self._project_root.get()

    def set_project_root(self, root: Path) -> None:
        """配信するプロジェクトルートを差し替える

        Args:
            root: 新しいプロジェクトルート
        """
        self._project_root.set(root)
        logger.info(f"プロジェクトルートを設定しました: {root}")

    def start(self) -> None:
        """待ち受けを開始する

        Raises:
            RuntimeError: すでに開始済み、または停止済みの場合
            OSError: ポートのバインドに失敗した場合
        """
        if self._state is not ServerState.NOT_STARTED:
            raise RuntimeError(f"サーバーを開始できない状態です: {self._state.value}")

        self._httpd = _LocalHTTPServer((self._host, self._port), self)
        self._port = self._httpd.server_address[1]
        self._thread = threading.Thread(
            target=self._httpd.serve_forever, name="entplayer-server", daemon=True
        )
        self._thread.start()
        self._state = ServerState.LISTENING
        logger.info(f"ローカルサーバーを開始しました: {self.base_url}")

    def stop(self) -> None:
        """待ち受けを停止する（停止後は再開できない）"""
        if self._state is not ServerState.LISTENING:
            return
        assert self._httpd is not None
        self._httpd.shutdown()
        self._httpd.server_close()
        if self._thread is not None:
            self._thread.join()
        self._state = ServerState.STOPPED
        logger.info("ローカルサーバーを停止しました")

    def handle(self, raw_path: str) -> ServerResponse:
        """リクエストパスをルーティングしてレスポンスを返す

        Args:
            raw_path: リクエストターゲット（クエリ文字列を含んでよい）

        Returns:
            レスポンス（ファイル配信時は呼び出し側でclose()する）
        """
        path = unquote(urlsplit(raw_path).path)

        if path == "/":
            return text_response(HTTPStatus.OK, ROOT_MESSAGE)
        if path.startswith(PLAYER_PREFIX):
            return self._serve_file(self._player_root, path[len(PLAYER_PREFIX) :])
        if path.startswith(PROJECT_PREFIX):
            # 1リクエストにつき参照は1回だけ読む
            root = self._project_root.get()
            if root is None:
                return text_response(HTTPStatus.NOT_FOUND, NO_PROJECT_MESSAGE)
            return self._serve_file(root, path[len(PROJECT_PREFIX) :])
        return text_response(HTTPStatus.NOT_FOUND, NOT_FOUND_MESSAGE)

    def _serve_file(self, root: Path, rel: str) -> ServerResponse:
        """ルート配下のファイルを配信する

        Args:
            root: 名前空間のルートディレクトリ
            rel: ルートからの相対パス

        Returns:
            ファイル配信レスポンス、または404レスポンス
        """
        try:
            target = resolve_within(root, rel)
        except SecurityViolationError:
            logger.warning(f"ルート外へのアクセスを拒否しました: {rel}")
            return text_response(HTTPStatus.NOT_FOUND, FILE_NOT_FOUND_MESSAGE)

        if not target.is_file():
            return text_response(HTTPStatus.NOT_FOUND, FILE_NOT_FOUND_MESSAGE)

        stream = target.open("rb")
        return ServerResponse(
            status=HTTPStatus.OK,
            content_type=guess_mime_type(target.name),
            stream=stream,
            content_length=os.fstat(stream.fileno()).st_size,
            headers=SUCCESS_HEADERS,
        )


def _is_loopback(host: str) -> bool:
    """ループバックアドレスか判定する

    Args:
        host: ホスト名またはIPv4アドレス

    Returns:
        ループバックアドレスの場合True
    """
    if host == "localhost":
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return address.version == 4 and address.is_loopback
