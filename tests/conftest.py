"""
pytest 公共 fixture

提供一个本地 aiohttp 服务器用于提供下载内容，并记录每次 GET 请求。
"""

import asyncio
import io
import os
import sys
import tarfile
import zipfile
from typing import Dict, List, NamedTuple, Optional, Tuple, Union

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from fetchexec.models.options import PlaceholderContext

Body = Union[bytes, str]


class Route(NamedTuple):
    body: bytes
    status: int
    delay: float
    mode: str


class ArtifactServer:
    """按路径返回预设内容的 HTTP 服务器"""

    def __init__(self):
        self.routes: Dict[str, Route] = {}
        self.requests: List[str] = []
        app = web.Application()
        app.router.add_get("/{path:.*}", self._handle)
        self.server = TestServer(app)

    async def _handle(self, request: web.Request) -> web.StreamResponse:
        path = request.match_info["path"]
        self.requests.append(path)
        if path not in self.routes:
            return web.Response(status=404, text="not found")
        route = self.routes[path]
        if route.delay:
            await asyncio.sleep(route.delay)

        if route.mode == "chunked":
            # 分块传输，没有 Content-Length
            response = web.StreamResponse(status=route.status)
            response.enable_chunked_encoding()
            await response.prepare(request)
            for start in range(0, len(route.body), 1024):
                await response.write(route.body[start:start + 1024])
            await response.write_eof()
            return response

        if route.mode == "abort":
            # 声明完整长度，只发送一半后断开连接
            response = web.StreamResponse(status=route.status)
            response.content_length = len(route.body)
            await response.prepare(request)
            await response.write(route.body[: len(route.body) // 2])
            request.transport.close()
            return response

        return web.Response(body=route.body, status=route.status)

    def add(
        self,
        path: str,
        body: Body,
        status: int = 200,
        delay: float = 0.0,
        mode: str = "plain",
    ) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[path] = Route(body, status, delay, mode)

    def url(self, path: str) -> str:
        # 不经过 yarl，保留模板中的花括号
        return f"http://{self.server.host}:{self.server.port}/{path}"

    def count(self, path: Optional[str] = None) -> int:
        if path is None:
            return len(self.requests)
        return self.requests.count(path)

    async def start(self) -> None:
        await self.server.start_server()

    async def close(self) -> None:
        await self.server.close()


@pytest_asyncio.fixture
async def artifact_server():
    server = ArtifactServer()
    await server.start()
    yield server
    await server.close()


@pytest.fixture
def context() -> PlaceholderContext:
    return PlaceholderContext(platform="linux", arch="x64", version="1.2.3")


def script(output: str, stream: str = "stdout", exit_code: int = 0) -> bytes:
    """生成一个输出固定内容的 shell 脚本"""
    redirect = " 1>&2" if stream == "stderr" else ""
    lines = ["#!/bin/sh", "", f"echo {output}{redirect}", f"exit {exit_code}", ""]
    return "\n".join(lines).encode("utf-8")


def write_executable(path, content: bytes) -> str:
    path = str(path)
    with open(path, "wb") as f:
        f.write(content)
    os.chmod(path, 0o755)
    return path


def make_tar(
    files: Dict[str, bytes], mode: int = 0o755, compression: str = ""
) -> bytes:
    """在内存中生成 tar（可选 gz/bz2 压缩）"""
    buffer = io.BytesIO()
    write_mode = f"w:{compression}" if compression else "w"
    with tarfile.open(fileobj=buffer, mode=write_mode) as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = mode
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def make_zip(files: Dict[str, bytes], directories: Tuple[str, ...] = ()) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        for directory in directories:
            archive.writestr(zipfile.ZipInfo(directory), b"")
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


async def chunked(data: bytes, size: int = 7):
    """把数据切成小块，模拟网络流"""
    for start in range(0, len(data), size):
        yield data[start:start + size]


async def collect(chunks) -> bytes:
    parts = []
    async for chunk in chunks:
        parts.append(chunk)
    return b"".join(parts)


posix_only = pytest.mark.skipif(
    sys.platform == "win32", reason="需要 POSIX shell 和可执行权限"
)
