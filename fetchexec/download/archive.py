"""
归档提取

tarfile/zipfile 只提供阻塞接口，这里把它们放在工作线程中运行，
通过 _ChunkReader 按需从事件循环拉取上游数据块，再把输出数据块送回事件循环。
"""

import asyncio
import io
import os
import shutil
import tarfile
import tempfile
import threading
import zipfile
from contextlib import aclosing
from typing import AsyncIterator, Callable, List

from loguru import logger

from fetchexec.exceptions import ExtractionError, MemberNotFoundError

ChunkStream = AsyncIterator[bytes]
Emit = Callable[[bytes], None]

CHUNK_SIZE = 64 * 1024
# zip 需要随机访问，超过该大小的内容会落盘
ZIP_SPOOL_MAX_SIZE = 32 * 1024 * 1024

_DONE = object()


class _StageCancelled(Exception):
    """下游已经停止读取"""


class _ChunkReader(io.RawIOBase):
    """在工作线程中以阻塞方式读取异步数据块"""

    def __init__(
        self,
        chunks: ChunkStream,
        loop: asyncio.AbstractEventLoop,
        cancelled: threading.Event,
    ):
        self._chunks = chunks
        self._loop = loop
        self._cancelled = cancelled
        self._buffer = b""
        self._eof = False

    def readable(self) -> bool:
        return True

    async def _next_chunk(self):
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return None

    def readinto(self, b) -> int:
        while not self._buffer and not self._eof:
            if self._cancelled.is_set():
                raise _StageCancelled()
            chunk = asyncio.run_coroutine_threadsafe(
                self._next_chunk(), self._loop
            ).result()
            if chunk is None:
                self._eof = True
            else:
                self._buffer = chunk

        size = min(len(b), len(self._buffer))
        b[:size] = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return size


def _drain(queue: asyncio.Queue) -> None:
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return


async def run_threaded_stage(
    chunks: ChunkStream, work: Callable[[io.BufferedReader, Emit], None]
) -> ChunkStream:
    """
    在工作线程中运行阻塞的处理函数

    Args:
        chunks: 上游数据块
        work: 处理函数，参数为可阻塞读取的上游流和输出函数

    Yields:
        work 输出的数据块
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue(maxsize=8)
    cancelled = threading.Event()
    reader = io.BufferedReader(_ChunkReader(chunks, loop, cancelled), CHUNK_SIZE)

    def emit(data: bytes) -> None:
        if cancelled.is_set():
            raise _StageCancelled()
        asyncio.run_coroutine_threadsafe(queue.put(data), loop).result()

    def run() -> None:
        try:
            work(reader, emit)
        finally:
            if not cancelled.is_set():
                asyncio.run_coroutine_threadsafe(queue.put(_DONE), loop).result()

    async with aclosing(chunks):
        task = asyncio.ensure_future(asyncio.to_thread(run))
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                yield item
            await task
        finally:
            if not task.done():
                cancelled.set()
                while not task.done():
                    _drain(queue)
                    await asyncio.wait({task}, timeout=0.1)
                if not task.cancelled() and isinstance(
                    task.exception(), _StageCancelled
                ):
                    logger.debug("[解包] 下游提前结束，已停止工作线程")


def _copy_member(fileobj, emit: Emit) -> None:
    while True:
        data = fileobj.read(CHUNK_SIZE)
        if not data:
            break
        emit(data)


def _tar_member_worker(path_in_tar: str):
    def work(reader: io.BufferedReader, emit: Emit) -> None:
        found = False
        try:
            with tarfile.open(fileobj=reader, mode="r|") as tar:
                for member in tar:
                    if found or member.name != path_in_tar or not member.isfile():
                        continue
                    fileobj = tar.extractfile(member)
                    with fileobj:
                        _copy_member(fileobj, emit)
                    found = True
        except tarfile.TarError as e:
            raise ExtractionError(
                f"读取 tar 失败: {e}", context={"path_in_tar": path_in_tar}
            ) from e

        if not found:
            raise MemberNotFoundError(
                f"tar 中找不到 {path_in_tar}",
                context={"path_in_tar": path_in_tar},
            )

    return work


def _zip_member_worker(path_in_zip: str):
    def work(reader: io.BufferedReader, emit: Emit) -> None:
        with tempfile.SpooledTemporaryFile(max_size=ZIP_SPOOL_MAX_SIZE) as spool:
            shutil.copyfileobj(reader, spool, CHUNK_SIZE)
            spool.seek(0)
            try:
                archive = zipfile.ZipFile(spool)
            except zipfile.BadZipFile as e:
                raise ExtractionError(
                    f"读取 zip 失败: {e}", context={"path_in_zip": path_in_zip}
                ) from e

            with archive:
                for info in archive.infolist():
                    if info.filename == path_in_zip and not info.is_dir():
                        with archive.open(info) as member:
                            _copy_member(member, emit)
                        return

        raise MemberNotFoundError(
            f"zip 中找不到 {path_in_zip}",
            context={"path_in_zip": path_in_zip},
        )

    return work


def extract_tar_member(chunks: ChunkStream, path_in_tar: str) -> ChunkStream:
    """从 tar 流中取出单个文件的内容"""
    return run_threaded_stage(chunks, _tar_member_worker(path_in_tar))


def extract_zip_member(chunks: ChunkStream, path_in_zip: str) -> ChunkStream:
    """从 zip 流中取出单个文件的内容"""
    return run_threaded_stage(chunks, _zip_member_worker(path_in_zip))


def _split_path(path: str) -> List[str]:
    return [part for part in path.replace(os.sep, "/").split("/") if part not in ("", ".")]


def _directory_worker(dir_path_in_tar: str, dest_dir: str):
    prefix = _split_path(dir_path_in_tar.rstrip("/" + os.sep))
    depth = len(prefix)

    def strip_prefix(name: str):
        parts = _split_path(name)
        if parts[:depth] != prefix:
            return None
        return parts[depth:]

    def work(reader: io.BufferedReader, emit: Emit) -> None:
        matched = 0
        try:
            with tarfile.open(fileobj=reader, mode="r|") as tar:
                for member in tar:
                    relative = strip_prefix(member.name)
                    if relative is None:
                        continue
                    matched += 1
                    if not relative:
                        continue
                    member.name = "/".join(relative)
                    if member.islnk():
                        link_relative = strip_prefix(member.linkname)
                        if link_relative:
                            member.linkname = "/".join(link_relative)
                    tar.extract(member, dest_dir, filter="data")
        except tarfile.TarError as e:
            raise ExtractionError(
                f"解包 tar 目录失败: {e}",
                context={"directory_in_tar": dir_path_in_tar},
            ) from e

        if matched == 0:
            raise MemberNotFoundError(
                f"tar 中找不到目录 {dir_path_in_tar}",
                context={"directory_in_tar": dir_path_in_tar},
            )

    return work


def _remove_path(path: str) -> None:
    if os.path.islink(path) or os.path.isfile(path):
        os.remove(path)
    elif os.path.isdir(path):
        shutil.rmtree(path)


async def extract_directory(
    chunks: ChunkStream, dir_path_in_tar: str, dest_dir: str
) -> None:
    """
    把 tar 中的一个目录解包到 dest_dir

    dest_dir 会先被删除再重新创建；条目路径会去掉目录前缀，保留相对结构和权限。
    解包失败时删除已写入一半的 dest_dir。
    """
    _remove_path(dest_dir)
    os.makedirs(dest_dir)

    try:
        async with aclosing(
            run_threaded_stage(chunks, _directory_worker(dir_path_in_tar, dest_dir))
        ) as stage:
            async for _ in stage:
                pass
    except BaseException:
        shutil.rmtree(dest_dir, ignore_errors=True)
        raise

    logger.debug(f"[解包] {dir_path_in_tar} -> {dest_dir}")


def update_symlink(symlink_path: str, dest_dir: str, executable_sub_path: str) -> None:
    """
    让 symlink_path 指向 dest_dir 中的可执行文件

    使用相对于链接所在目录的路径；已存在的文件或链接会被替换。
    """
    link_dir = os.path.dirname(os.path.abspath(symlink_path))
    link_target = os.path.relpath(
        os.path.abspath(os.path.join(dest_dir, executable_sub_path)), link_dir
    )

    try:
        os.remove(symlink_path)
    except FileNotFoundError:
        pass

    os.symlink(link_target, symlink_path)
    logger.debug(f"[链接] {symlink_path} -> {link_target}")
