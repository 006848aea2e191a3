"""
流式解码管道

每个阶段都是一个异步数据块迭代器：gzip 解压 -> bz2 解压 -> 归档提取（可选），
下游读多快上游就读多快，不会把整个文件缓存在内存中。
"""

import bz2
import functools
import os
import zlib
from contextlib import aclosing
from typing import AsyncIterator, Callable, List, Optional

import aiofiles
from loguru import logger

from fetchexec.download.archive import extract_tar_member, extract_zip_member
from fetchexec.exceptions import ExtractionError

ChunkStream = AsyncIterator[bytes]
Stage = Callable[[ChunkStream], ChunkStream]

EXECUTABLE_MODE = 0o755

_GZIP_WBITS = 16 + zlib.MAX_WBITS


async def gunzip(chunks: ChunkStream) -> ChunkStream:
    """gzip 解压，支持多个连续的 gzip 成员"""
    decompressor = zlib.decompressobj(_GZIP_WBITS)
    async with aclosing(chunks):
        async for chunk in chunks:
            while chunk:
                if decompressor.eof:
                    decompressor = zlib.decompressobj(_GZIP_WBITS)
                try:
                    data = decompressor.decompress(chunk)
                except zlib.error as e:
                    raise ExtractionError(f"gzip 解压失败: {e}") from e
                if data:
                    yield data
                chunk = decompressor.unused_data if decompressor.eof else b""

    try:
        tail = decompressor.flush()
    except zlib.error as e:
        raise ExtractionError(f"gzip 解压失败: {e}") from e
    if tail:
        yield tail
    if not decompressor.eof:
        raise ExtractionError("gzip 数据不完整")


async def bunzip2(chunks: ChunkStream) -> ChunkStream:
    """bz2 解压，支持多个连续的 bz2 流"""
    decompressor = bz2.BZ2Decompressor()
    async with aclosing(chunks):
        async for chunk in chunks:
            while chunk:
                if decompressor.eof:
                    decompressor = bz2.BZ2Decompressor()
                try:
                    data = decompressor.decompress(chunk)
                except OSError as e:
                    raise ExtractionError(f"bz2 解压失败: {e}") from e
                if data:
                    yield data
                chunk = decompressor.unused_data if decompressor.eof else b""

    if not decompressor.eof:
        raise ExtractionError("bz2 数据不完整")


def build_stages(
    gzip: bool = False,
    bz2_extract: bool = False,
    path_in_tar: Optional[str] = None,
    path_in_zip: Optional[str] = None,
) -> List[Stage]:
    """按顺序列出需要的处理阶段，归档路径必须已经展开"""
    stages: List[Stage] = []
    if gzip:
        stages.append(gunzip)
    if bz2_extract:
        stages.append(bunzip2)
    if path_in_tar is not None:
        stages.append(functools.partial(extract_tar_member, path_in_tar=path_in_tar))
    elif path_in_zip is not None:
        stages.append(functools.partial(extract_zip_member, path_in_zip=path_in_zip))
    return stages


def apply_stages(chunks: ChunkStream, stages: List[Stage]) -> ChunkStream:
    for stage in stages:
        chunks = stage(chunks)
    return chunks


def remove_file(path: str) -> None:
    """删除文件，文件不存在时忽略"""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


async def save_stream(
    chunks: ChunkStream, dest: str, mode: Optional[int] = EXECUTABLE_MODE
) -> int:
    """
    把数据流写入 dest

    先删除旧文件再写入；写入中途失败时删除不完整的文件。
    只有在全部内容写入并关闭后才设置权限。

    Returns:
        写入的字节数
    """
    remove_file(dest)

    written = 0
    try:
        async with aclosing(chunks):
            async with aiofiles.open(dest, "wb") as f:
                async for chunk in chunks:
                    await f.write(chunk)
                    written += len(chunk)
    except BaseException:
        # 清理不完整的文件
        try:
            remove_file(dest)
        except OSError as cleanup_error:
            logger.warning(f"[清理] 删除不完整的文件失败 {dest}: {cleanup_error}")
        raise

    if mode is not None:
        os.chmod(dest, mode)
    return written
