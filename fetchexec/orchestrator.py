"""
下载协调器

检查本地文件 -> 跳过或下载 -> 保存 -> 设置权限 -> 重新校验。
"""

import asyncio
import os
import time
from dataclasses import dataclass, replace
from typing import Optional

import aiohttp
from loguru import logger

from fetchexec.download.archive import extract_directory, update_symlink
from fetchexec.download.pipeline import (
    EXECUTABLE_MODE,
    ChunkStream,
    apply_stages,
    build_stages,
    save_stream,
)
from fetchexec.download.verifier import ExecutableVerifier
from fetchexec.exceptions import TransportError, VerificationFailedAfterFetchError
from fetchexec.models.events import EventKind
from fetchexec.models.options import FetchOptions, PlaceholderContext
from fetchexec.reporter import LoggerReporter, ProgressTracker, Reporter
from fetchexec.template import format_template


@dataclass
class FetchResult:
    """一次下载请求的结果"""

    target: str
    effective_target: str
    skipped: bool
    elapsed: float = 0.0
    bytes_downloaded: int = 0


class ExecutableFetcher:
    """
    可执行文件下载器

    所有模板在构造时展开，配置错误会在访问网络之前抛出。
    同一个 target 的并发调用需要由调用方串行化。
    """

    def __init__(
        self,
        options: FetchOptions,
        session: Optional[aiohttp.ClientSession] = None,
        context: Optional[PlaceholderContext] = None,
    ):
        self.options = options
        self.context = context or PlaceholderContext.from_environment(options.version)
        if options.version is not None and self.context.version != options.version:
            self.context = replace(self.context, version=options.version)
        self.reporter: Reporter = options.reporter or LoggerReporter()
        self.verifier = ExecutableVerifier(
            options.checks, self.context, timeout=options.timeout
        )

        self._session = session
        self._owned_session = session is None

        extraction = options.extraction
        self.url = format_template(options.url, self.context)
        self.target = options.target
        self.directory_in_tar: Optional[str] = None
        self.symlink_path: Optional[str] = extraction.symlink_path

        if extraction.is_directory:
            self.directory_in_tar = format_template(
                extraction.directory_in_tar, self.context
            )
            sub_path = format_template(
                extraction.executable_sub_path_in_dir, self.context
            )
            self.executable_sub_path: Optional[str] = sub_path
            self.effective_target = os.path.join(self.target, sub_path)
        else:
            self.executable_sub_path = None
            self.effective_target = self.target

        self.stages = build_stages(
            gzip=extraction.gzip,
            bz2_extract=extraction.bz2,
            path_in_tar=self._format_optional(extraction.path_in_tar),
            path_in_zip=self._format_optional(extraction.path_in_zip),
        )

    def _format_optional(self, template: Optional[str]) -> Optional[str]:
        if template is None:
            return None
        return format_template(template, self.context)

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _emit(self, kind: EventKind, message: str, is_verbose: bool = False) -> None:
        self.reporter.emit(kind, message, self.target, is_verbose)

    async def is_installed(self) -> bool:
        """本地已有的文件（以及链接）是否已通过校验"""
        if not os.path.exists(self.effective_target):
            return False
        if not await self.verifier.verify(self.effective_target, self.session):
            return False
        if self.symlink_path is not None:
            return await self.verifier.verify(self.symlink_path, self.session)
        return True

    async def fetch(self) -> FetchResult:
        """执行下载流程"""
        start = time.monotonic()

        if await self.is_installed():
            self._emit(EventKind.EXECUTABLE_IS_OK, f"[跳过] {self.target} 已是正确版本")
            return FetchResult(
                target=self.target,
                effective_target=self.effective_target,
                skipped=True,
                elapsed=time.monotonic() - start,
            )

        self._emit(EventKind.FETCHING, f"[下载] {self.url}")
        written = await self._download()

        if not os.path.isfile(self.effective_target):
            raise VerificationFailedAfterFetchError(
                f"下载内容中没有可执行文件 {self.effective_target}",
                context={"target": self.effective_target, "url": self.url},
            )
        os.chmod(self.effective_target, EXECUTABLE_MODE)

        if not await self._verify_fetched():
            raise VerificationFailedAfterFetchError(
                f"下载的可执行文件 {self.effective_target} 未通过校验",
                context={"target": self.effective_target, "url": self.url},
            )

        elapsed = time.monotonic() - start
        self._emit(EventKind.DONE, f"[完成] {self.target} ({elapsed:.2f}s)")
        return FetchResult(
            target=self.target,
            effective_target=self.effective_target,
            skipped=False,
            elapsed=elapsed,
            bytes_downloaded=written,
        )

    async def _verify_fetched(self) -> bool:
        if not await self.verifier.verify(self.effective_target, self.session):
            return False
        if self.symlink_path is not None:
            return await self.verifier.verify(self.symlink_path, self.session)
        return True

    async def _download(self) -> int:
        """下载并保存，返回下载的字节数"""
        request_kwargs = {}
        if self.options.timeout is not None:
            request_kwargs["timeout"] = self.options.timeout

        try:
            async with self.session.get(self.url, **request_kwargs) as response:
                if response.status != 200:
                    raise TransportError(
                        f"HTTP {response.status}: {self.url}", response=response
                    )

                tracker = ProgressTracker(
                    self.reporter, self.target, response.content_length
                )
                if response.content_length:
                    logger.debug(
                        f"[信息] 文件大小: {response.content_length / (1024 * 1024):.2f} MB"
                    )

                chunks = apply_stages(self._iter_response(response, tracker), self.stages)
                self._emit(EventKind.SAVING, f"[保存] {self.target}", is_verbose=True)
                await self._save(chunks)
                return tracker.downloaded
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"下载失败: {e}", context={"url": self.url}
            ) from e

    @staticmethod
    async def _iter_response(
        response: aiohttp.ClientResponse, tracker: ProgressTracker
    ) -> ChunkStream:
        async for chunk in response.content.iter_chunked(8192):
            tracker.update(len(chunk))
            yield chunk

    async def _save(self, chunks: ChunkStream) -> None:
        if self.directory_in_tar is None:
            await save_stream(chunks, self.target)
            return

        await extract_directory(chunks, self.directory_in_tar, self.target)
        if self.symlink_path is not None:
            update_symlink(self.symlink_path, self.target, self.executable_sub_path)


async def fetch_executable(
    options: FetchOptions,
    session: Optional[aiohttp.ClientSession] = None,
    context: Optional[PlaceholderContext] = None,
) -> FetchResult:
    """
    确保 options.target 处是通过校验的可执行文件

    Args:
        options: 下载请求
        session: 可选的 aiohttp session，未提供时内部创建并在结束后关闭
        context: 模板占位符上下文，默认从运行环境获取

    Raises:
        ConfigurationError: 配置错误（在访问网络之前）
        TransportError: 下载失败
        ExtractionError: 解压或解包失败
        VerificationFailedAfterFetchError: 下载后的文件仍未通过校验
    """
    async with ExecutableFetcher(options, session=session, context=context) as fetcher:
        return await fetcher.fetch()
