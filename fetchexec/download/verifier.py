"""
可执行文件校验器

按顺序执行自定义校验、版本探测和哈希校验，任意一项失败即返回 False。
"""

import asyncio
import hashlib
import inspect
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence

import aiofiles
import aiohttp
from loguru import logger

from fetchexec.exceptions import (
    ChecksumEntryNotFoundError,
    ConfigurationError,
    TransportError,
)
from fetchexec.models.options import (
    Check,
    CustomCheck,
    HashCheck,
    PlaceholderContext,
    VersionCheck,
)
from fetchexec.template import format_template


def read_from_checksum_file(content: str, match_filepath: str) -> str:
    """
    从校验和清单中找出指定文件的哈希值

    每行格式为 "<hex-digest><空白><filepath>"，filepath 去除首尾空白后必须完全相等。

    Raises:
        ChecksumEntryNotFoundError: 没有匹配的行
    """
    for line in content.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) != 2:
            continue
        digest, filepath = parts
        if filepath.strip() == match_filepath:
            return digest.strip()

    raise ChecksumEntryNotFoundError(
        f"校验和文件中找不到 {match_filepath}",
        context={"match_filepath": match_filepath},
    )


async def calc_hash(file_path: str, method: str = "sha256") -> Optional[str]:
    """
    计算文件的哈希值

    Returns:
        十六进制哈希值，文件不存在时返回 None
    """
    if not os.path.isfile(file_path):
        return None

    digest = hashlib.new(method)
    async with aiofiles.open(file_path, "rb") as f:
        while True:
            data = await f.read(65536)
            if not data:
                break
            digest.update(data)
    return digest.hexdigest()


async def run_version_probe(
    file_path: str, exec_args: Sequence[str], capture_stderr: bool = False
) -> Optional[str]:
    """
    运行可执行文件获取版本输出

    Returns:
        去除首尾空白的输出；无法运行或退出码非零时返回 None
    """
    if not os.path.isfile(file_path):
        return None

    try:
        process = await asyncio.create_subprocess_exec(
            file_path,
            *exec_args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=(
                asyncio.subprocess.STDOUT
                if capture_stderr
                else asyncio.subprocess.DEVNULL
            ),
        )
        stdout, _ = await process.communicate()
    except OSError as e:
        logger.debug(f"[校验] 无法运行 {file_path}: {e}")
        return None

    if process.returncode != 0:
        logger.debug(f"[校验] {file_path} 退出码为 {process.returncode}")
        return None

    return stdout.decode("utf-8", errors="replace").strip()


@dataclass(frozen=True)
class _PreparedHashCheck:
    url: str
    method: str
    entry_path: Optional[str]


class ExecutableVerifier:
    """
    可执行文件校验器

    构造时会展开所有模板，因此模板错误会在任何网络访问之前抛出。
    """

    def __init__(
        self,
        checks: Sequence[Check],
        context: PlaceholderContext,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ):
        if not checks:
            raise ConfigurationError("必须至少设置一种校验方式")

        self.timeout = timeout

        self._checks: List[object] = []
        for check in checks:
            if isinstance(check, HashCheck):
                method = check.method.lower()
                if method not in hashlib.algorithms_available:
                    raise ConfigurationError(
                        f"不支持的哈希算法: {check.method}",
                        context={"method": check.method},
                    )
                entry_path = None
                if check.checksum_file_entry_path is not None:
                    entry_path = format_template(check.checksum_file_entry_path, context)
                self._checks.append(
                    _PreparedHashCheck(
                        url=format_template(check.remote_hash_url, context),
                        method=method,
                        entry_path=entry_path,
                    )
                )
            else:
                self._checks.append(check)

    async def verify(
        self, file_path: str, session: Optional[aiohttp.ClientSession] = None
    ) -> bool:
        """
        校验文件

        Args:
            file_path: 待校验的文件路径
            session: 哈希校验使用的 aiohttp session，为空时临时创建

        Returns:
            所有校验都通过时返回 True
        """
        for check in self._checks:
            if isinstance(check, CustomCheck):
                ok = await self._check_custom(check, file_path)
            elif isinstance(check, VersionCheck):
                ok = await self._check_version(check, file_path)
            else:
                ok = await self._check_hash(check, file_path, session)
            if not ok:
                return False
        return True

    async def _check_custom(self, check: CustomCheck, file_path: str) -> bool:
        result = check.predicate(file_path)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def _check_version(self, check: VersionCheck, file_path: str) -> bool:
        output = await run_version_probe(
            file_path, check.exec_args, check.capture_stderr
        )
        if output is None:
            return False

        if check.post_process is not None:
            try:
                output = check.post_process(output)
            except ValueError as e:
                logger.warning(f"[校验] 无法解析 {file_path} 的版本输出: {e}")
                return False

        if output != check.version:
            logger.debug(
                f"[校验] {file_path} 版本不匹配: 期望 {check.version}，实际 {output}"
            )
            return False
        return True

    async def _check_hash(
        self,
        check: _PreparedHashCheck,
        file_path: str,
        session: Optional[aiohttp.ClientSession],
    ) -> bool:
        if not os.path.isfile(file_path):
            return False

        if session is None:
            async with aiohttp.ClientSession() as own_session:
                body = await self._get_text(own_session, check.url)
        else:
            body = await self._get_text(session, check.url)

        if check.entry_path is not None:
            expected = read_from_checksum_file(body, check.entry_path)
        else:
            expected = body

        actual = await calc_hash(file_path, check.method)
        if actual is None:
            return False

        if expected.strip().lower() != actual.strip().lower():
            logger.debug(f"[校验] {file_path} 哈希不匹配")
            return False
        return True

    async def _get_text(self, session: aiohttp.ClientSession, url: str) -> str:
        request_kwargs = {}
        if self.timeout is not None:
            request_kwargs["timeout"] = self.timeout

        try:
            async with session.get(url, **request_kwargs) as response:
                if response.status != 200:
                    raise TransportError(
                        f"获取哈希值失败: HTTP {response.status}",
                        response=response,
                    )
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"获取哈希值失败: {e}", context={"url": url}
            ) from e
