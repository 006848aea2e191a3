"""
下载请求数据模型

定义 FetchOptions（一次下载请求）、三种校验方式、解包配置以及模板占位符上下文。
"""

import platform
import sys
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
    Union,
)

import aiohttp

from fetchexec.exceptions import ConfigurationError

if TYPE_CHECKING:
    from fetchexec.reporter import Reporter


# machine 名称 -> URL 模板中使用的架构名
_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "ia32",
    "i686": "ia32",
    "x86": "ia32",
    "armv7l": "arm",
    "armv6l": "arm",
}


def _exec_args(value: Any) -> Tuple[str, ...]:
    """版本探测参数必须是字符串列表"""
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(
            "version_args 必须是字符串列表",
            context={"version_args": value},
        )
    return tuple(str(arg) for arg in value)


@dataclass(frozen=True)
class PlaceholderContext:
    """模板占位符上下文"""

    platform: str
    arch: str
    version: Optional[str] = None

    @classmethod
    def from_environment(cls, version: Optional[str] = None) -> "PlaceholderContext":
        """根据当前运行环境构建上下文"""
        machine = platform.machine().lower()
        return cls(
            platform=sys.platform,
            arch=_ARCH_ALIASES.get(machine, machine),
            version=version,
        )

    def as_dict(self) -> Dict[str, str]:
        values = {"platform": self.platform, "arch": self.arch}
        if self.version is not None:
            values["version"] = self.version
        return values


Predicate = Callable[[str], Union[bool, Awaitable[bool]]]


@dataclass(frozen=True)
class CustomCheck:
    """自定义校验函数，可以是同步或异步函数"""

    predicate: Predicate


@dataclass(frozen=True)
class VersionCheck:
    """运行可执行文件并比较其输出的版本号"""

    version: str
    exec_args: Tuple[str, ...] = ()
    post_process: Optional[Callable[[str], str]] = None
    capture_stderr: bool = False


@dataclass(frozen=True)
class HashCheck:
    """将本地文件的哈希与远程哈希值（或校验和清单中的条目）比较"""

    remote_hash_url: str
    method: str = "sha256"
    checksum_file_entry_path: Optional[str] = None


Check = Union[CustomCheck, VersionCheck, HashCheck]


@dataclass(frozen=True)
class Extraction:
    """
    解包配置

    依次执行 gzip 解压、bz2 解压，然后至多执行一种归档提取：
    path_in_tar、path_in_zip 或 directory_in_tar（目录模式）。
    """

    gzip: bool = False
    bz2: bool = False
    path_in_tar: Optional[str] = None
    path_in_zip: Optional[str] = None
    directory_in_tar: Optional[str] = None
    executable_sub_path_in_dir: Optional[str] = None
    symlink_path: Optional[str] = None

    def __post_init__(self):
        stages = [
            name
            for name in ("path_in_tar", "path_in_zip", "directory_in_tar")
            if getattr(self, name) is not None
        ]
        if len(stages) > 1:
            raise ConfigurationError(
                f"只能配置一种归档提取方式: {', '.join(stages)}",
                context={"stages": stages},
            )
        if self.directory_in_tar is not None:
            if not self.executable_sub_path_in_dir:
                raise ConfigurationError(
                    "目录模式必须设置 executable_sub_path_in_dir"
                )
        elif self.executable_sub_path_in_dir is not None or self.symlink_path is not None:
            raise ConfigurationError(
                "executable_sub_path_in_dir 与 symlink_path 仅适用于目录模式"
            )

    @property
    def is_directory(self) -> bool:
        return self.directory_in_tar is not None


@dataclass(frozen=True)
class FetchOptions:
    """一次下载请求"""

    target: str
    url: str
    checks: Tuple[Check, ...] = ()
    extraction: Extraction = field(default_factory=Extraction)
    reporter: Optional["Reporter"] = None
    timeout: Optional[aiohttp.ClientTimeout] = None

    def __post_init__(self):
        # 允许传入 list，统一存为 tuple
        object.__setattr__(self, "checks", tuple(self.checks))
        if not self.checks:
            raise ConfigurationError(
                "必须至少设置一种校验方式: execIsOk、version 或 hashValueUrl",
                context={"target": self.target},
            )
        if self.extraction.is_directory and self.hash_check is not None:
            raise ConfigurationError(
                "目录模式不支持哈希校验",
                context={"target": self.target},
            )

    @property
    def version(self) -> Optional[str]:
        """请求声明的版本，用于模板中的 {version}"""
        for check in self.checks:
            if isinstance(check, VersionCheck):
                return check.version
        return None

    @property
    def hash_check(self) -> Optional[HashCheck]:
        for check in self.checks:
            if isinstance(check, HashCheck):
                return check
        return None

    @classmethod
    def for_version(
        cls,
        target: str,
        url: str,
        version: str,
        version_args: Optional[List[str]] = None,
        post_process: Optional[Callable[[str], str]] = None,
        **kwargs: Any,
    ) -> "FetchOptions":
        """只用版本号校验的快捷构造方式"""
        check = VersionCheck(
            version=version,
            exec_args=_exec_args(version_args),
            post_process=post_process,
        )
        return cls(target=target, url=url, checks=(check,), **kwargs)

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], reporter: Optional["Reporter"] = None
    ) -> "FetchOptions":
        """
        从配置文件的字典构建请求

        支持的键: target, url, version, version_args, version_capture_stderr,
        hash_url, hash_method, checksum_entry_path, gz_extract, bz2_extract,
        path_in_tar, path_in_zip, directory_in_tar, executable_sub_path,
        symlink_path, timeout（秒）
        """
        for key in ("target", "url"):
            if not data.get(key):
                raise ConfigurationError(f"缺少必需的配置项: {key}", context=dict(data))

        checks: List[Check] = []
        if data.get("version") is not None:
            checks.append(
                VersionCheck(
                    version=str(data["version"]),
                    exec_args=_exec_args(data.get("version_args")),
                    capture_stderr=bool(data.get("version_capture_stderr", False)),
                )
            )
        if data.get("hash_url"):
            checks.append(
                HashCheck(
                    remote_hash_url=data["hash_url"],
                    method=data.get("hash_method", "sha256"),
                    checksum_file_entry_path=data.get("checksum_entry_path"),
                )
            )

        extraction = Extraction(
            gzip=bool(data.get("gz_extract", False)),
            bz2=bool(data.get("bz2_extract", False)),
            path_in_tar=data.get("path_in_tar"),
            path_in_zip=data.get("path_in_zip"),
            directory_in_tar=data.get("directory_in_tar"),
            executable_sub_path_in_dir=data.get("executable_sub_path"),
            symlink_path=data.get("symlink_path"),
        )

        timeout = None
        if data.get("timeout") is not None:
            timeout = aiohttp.ClientTimeout(total=float(data["timeout"]))

        return cls(
            target=str(data["target"]),
            url=data["url"],
            checks=tuple(checks),
            extraction=extraction,
            reporter=reporter,
            timeout=timeout,
        )
