"""
fetchexec

下载可执行文件，校验版本或哈希，并安装到指定路径。
"""

__version__ = "0.1.0"

from fetchexec.exceptions import (
    FetchExecError,
    ConfigurationError,
    TemplateError,
    TransportError,
    FetchError,
    ExtractionError,
    MemberNotFoundError,
    VerificationError,
    ChecksumEntryNotFoundError,
    VerificationFailedAfterFetchError,
)
from fetchexec.models import (
    PlaceholderContext,
    CustomCheck,
    VersionCheck,
    HashCheck,
    Extraction,
    FetchOptions,
    EventKind,
    FetchEvent,
)
from fetchexec.orchestrator import ExecutableFetcher, FetchResult, fetch_executable
from fetchexec.reporter import (
    Reporter,
    LoggerReporter,
    CallbackReporter,
    JsonLinesReporter,
)
from fetchexec.template import format_template, register_filter

__all__ = [
    "__version__",
    # 异常
    "FetchExecError",
    "ConfigurationError",
    "TemplateError",
    "TransportError",
    "FetchError",
    "ExtractionError",
    "MemberNotFoundError",
    "VerificationError",
    "ChecksumEntryNotFoundError",
    "VerificationFailedAfterFetchError",
    # 模型
    "PlaceholderContext",
    "CustomCheck",
    "VersionCheck",
    "HashCheck",
    "Extraction",
    "FetchOptions",
    "EventKind",
    "FetchEvent",
    # 下载
    "ExecutableFetcher",
    "FetchResult",
    "fetch_executable",
    # 事件报告
    "Reporter",
    "LoggerReporter",
    "CallbackReporter",
    "JsonLinesReporter",
    # 模板
    "format_template",
    "register_filter",
]
