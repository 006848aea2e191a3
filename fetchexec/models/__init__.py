"""
fetchexec 数据模型包

包含下载请求模型和事件模型定义。
"""

from fetchexec.models.options import (
    PlaceholderContext,
    CustomCheck,
    VersionCheck,
    HashCheck,
    Check,
    Extraction,
    FetchOptions,
)
from fetchexec.models.events import EventKind, FetchEvent

__all__ = [
    # 请求模型
    "PlaceholderContext",
    "CustomCheck",
    "VersionCheck",
    "HashCheck",
    "Check",
    "Extraction",
    "FetchOptions",
    # 事件模型
    "EventKind",
    "FetchEvent",
]
