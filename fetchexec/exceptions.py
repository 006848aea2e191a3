"""
fetchexec 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, Optional

import aiohttp


class FetchExecError(Exception):
    """fetchexec 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigurationError(FetchExecError):
    """配置错误：未配置校验方式或选项组合不兼容"""

    def _get_default_code(self) -> str:
        return "E100"


class TemplateError(ConfigurationError):
    """模板占位符或过滤器无法解析"""

    def _get_default_code(self) -> str:
        return "E101"


class TransportError(FetchExecError):
    """下载请求失败或返回非成功状态"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        response: Optional[aiohttp.ClientResponse] = None,
    ):
        super().__init__(message, code, context)
        self.response = response
        if response is not None:
            self.context["status"] = response.status
            self.context["url"] = str(response.url)

    def _get_default_code(self) -> str:
        return "E200"


# 与 "fetch 失败" 的叫法保持兼容
FetchError = TransportError


class ExtractionError(FetchExecError):
    """解压或解包错误"""

    def _get_default_code(self) -> str:
        return "E300"


class MemberNotFoundError(ExtractionError):
    """压缩包中找不到指定的文件或目录"""

    def _get_default_code(self) -> str:
        return "E301"


class VerificationError(FetchExecError):
    """校验相关错误"""

    def _get_default_code(self) -> str:
        return "E400"


class ChecksumEntryNotFoundError(VerificationError):
    """校验和清单中没有匹配的条目"""

    def _get_default_code(self) -> str:
        return "E401"


class VerificationFailedAfterFetchError(VerificationError):
    """下载后的可执行文件仍未通过校验"""

    def _get_default_code(self) -> str:
        return "E402"


__all__ = [
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
]
