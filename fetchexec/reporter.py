"""
进度/事件报告

Reporter 只是旁路输出，不影响下载流程的控制。
"""

import json
import sys
from abc import ABC, abstractmethod
from typing import Callable, Optional, TextIO

from loguru import logger

from fetchexec.models.events import EventKind, FetchEvent


class Reporter(ABC):
    """事件报告器基类"""

    @abstractmethod
    def report(self, event: FetchEvent) -> None:
        pass

    def emit(
        self,
        kind: EventKind,
        message: str,
        target: str,
        is_verbose: bool = False,
    ) -> None:
        """构建事件并报告"""
        self.report(FetchEvent(message, kind, target, is_verbose))


class LoggerReporter(Reporter):
    """通过 loguru 输出事件，详细事件使用 DEBUG 级别"""

    def report(self, event: FetchEvent) -> None:
        if event.is_verbose:
            logger.debug(event.message)
        elif event.kind == EventKind.DONE:
            logger.success(event.message)
        else:
            logger.info(event.message)


class CallbackReporter(Reporter):
    """把事件交给回调函数"""

    def __init__(self, callback: Callable[[FetchEvent], None]):
        self._callback = callback

    def report(self, event: FetchEvent) -> None:
        self._callback(event)


class JsonLinesReporter(Reporter):
    """每个事件输出一行 JSON"""

    def __init__(self, stream: Optional[TextIO] = None, verbose: bool = False):
        self._stream = stream
        self._verbose = verbose

    def report(self, event: FetchEvent) -> None:
        if event.is_verbose and not self._verbose:
            return
        stream = self._stream or sys.stdout
        stream.write(json.dumps(event.to_dict(), ensure_ascii=False) + "\n")
        stream.flush()


class ProgressTracker:
    """
    下载进度跟踪

    只有已知总大小时才报告，且每增长 5 个百分点报告一次。
    """

    def __init__(
        self,
        reporter: Reporter,
        target: str,
        total_size: Optional[int],
        step: float = 5.0,
    ):
        self.reporter = reporter
        self.target = target
        self.total_size = total_size or 0
        self.step = step
        self.downloaded = 0
        self._last_percent = 0.0

    def update(self, chunk_size: int) -> None:
        self.downloaded += chunk_size
        if self.total_size <= 0:
            return
        percent = (self.downloaded / self.total_size) * 100
        if percent - self._last_percent >= self.step:
            self.reporter.emit(
                EventKind.FETCH_PROGRESS,
                f"[进度] {self.target}: {percent:.1f}%",
                self.target,
                is_verbose=True,
            )
            self._last_percent = percent
