"""
下载生命周期事件
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class EventKind(Enum):
    """事件类型"""

    FETCHING = "fetching"
    SAVING = "saving"
    FETCH_PROGRESS = "fetch_progress"
    EXECUTABLE_IS_OK = "executable_is_ok"
    DONE = "done"


@dataclass(frozen=True)
class FetchEvent:
    """发送给 Reporter 的事件"""

    message: str
    kind: EventKind
    target: str
    is_verbose: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "kind": self.kind.value,
            "target": self.target,
            "isVerbose": self.is_verbose,
        }
