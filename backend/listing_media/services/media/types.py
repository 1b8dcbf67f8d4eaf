"""媒体处理相关的数据结构和类型定义"""

from typing import NamedTuple, Union

from ...core.errors import ErrorKind, MediaError
from ...core.models import MediaDescriptor


class Success(NamedTuple):
    """单个文件处理成功"""
    index: int
    descriptor: MediaDescriptor


class Failure(NamedTuple):
    """单个文件处理失败"""
    index: int
    kind: ErrorKind
    detail: str
    error: MediaError


ProcessingOutcome = Union[Success, Failure]
