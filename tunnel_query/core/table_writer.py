"""
表格输出模块 - 将查询结果按列对齐输出为文本表格
"""

import sys
from typing import Any, List, Optional, Sequence, TextIO
import logging

from .exceptions import ResultScanError, ValueCoercionError

logger = logging.getLogger(__name__)

# SQL NULL 表示没有值，不是一种列类型，因此不算转换错误
NULL_TEXT = "NULL"


def coerce_value(value: Any) -> str:
    """
    将列值转换为显示用字符串

    只支持文本和字节序列两种形式，其他类型视为不支持的列类型。

    Args:
        value: 数据库驱动返回的原始列值

    Returns:
        显示字符串

    Raises:
        ValueCoercionError: 列值类型不是 str/bytes
    """
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if value is None:
        return NULL_TEXT
    raise ValueCoercionError(type(value))


class TableWriter:
    """
    列对齐的表格输出器

    单元格按列宽补齐空格，再加一个空格和 "|" 分隔，最后一列不补齐：

        id |name
        --------
        1  |alice
        42 |bob

    所有行缓存到 flush() 时统一计算列宽后输出。
    """

    def __init__(self, stream: Optional[TextIO] = None, padding: int = 1, separator: str = "|"):
        self.stream = stream or sys.stdout
        self.padding = padding
        self.separator = separator
        self.columns: Optional[List[str]] = None
        self.rows: List[List[str]] = []

    def write_header(self, columns: Sequence[str]):
        self.columns = [str(c) for c in columns]

    def write_row(self, values: Sequence[str]):
        if self.columns is None:
            raise RuntimeError("write_header() must be called before write_row()")
        if len(values) != len(self.columns):
            raise ResultScanError(
                f"row has {len(values)} values, expected {len(self.columns)} columns"
            )
        self.rows.append(list(values))

    def _format_line(self, cells: List[str], widths: List[int]) -> str:
        parts = []
        for i, cell in enumerate(cells):
            if i == len(cells) - 1:
                parts.append(cell)
            else:
                parts.append(cell.ljust(widths[i] + self.padding) + self.separator)
        return "".join(parts)

    def render(self) -> List[str]:
        """返回渲染后的所有行（不含换行符）"""
        if self.columns is None:
            return []

        widths = [len(c) for c in self.columns]
        for row in self.rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(cell))

        header = self._format_line(self.columns, widths)
        lines = [header, "-" * len(header)]
        lines.extend(self._format_line(row, widths) for row in self.rows)
        return lines

    def flush(self):
        """输出表格并清空缓存"""
        lines = self.render()
        for line in lines:
            self.stream.write(line + "\n")
        self.stream.flush()
        logger.debug(f"Rendered {len(self.rows)} row(s)")
        self.columns = None
        self.rows = []
