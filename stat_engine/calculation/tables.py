# 透视表输出结构
"""
所有计算器都把结果投影为统一的透视表结构，渲染层无需了解具体计算器：

    {"title": str, "columnHeaders": [str], "rows": [{"rowHeader": [...], <列名>: 值}],
     "footnotes": [str]}

无法计算的统计量以 None 表示(渲染为空白单元格)。
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np


def clean_value(value: Any) -> Any:
    """转换为可JSON序列化的值，NaN/Inf 视为不可计算"""
    if value is None:
        return None
    if isinstance(value, (np.bool_, bool)):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (np.floating, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    return value


@dataclass
class PivotTable:
    """透视表构建器"""
    title: str
    column_headers: List[str]
    rows: List[Dict[str, Any]] = field(default_factory=list)
    footnotes: List[str] = field(default_factory=list)

    def add_row(self, row_header: Sequence[Any], **cells: Any) -> Dict[str, Any]:
        return self.add_cells(row_header, cells)

    def add_cells(self, row_header: Sequence[Any], cells: Dict[str, Any]) -> Dict[str, Any]:
        """列名中含空格等字符时使用字典形式"""
        row = {'rowHeader': [clean_value(h) for h in row_header]}
        for header in self.column_headers:
            if header in cells:
                row[header] = clean_value(cells[header])
        self.rows.append(row)
        return row

    def add_footnote(self, text: str):
        if text not in self.footnotes:
            self.footnotes.append(text)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'title': self.title,
            'columnHeaders': list(self.column_headers),
            'rows': self.rows,
        }
        if self.footnotes:
            result['footnotes'] = list(self.footnotes)
        return result


def result_bundle(tables: Sequence[PivotTable], summary: Optional[Dict[str, Any]] = None,
                  statistics: Optional[Dict[str, Any]] = None, **extra: Any) -> Dict[str, Any]:
    """组装结果包：tables 供渲染，statistics 为原始数值"""
    bundle = {'tables': [table.to_dict() for table in tables]}
    if summary is not None:
        bundle['summary'] = {key: clean_value(value) for key, value in summary.items()}
    if statistics is not None:
        bundle['statistics'] = _clean_nested(statistics)
    for key, value in extra.items():
        bundle[key] = _clean_nested(value)
    return bundle


def _clean_nested(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _clean_nested(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_clean_nested(item) for item in value]
    if isinstance(value, np.ndarray):
        return [_clean_nested(item) for item in value.tolist()]
    return clean_value(value)
