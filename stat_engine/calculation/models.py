# 计算层数据模型：变量描述、缺失值定义、单元格标记联合与计算请求
import math
import re
import logging
from dataclasses import dataclass, field
from functools import cached_property
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

# SPSS 日期起点：1582-10-14 00:00:00
SPSS_EPOCH = date(1582, 10, 14)
SECONDS_PER_DAY = 86400
DATE_STRING_PATTERN = re.compile(r'^(\d{1,2})-(\d{1,2})-(\d{4})$')


class VariableType(str, Enum):
    """变量类型枚举"""
    NUMERIC = "NUMERIC"
    COMMA = "COMMA"
    DOT = "DOT"
    SCIENTIFIC = "SCIENTIFIC"
    DOLLAR = "DOLLAR"
    CCURRENCY = "CCURRENCY"
    STRING = "STRING"
    DATE = "DATE"
    ADATE = "ADATE"
    EDATE = "EDATE"
    SDATE = "SDATE"
    JDATE = "JDATE"
    QYR = "QYR"
    MOYR = "MOYR"
    WKYR = "WKYR"
    DATETIME = "DATETIME"
    TIME = "TIME"
    DTIME = "DTIME"


DATE_TYPES = frozenset({
    VariableType.DATE, VariableType.ADATE, VariableType.EDATE, VariableType.SDATE,
    VariableType.JDATE, VariableType.QYR, VariableType.MOYR, VariableType.WKYR,
    VariableType.DATETIME, VariableType.TIME, VariableType.DTIME
})


class MeasureLevel(str, Enum):
    """测量水平枚举"""
    SCALE = "scale"
    ORDINAL = "ordinal"
    NOMINAL = "nominal"
    UNKNOWN = "unknown"


class CellKind(Enum):
    """单元格类型"""
    NUMBER = "number"
    STRING = "string"
    MISSING = "missing"


@dataclass(frozen=True)
class Cell:
    """单元格值

    在数据切片边界处一次性确定类型，计算过程中不再做运行时类型判断。
    """
    kind: CellKind
    value: Union[float, str, None] = None
    user_missing: bool = False

    @property
    def is_valid(self) -> bool:
        return self.kind is not CellKind.MISSING


SYSTEM_MISSING = Cell(CellKind.MISSING)


@dataclass(frozen=True)
class MissingSpec:
    """用户定义缺失值：离散值列表和/或闭区间"""
    discrete: Tuple[Any, ...] = ()
    range_min: Optional[float] = None
    range_max: Optional[float] = None

    @property
    def has_range(self) -> bool:
        return self.range_min is not None and self.range_max is not None

    def matches_number(self, value: float) -> bool:
        for missing_value in self.discrete:
            number = parse_number(missing_value)
            if number is not None and number == value:
                return True
        if self.has_range and self.range_min <= value <= self.range_max:
            return True
        return False

    def matches_string(self, value: str) -> bool:
        return any(str(missing_value).strip() == value for missing_value in self.discrete)


@dataclass(frozen=True)
class Variable:
    """变量描述，计算期间只读"""
    name: str
    column_index: int = 0
    type: VariableType = VariableType.NUMERIC
    measure: MeasureLevel = MeasureLevel.UNKNOWN
    missing: MissingSpec = field(default_factory=MissingSpec)
    decimals: int = 2
    label: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    @property
    def is_string(self) -> bool:
        return self.type == VariableType.STRING

    @property
    def is_date(self) -> bool:
        return self.type in DATE_TYPES

    @property
    def effective_measure(self) -> MeasureLevel:
        """unknown 测量水平：字符串视为 nominal，数值与日期视为 scale"""
        if self.measure != MeasureLevel.UNKNOWN:
            return self.measure
        return MeasureLevel.NOMINAL if self.is_string else MeasureLevel.SCALE

    @property
    def is_numeric_like(self) -> bool:
        """按数值处理分布与百分位数(scale/ordinal 且非字符串类型)"""
        return (not self.is_string and
                self.effective_measure in (MeasureLevel.SCALE, MeasureLevel.ORDINAL))

    @property
    def display_name(self) -> str:
        return self.label or self.name

    def format_location(self, value: Any) -> Any:
        """均值、最值等位置统计量：日期变量转回 dd-mm-yyyy"""
        if self.is_date and isinstance(value, (int, float)):
            return spss_seconds_to_date_string(value) or value
        return value

    def format_value(self, value: Any) -> Any:
        """输出表格中的值：优先值标签，日期转回 dd-mm-yyyy"""
        if value is None:
            return None
        label = self.labels.get(label_key(value))
        if label is not None:
            return label
        return self.format_location(value)


@dataclass
class CalculationRequest:
    """单变量计算请求(频率、描述统计、探索分析)"""
    variable: Variable
    data: Sequence[Any]
    weights: Optional[Sequence[Any]] = None
    case_numbers: Optional[Sequence[Any]] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @cached_property
    def cells(self) -> List[Cell]:
        return to_cells(self.data, self.variable)

    @property
    def key(self) -> str:
        return self.variable.name

    @property
    def data_size(self) -> int:
        return len(self.data)


@dataclass
class CrosstabsRequest:
    """交叉表计算请求"""
    row_variable: Variable
    col_variable: Variable
    row_data: Sequence[Any]
    col_data: Sequence[Any]
    weights: Optional[Sequence[Any]] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @cached_property
    def row_cells(self) -> List[Cell]:
        return to_cells(self.row_data, self.row_variable)

    @cached_property
    def col_cells(self) -> List[Cell]:
        return to_cells(self.col_data, self.col_variable)

    @property
    def key(self) -> str:
        return f"{self.row_variable.name}*{self.col_variable.name}"

    @property
    def data_size(self) -> int:
        return len(self.row_data)


def label_key(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_number(value: Any) -> Optional[float]:
    """将原始值转换为有限浮点数，无法转换时返回None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def date_string_to_spss_seconds(text: str) -> Optional[float]:
    """dd-mm-yyyy 转换为 SPSS 秒数"""
    match = DATE_STRING_PATTERN.match(text.strip())
    if not match:
        return None
    day, month, year = (int(part) for part in match.groups())
    try:
        parsed = date(year, month, day)
    except ValueError:
        return None
    return float((parsed - SPSS_EPOCH).days * SECONDS_PER_DAY)


def spss_seconds_to_date_string(seconds: float) -> Optional[str]:
    """SPSS 秒数转换为 dd-mm-yyyy"""
    try:
        converted = SPSS_EPOCH + timedelta(days=int(seconds // SECONDS_PER_DAY))
    except (OverflowError, ValueError):
        return None
    return f"{converted.day:02d}-{converted.month:02d}-{converted.year:04d}"


def to_cell(raw: Any, variable: Variable) -> Cell:
    """按变量定义确定单个原始值的单元格类型"""
    if variable.is_string:
        if raw is None or (isinstance(raw, float) and math.isnan(raw)):
            return SYSTEM_MISSING
        text = str(raw).strip()
        if not text:
            return SYSTEM_MISSING
        if variable.missing.matches_string(text):
            return Cell(CellKind.MISSING, text, user_missing=True)
        return Cell(CellKind.STRING, text)

    number = None
    if variable.is_date and isinstance(raw, str):
        number = date_string_to_spss_seconds(raw)
    if number is None:
        number = parse_number(raw)
    if number is None:
        return SYSTEM_MISSING
    if variable.missing.matches_number(number):
        return Cell(CellKind.MISSING, number, user_missing=True)
    return Cell(CellKind.NUMBER, number)


def to_cells(raw_values: Sequence[Any], variable: Variable) -> List[Cell]:
    """数据切片边界：将原始列转换为单元格列表(不修改调用方数组)"""
    return [to_cell(raw, variable) for raw in raw_values]


def parse_weight(raw: Any) -> Optional[float]:
    """有效权重为有限正数，否则返回None(该个案不参与任何分母)"""
    weight = parse_number(raw)
    if weight is None or weight <= 0:
        return None
    return weight
