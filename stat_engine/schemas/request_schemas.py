from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Dict, Any, Union

from ..calculation.engine import CalculatorKind
from ..calculation.models import (
    CalculationRequest, CrosstabsRequest, MeasureLevel, MissingSpec, Variable, VariableType, label_key
)


class MissingRangeSchema(BaseModel):
    """缺失值区间(闭区间)"""
    min: float
    max: float


class MissingSchema(BaseModel):
    """用户定义缺失值"""
    discrete: List[Any] = Field(default_factory=list, description="离散缺失值")
    range: Optional[MissingRangeSchema] = Field(None, description="缺失值区间")

    def to_missing_spec(self) -> MissingSpec:
        return MissingSpec(
            discrete=tuple(self.discrete),
            range_min=self.range.min if self.range else None,
            range_max=self.range.max if self.range else None
        )


class VariableSchema(BaseModel):
    """变量描述"""
    name: str = Field(..., description="变量名", min_length=1)
    column_index: int = Field(0, alias="columnIndex", description="列序号")
    type: VariableType = Field(VariableType.NUMERIC, description="变量类型")
    measure: MeasureLevel = Field(MeasureLevel.UNKNOWN, description="测量水平")
    missing: Optional[MissingSchema] = Field(None, description="缺失值定义")
    decimals: int = Field(2, description="小数位数", ge=0)
    label: Optional[str] = Field(None, description="变量标签")
    labels: Dict[str, str] = Field(default_factory=dict, alias="valueLabels", description="值标签")

    @field_validator('type', mode='before')
    @classmethod
    def normalize_type(cls, v):
        """未知类型按数值处理"""
        if v is None:
            return VariableType.NUMERIC
        text = str(v).upper()
        return text if text in VariableType.__members__ else VariableType.NUMERIC

    @field_validator('measure', mode='before')
    @classmethod
    def normalize_measure(cls, v):
        if v is None:
            return MeasureLevel.UNKNOWN
        text = str(v).lower()
        return text if text in {m.value for m in MeasureLevel} else MeasureLevel.UNKNOWN

    @field_validator('missing', mode='before')
    @classmethod
    def normalize_missing(cls, v):
        """兼容直接传入离散缺失值列表"""
        if isinstance(v, (list, tuple)):
            return {'discrete': list(v)}
        return v

    @field_validator('labels', mode='before')
    @classmethod
    def normalize_labels(cls, v):
        """兼容 [{value, label}] 形式的值标签"""
        if v is None:
            return {}
        if isinstance(v, list):
            return {label_key(item['value']): str(item['label'])
                    for item in v if isinstance(item, dict) and 'value' in item and 'label' in item}
        if isinstance(v, dict):
            return {label_key(key): str(value) for key, value in v.items()}
        return v

    def to_variable(self) -> Variable:
        return Variable(
            name=self.name,
            column_index=self.column_index,
            type=self.type,
            measure=self.measure,
            missing=self.missing.to_missing_spec() if self.missing else MissingSpec(),
            decimals=self.decimals,
            label=self.label,
            labels=dict(self.labels)
        )

    model_config = ConfigDict(populate_by_name=True)


class CalculationRequestSchema(BaseModel):
    """单变量计算请求(frequency / descriptive / examine)"""
    variable: VariableSchema
    data: List[Any] = Field(..., description="原始数据列")
    weights: Optional[List[Any]] = Field(None, description="权重列")
    case_numbers: Optional[List[Any]] = Field(None, alias="caseNumbers", description="原始个案编号")
    options: Dict[str, Any] = Field(default_factory=dict, description="计算选项")

    @field_validator('options', mode='before')
    @classmethod
    def default_options(cls, v):
        return v or {}

    def to_calculation_request(self) -> CalculationRequest:
        return CalculationRequest(
            variable=self.variable.to_variable(),
            data=list(self.data),
            weights=list(self.weights) if self.weights is not None else None,
            case_numbers=list(self.case_numbers) if self.case_numbers is not None else None,
            options=dict(self.options)
        )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "variable": {"name": "age", "columnIndex": 0, "type": "NUMERIC", "measure": "scale",
                             "missing": {"discrete": [99]}, "decimals": 0},
                "data": [23, 35, 41, 99, None, 29],
                "weights": None,
                "options": {"statistics": ["mean", "sd", "min", "max"]}
            }
        }
    )


class CrosstabsVariablesSchema(BaseModel):
    row: VariableSchema
    col: VariableSchema


class CrosstabsDataSchema(BaseModel):
    row: List[Any]
    col: List[Any]


class CrosstabsRequestSchema(BaseModel):
    """交叉表计算请求"""
    variable: CrosstabsVariablesSchema
    data: CrosstabsDataSchema
    weights: Optional[List[Any]] = Field(None, description="权重列")
    options: Dict[str, Any] = Field(default_factory=dict, description="计算选项")

    @field_validator('options', mode='before')
    @classmethod
    def default_options(cls, v):
        return v or {}

    def to_crosstabs_request(self) -> CrosstabsRequest:
        return CrosstabsRequest(
            row_variable=self.variable.row.to_variable(),
            col_variable=self.variable.col.to_variable(),
            row_data=list(self.data.row),
            col_data=list(self.data.col),
            weights=list(self.weights) if self.weights is not None else None,
            options=dict(self.options)
        )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "variable": {"row": {"name": "gender", "type": "STRING", "measure": "nominal"},
                             "col": {"name": "smoker", "type": "STRING", "measure": "nominal"}},
                "data": {"row": ["M", "F", "F", "M"], "col": ["yes", "no", "yes", "no"]},
                "options": {"cells": ["count", "expected"], "statistics": ["chisq", "phi"]}
            }
        }
    )


class BatchJobSchema(BaseModel):
    """批量计算中的单个任务"""
    kind: CalculatorKind = Field(..., description="计算器类型")
    request: Dict[str, Any] = Field(..., description="计算请求消息")
    key: Optional[str] = Field(None, description="结果键，默认取变量名")


class BatchRequestSchema(BaseModel):
    """批量计算请求"""
    jobs: List[BatchJobSchema] = Field(..., description="计算任务列表", min_length=1)


def parse_request(kind: Union[CalculatorKind, str], message: Dict[str, Any]) -> Union[CalculationRequest, CrosstabsRequest]:
    """将请求消息解析为计算请求，格式错误时抛出 pydantic ValidationError"""
    if CalculatorKind(kind) == CalculatorKind.CROSSTABS:
        return CrosstabsRequestSchema.model_validate(message).to_crosstabs_request()
    return CalculationRequestSchema.model_validate(message).to_calculation_request()
