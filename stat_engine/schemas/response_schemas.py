from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any
from enum import Enum


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class PivotTableSchema(BaseModel):
    """透视表"""
    title: str
    columnHeaders: List[str]
    rows: List[Dict[str, Any]]
    footnotes: Optional[List[str]] = None


class ResultBundleSchema(BaseModel):
    """计算结果包"""
    tables: List[PivotTableSchema]
    summary: Optional[Dict[str, Any]] = None
    statistics: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")


class CalculationResponse(BaseModel):
    """单个计算的响应消息"""
    status: ResponseStatus
    variableName: str = Field(..., description="变量名，交叉表为 row*col")
    results: Optional[ResultBundleSchema] = Field(None, description="成功时的结果包")
    error: Optional[str] = Field(None, description="失败时的错误信息")


class BatchResponse(BaseModel):
    """批量计算响应，结果按任务键索引"""
    results: Dict[str, CalculationResponse]
    total: int
    succeeded: int
    failed: int


class CalculatorInfo(BaseModel):
    """计算器信息"""
    name: str
    description: str
    algorithm_info: Dict[str, str]
