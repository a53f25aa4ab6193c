# 统计计算引擎模块
from .engine import CalculationEngine, CalculatorKind, get_calculation_engine
from .exceptions import (
    CalculationError,
    InputShapeError,
    InternalComputationError,
    InvalidOptionsError,
    UnknownCalculatorError
)
from .models import CalculationRequest, CrosstabsRequest, MeasureLevel, MissingSpec, Variable, VariableType

__all__ = [
    'CalculationEngine',
    'CalculatorKind',
    'get_calculation_engine',
    'CalculationError',
    'InputShapeError',
    'InternalComputationError',
    'InvalidOptionsError',
    'UnknownCalculatorError',
    'CalculationRequest',
    'CrosstabsRequest',
    'MeasureLevel',
    'MissingSpec',
    'Variable',
    'VariableType'
]
