# 计算器模块
from .crosstabs_calculator import CrosstabsCalculator
from .descriptive_calculator import DescriptiveCalculator
from .examine_calculator import ExamineCalculator
from .frequency_calculator import FrequencyCalculator
from .strategy_registry import CalculationStrategyRegistry, register_default_strategies

__all__ = [
    'CrosstabsCalculator',
    'DescriptiveCalculator',
    'ExamineCalculator',
    'FrequencyCalculator',
    'CalculationStrategyRegistry',
    'register_default_strategies'
]
