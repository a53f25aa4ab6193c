# 策略注册表
import logging
from types import ModuleType
from typing import Callable, Dict, List, Optional

from .. import formulas as default_formulas
from ..engine import CalculationEngine, CalculatorKind, StatisticalStrategy
from .crosstabs_calculator import CrosstabsCalculator
from .descriptive_calculator import DescriptiveCalculator
from .examine_calculator import ExamineCalculator
from .frequency_calculator import FrequencyCalculator

logger = logging.getLogger(__name__)

StrategyFactory = Callable[[ModuleType], StatisticalStrategy]


class CalculationStrategyRegistry:
    """计算策略注册表

    每种计算器对应一个工厂函数，创建实例时显式注入公式模块。
    """

    def __init__(self, formulas: ModuleType = default_formulas):
        self.formulas = formulas
        self._factories: Dict[CalculatorKind, StrategyFactory] = {}
        self._descriptions: Dict[CalculatorKind, str] = {}

    def register(self, kind: CalculatorKind, factory: StrategyFactory, description: str = ""):
        """注册计算策略工厂"""
        kind = CalculatorKind(kind)
        self._factories[kind] = factory
        self._descriptions[kind] = description or "无描述"
        logger.info(f"已注册计算策略: {kind.value}")

    def create_strategy(self, kind: CalculatorKind) -> StatisticalStrategy:
        """创建策略实例"""
        kind = CalculatorKind(kind)
        if kind not in self._factories:
            raise ValueError(f"未找到策略: {kind.value}")
        return self._factories[kind](self.formulas)

    def list_strategies(self) -> List[Dict[str, str]]:
        """列出所有已注册的策略"""
        return [
            {'name': kind.value, 'description': self._descriptions[kind]}
            for kind in self._factories
        ]

    def is_registered(self, kind: CalculatorKind) -> bool:
        return CalculatorKind(kind) in self._factories

    def unregister(self, kind: CalculatorKind) -> bool:
        """注销策略"""
        kind = CalculatorKind(kind)
        if kind in self._factories:
            del self._factories[kind]
            del self._descriptions[kind]
            logger.info(f"已注销计算策略: {kind.value}")
            return True
        return False

    def register_to_engine(self, engine: CalculationEngine):
        """将所有策略实例化并注册到计算引擎"""
        for kind in self._factories:
            engine.register_strategy(kind, self.create_strategy(kind))
            logger.debug(f"策略 {kind.value} 已注册到计算引擎")


def default_registry(formulas: ModuleType = default_formulas) -> CalculationStrategyRegistry:
    """包含四种默认计算器的注册表"""
    registry = CalculationStrategyRegistry(formulas)
    registry.register(
        CalculatorKind.FREQUENCY,
        lambda f: FrequencyCalculator(f),
        '频率表、众数与百分位数'
    )
    registry.register(
        CalculatorKind.DESCRIPTIVE,
        lambda f: DescriptiveCalculator(f),
        '均值、标准差、方差、偏度、峰度、极差及标准误'
    )
    registry.register(
        CalculatorKind.EXAMINE,
        lambda f: ExamineCalculator(f),
        '截尾均值、M估计量、百分位数、Tukey铰链与极端值'
    )
    registry.register(
        CalculatorKind.CROSSTABS,
        lambda f: CrosstabsCalculator(f),
        '列联表、卡方检验与关联度量'
    )
    return registry


def register_default_strategies(engine: Optional[CalculationEngine] = None) -> CalculationStrategyRegistry:
    """注册默认的计算策略；传入引擎时同时注册到引擎"""
    registry = default_registry()
    if engine is not None:
        registry.register_to_engine(engine)
    logger.info(f"默认计算策略注册完成: {len(registry.list_strategies())} 个")
    return registry
