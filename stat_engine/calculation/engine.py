# 核心统计计算引擎
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import numpy as np

from .. import config
from .exceptions import CalculationError, InputShapeError, InternalComputationError, UnknownCalculatorError
from .models import CalculationRequest, CrosstabsRequest

logger = logging.getLogger(__name__)

Request = Union[CalculationRequest, CrosstabsRequest]


class CalculatorKind(str, Enum):
    """计算器类型"""
    FREQUENCY = "frequency"
    DESCRIPTIVE = "descriptive"
    EXAMINE = "examine"
    CROSSTABS = "crosstabs"


class StatisticalStrategy(ABC):
    """统计计算策略抽象基类"""

    @abstractmethod
    def calculate(self, request: Request) -> Dict[str, Any]:
        """执行统计计算，返回结果包 {tables, summary, statistics}"""
        pass

    @abstractmethod
    def validate_input(self, request: Request) -> Dict[str, Any]:
        """验证输入数据"""
        pass

    @abstractmethod
    def get_algorithm_info(self) -> Dict[str, str]:
        """获取算法信息"""
        pass


def new_validation_result() -> Dict[str, Any]:
    return {
        'is_valid': True,
        'errors': [],
        'warnings': [],
        'stats': {}
    }


def check_aligned(validation_result: Dict[str, Any], expected: int, **arrays: Any) -> Dict[str, Any]:
    """检查与数据列按位置对齐的数组长度"""
    for name, array in arrays.items():
        if array is not None and len(array) != expected:
            validation_result['is_valid'] = False
            validation_result['errors'].append(f"{name}长度({len(array)})与数据长度({expected})不一致")
    return validation_result


@dataclass
class CalculationMetrics:
    """计算指标"""
    operation_name: str
    data_size: int
    execution_time: float
    success: bool
    error_message: Optional[str] = None


class PerformanceMonitor:
    """性能监控器"""

    def __init__(self, slow_threshold: float = config.SLOW_CALCULATION_SECONDS):
        self.metrics: List[CalculationMetrics] = []
        self.slow_threshold = slow_threshold

    def record_calculation(self, operation: str, data_size: int, execution_time: float,
                           success: bool, error: Optional[str] = None):
        """记录计算指标"""
        self.metrics.append(CalculationMetrics(
            operation_name=operation,
            data_size=data_size,
            execution_time=execution_time,
            success=success,
            error_message=error
        ))

        if execution_time > self.slow_threshold:
            logger.warning(f"计算性能告警: {operation} 耗时 {execution_time:.2f}s (数据量 {data_size})")

    def get_stats(self) -> Dict[str, Any]:
        """获取性能统计"""
        if not self.metrics:
            return {}

        successful_metrics = [m for m in self.metrics if m.success]
        failed_metrics = [m for m in self.metrics if not m.success]

        return {
            'total_operations': len(self.metrics),
            'successful_operations': len(successful_metrics),
            'failed_operations': len(failed_metrics),
            'success_rate': len(successful_metrics) / len(self.metrics),
            'avg_execution_time': float(np.mean([m.execution_time for m in successful_metrics])) if successful_metrics else 0,
            'total_data_processed': sum(m.data_size for m in successful_metrics)
        }


class CalculationEngine:
    """统计计算引擎核心

    按 CalculatorKind 显式选择策略，引擎本身不做任何统计计算。
    """

    def __init__(self):
        self.strategies: Dict[CalculatorKind, StatisticalStrategy] = {}
        self.performance_monitor = PerformanceMonitor()

    def register_strategy(self, kind: CalculatorKind, strategy: StatisticalStrategy):
        """注册计算策略"""
        self.strategies[CalculatorKind(kind)] = strategy
        logger.info(f"已注册计算策略: {CalculatorKind(kind).value}")

    def get_strategy(self, kind: Union[CalculatorKind, str]) -> StatisticalStrategy:
        try:
            kind = CalculatorKind(kind)
        except ValueError:
            raise UnknownCalculatorError(f"未知的计算器类型: {kind}")
        if kind not in self.strategies:
            raise UnknownCalculatorError(f"计算器未注册: {kind.value}")
        return self.strategies[kind]

    def calculate(self, kind: Union[CalculatorKind, str], request: Request) -> Dict[str, Any]:
        """执行计算"""
        start_time = time.time()
        strategy = self.get_strategy(kind)
        kind = CalculatorKind(kind)
        data_size = request.data_size

        try:
            validation_result = strategy.validate_input(request)
            if not validation_result['is_valid']:
                raise InputShapeError(f"数据验证失败: {'; '.join(validation_result['errors'])}")
            for warning in validation_result['warnings']:
                logger.warning(f"[{request.key}] {warning}")

            logger.debug(f"开始计算: {kind.value} [{request.key}] 数据量 {data_size}")
            try:
                result = strategy.calculate(request)
            except CalculationError:
                raise
            except Exception as e:
                logger.error(f"计算过程异常: {kind.value} [{request.key}]: {e}")
                raise InternalComputationError(f"{kind.value} 计算失败: {e}") from e

            execution_time = time.time() - start_time
            result['_meta'] = {
                'algorithm_info': strategy.get_algorithm_info(),
                'data_size': data_size,
                'calculation_time': execution_time,
                'validation_warnings': validation_result.get('warnings', [])
            }
            self.performance_monitor.record_calculation(kind.value, data_size, execution_time, True)
            logger.info(f"计算完成: {kind.value} [{request.key}] 耗时 {execution_time:.3f}s")
            return result

        except Exception as e:
            self.performance_monitor.record_calculation(
                kind.value, data_size, time.time() - start_time, False, str(e)
            )
            raise

    def get_performance_stats(self) -> Dict[str, Any]:
        """获取性能统计"""
        return self.performance_monitor.get_stats()

    def reset_performance_stats(self):
        """重置性能统计"""
        self.performance_monitor = PerformanceMonitor()

    def get_available_strategies(self) -> List[str]:
        """获取所有可用的计算器类型"""
        return [kind.value for kind in self.strategies]

    def get_strategy_info(self, kind: Union[CalculatorKind, str]) -> Dict[str, Any]:
        """获取特定计算器的算法信息"""
        strategy = self.get_strategy(kind)
        return {
            'name': CalculatorKind(kind).value,
            'algorithm_info': strategy.get_algorithm_info()
        }


# 全局计算引擎实例(每个工作进程各自持有一份)
_calculation_engine = None


def get_calculation_engine() -> CalculationEngine:
    """获取全局计算引擎实例"""
    global _calculation_engine
    if _calculation_engine is None:
        from .calculators.strategy_registry import register_default_strategies
        _calculation_engine = CalculationEngine()
        register_default_strategies(_calculation_engine)
        logger.info("已初始化全局计算引擎")
    return _calculation_engine
