# 计算异常定义


class CalculationError(Exception):
    """计算异常基类"""
    pass


class InputShapeError(CalculationError, ValueError):
    """输入数组形状不一致(数据、权重、个案编号长度不匹配)"""
    pass


class InvalidOptionsError(CalculationError, ValueError):
    """无法识别的计算选项"""
    pass


class UnknownCalculatorError(CalculationError, KeyError):
    """未注册的计算器类型"""

    def __str__(self):
        # KeyError 默认会给消息加引号
        return str(self.args[0]) if self.args else ''


class InternalComputationError(CalculationError):
    """计算过程中的意外异常"""
    pass
