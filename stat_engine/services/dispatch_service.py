# 计算分发服务：一条请求消息进，一条结果或错误消息出
import logging
from typing import Any, Dict

from pydantic import ValidationError

from ..calculation.engine import CalculatorKind, get_calculation_engine
from ..calculation.exceptions import CalculationError, UnknownCalculatorError
from ..schemas.request_schemas import parse_request

logger = logging.getLogger(__name__)


def success_envelope(variable_name: str, results: Dict[str, Any]) -> Dict[str, Any]:
    return {'status': 'success', 'variableName': variable_name, 'results': results}


def error_envelope(variable_name: str, error: str) -> Dict[str, Any]:
    return {'status': 'error', 'variableName': variable_name, 'error': error}


def guess_variable_name(message: Any) -> str:
    """从原始消息中尽量取出变量名，用于错误消息归属"""
    if not isinstance(message, dict):
        return ''
    variable = message.get('variable')
    if isinstance(variable, str):
        return variable
    if not isinstance(variable, dict):
        return ''
    if 'row' in variable or 'col' in variable:
        row = _name_of(variable.get('row'))
        col = _name_of(variable.get('col'))
        return f"{row}*{col}"
    return _name_of(variable)


def _name_of(variable: Any) -> str:
    if isinstance(variable, dict):
        name = variable.get('name')
        return str(name) if name is not None else ''
    return str(variable) if variable is not None else ''


def _validation_message(error: ValidationError) -> str:
    details = []
    for item in error.errors():
        location = '.'.join(str(part) for part in item.get('loc', ()))
        details.append(f"{location}: {item.get('msg')}")
    return '; '.join(details)


def dispatch(kind: str, message: Dict[str, Any]) -> Dict[str, Any]:
    """解析请求、执行计算并封装响应

    模块级函数，可被进程池序列化。任何异常都转换为 status=error 的响应消息，不会向调用方抛出。
    """
    variable_name = guess_variable_name(message)
    try:
        try:
            calculator_kind = CalculatorKind(kind)
        except ValueError:
            raise UnknownCalculatorError(f"未知的计算器类型: {kind}")

        request = parse_request(calculator_kind, message)
        variable_name = request.key
        results = get_calculation_engine().calculate(calculator_kind, request)
        return success_envelope(variable_name, results)

    except ValidationError as e:
        logger.warning(f"请求格式错误 [{variable_name}]: {e.error_count()} 处")
        return error_envelope(variable_name, f"请求格式错误: {_validation_message(e)}")
    except CalculationError as e:
        logger.warning(f"计算失败 [{variable_name}]: {e}")
        return error_envelope(variable_name, str(e))
    except Exception as e:
        logger.exception(f"计算过程发生未预期异常 [{variable_name}]")
        return error_envelope(variable_name, f"内部计算错误: {e}")
