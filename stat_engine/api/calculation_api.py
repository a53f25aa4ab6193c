from fastapi import APIRouter, Body, HTTPException
from typing import Dict, Any, List
import logging

from ..calculation.engine import CalculatorKind, get_calculation_engine
from ..schemas.request_schemas import BatchRequestSchema
from ..schemas.response_schemas import BatchResponse, CalculationResponse, CalculatorInfo
from ..services.worker_pool import CalculationJob, get_worker_pool

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/calculators", response_model=List[CalculatorInfo])
async def list_calculators():
    """列出已注册的计算器及算法信息"""
    engine = get_calculation_engine()
    calculators = []
    for name in engine.get_available_strategies():
        algorithm_info = engine.get_strategy_info(name)['algorithm_info']
        calculators.append(CalculatorInfo(
            name=name,
            description=algorithm_info.get('description', ''),
            algorithm_info=algorithm_info
        ))
    return calculators


@router.post("/batch", responses={200: {"model": BatchResponse}})
async def run_batch(request: BatchRequestSchema):
    """批量计算：各任务独立执行，结果按变量名索引"""
    jobs = [CalculationJob(job.kind.value, job.request, job.key) for job in request.jobs]
    results = await get_worker_pool().submit_many_async(jobs)
    succeeded = sum(1 for envelope in results.values() if envelope['status'] == 'success')
    logger.info(f"批量计算完成: {len(results)} 个任务, 成功 {succeeded} 个")
    return {
        'results': results,
        'total': len(results),
        'succeeded': succeeded,
        'failed': len(results) - succeeded,
    }


@router.post("/{kind}", responses={200: {"model": CalculationResponse}})
async def run_calculation(kind: str, message: Dict[str, Any] = Body(...)):
    """执行单个统计计算，计算失败时返回 status=error 的响应消息"""
    try:
        calculator_kind = CalculatorKind(kind)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"未知的计算器类型: {kind}")
    return await get_worker_pool().submit_async(calculator_kind.value, message)
