# 计算工作进程池
"""
每次计算在独立的工作进程中执行，调用方与计算之间只通过消息传递(请求字典进，响应字典出)。
批量任务的结果按任务键(变量名，交叉表为 row*col)合并，与完成顺序无关。
"""
import asyncio
import logging
import multiprocessing as mp
from concurrent.futures import Future, ProcessPoolExecutor, wait
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .. import config
from .dispatch_service import dispatch, error_envelope, guess_variable_name

logger = logging.getLogger(__name__)

EXECUTION_MODES = ('process', 'inline')


@dataclass
class CalculationJob:
    """单个计算任务"""
    kind: str
    message: Dict[str, Any]
    key: Optional[str] = None

    @property
    def variable_name(self) -> str:
        return guess_variable_name(self.message)


def assign_keys(jobs: Sequence[CalculationJob]) -> List[Tuple[str, CalculationJob]]:
    """为任务分配结果键，重复的键追加序号"""
    keyed = []
    seen: Dict[str, int] = {}
    for job in jobs:
        base = job.key or job.variable_name or job.kind
        seen[base] = seen.get(base, 0) + 1
        key = base if seen[base] == 1 else f"{base}#{seen[base]}"
        keyed.append((key, job))
    return keyed


class WorkerPool:
    """计算工作池

    process 模式下每个任务提交到 ProcessPoolExecutor；inline 模式在当前进程顺序执行。
    """

    def __init__(self, max_workers: Optional[int] = None, execution_mode: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.max_workers = max_workers or config.MAX_WORKERS or mp.cpu_count()
        self.execution_mode = execution_mode or config.EXECUTION_MODE
        if self.execution_mode not in EXECUTION_MODES:
            raise ValueError(f"未知的执行模式: {self.execution_mode}")
        self.timeout = config.TASK_TIMEOUT if timeout is None else timeout
        self._executor: Optional[ProcessPoolExecutor] = None

    @property
    def is_inline(self) -> bool:
        return self.execution_mode == 'inline'

    @property
    def executor(self) -> ProcessPoolExecutor:
        if self._executor is None:
            self._executor = ProcessPoolExecutor(max_workers=self.max_workers)
            logger.info(f"已启动计算进程池: {self.max_workers} 个工作进程")
        return self._executor

    def _reset_executor(self):
        """进程池损坏后丢弃，下次提交时重建"""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _collect(self, future: Future, variable_name: str) -> Dict[str, Any]:
        try:
            return future.result(timeout=0)
        except BrokenProcessPool as e:
            logger.error(f"计算进程异常退出 [{variable_name}]: {e}")
            self._reset_executor()
            return error_envelope(variable_name, "计算进程异常退出")
        except Exception as e:
            logger.error(f"获取计算结果失败 [{variable_name}]: {e}")
            return error_envelope(variable_name, f"获取计算结果失败: {e}")

    def submit(self, kind: str, message: Dict[str, Any]) -> Dict[str, Any]:
        """执行单个计算，返回响应消息"""
        return self.submit_many([CalculationJob(kind, message)]).popitem()[1]

    def submit_many(self, jobs: Sequence[CalculationJob]) -> Dict[str, Dict[str, Any]]:
        """并发执行互不相关的任务，返回按任务键索引的响应"""
        keyed = assign_keys(jobs)
        if self.is_inline:
            return {key: dispatch(job.kind, job.message) for key, job in keyed}

        futures = {}
        for key, job in keyed:
            try:
                futures[key] = self.executor.submit(dispatch, job.kind, job.message)
            except BrokenProcessPool as e:
                logger.error(f"计算进程池不可用 [{key}]: {e}")
                self._reset_executor()
                futures[key] = None

        pending = [future for future in futures.values() if future is not None]
        _, not_done = wait(pending, timeout=self.timeout)

        results = {}
        for key, job in keyed:
            future = futures[key]
            if future is None:
                results[key] = error_envelope(job.variable_name, "计算进程池不可用")
            elif future in not_done:
                future.cancel()
                logger.warning(f"计算超时 [{key}] ({self.timeout}s)")
                results[key] = error_envelope(job.variable_name, f"计算超时({self.timeout}s)")
            else:
                results[key] = self._collect(future, job.variable_name)
        return results

    async def submit_async(self, kind: str, message: Dict[str, Any]) -> Dict[str, Any]:
        """异步执行单个计算，不阻塞事件循环"""
        variable_name = guess_variable_name(message)
        loop = asyncio.get_running_loop()
        executor = None if self.is_inline else self.executor
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(executor, dispatch, kind, message),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"计算超时 [{variable_name}] ({self.timeout}s)")
            return error_envelope(variable_name, f"计算超时({self.timeout}s)")
        except BrokenProcessPool as e:
            logger.error(f"计算进程异常退出 [{variable_name}]: {e}")
            self._reset_executor()
            return error_envelope(variable_name, "计算进程异常退出")

    async def submit_many_async(self, jobs: Sequence[CalculationJob]) -> Dict[str, Dict[str, Any]]:
        keyed = assign_keys(jobs)
        responses = await asyncio.gather(*(self.submit_async(job.kind, job.message) for _, job in keyed))
        return {key: response for (key, _), response in zip(keyed, responses)}

    def shutdown(self, wait: bool = True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait, cancel_futures=True)
            self._executor = None
            logger.info("计算进程池已关闭")


# 全局工作池
_worker_pool: Optional[WorkerPool] = None


def get_worker_pool() -> WorkerPool:
    """获取全局工作池实例"""
    global _worker_pool
    if _worker_pool is None:
        _worker_pool = WorkerPool()
    return _worker_pool


def shutdown_worker_pool():
    global _worker_pool
    if _worker_pool is not None:
        _worker_pool.shutdown()
        _worker_pool = None
