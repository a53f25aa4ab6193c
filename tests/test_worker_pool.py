# 计算工作池测试
import asyncio

import pytest

from stat_engine.services.worker_pool import CalculationJob, WorkerPool, assign_keys


def descriptive_message(name, data):
    return {"variable": {"name": name}, "data": data}


@pytest.fixture
def inline_pool():
    pool = WorkerPool(max_workers=2, execution_mode='inline')
    yield pool
    pool.shutdown()


class TestAssignKeys:
    """结果键分配测试"""

    def test_keys_from_variable_names(self):
        jobs = [
            CalculationJob('descriptive', descriptive_message('age', [1])),
            CalculationJob('descriptive', descriptive_message('age', [2])),
            CalculationJob('frequency', descriptive_message('income', [3]), key='custom'),
        ]
        assert [key for key, _ in assign_keys(jobs)] == ['age', 'age#2', 'custom']

    def test_crosstabs_key(self):
        message = {"variable": {"row": {"name": "gender"}, "col": {"name": "smoker"}}}
        assert assign_keys([CalculationJob('crosstabs', message)])[0][0] == 'gender*smoker'

    def test_fallback_to_kind(self):
        assert assign_keys([CalculationJob('examine', {})])[0][0] == 'examine'


class TestInlinePool:
    """inline 模式测试"""

    def test_batch_isolates_failures(self, inline_pool):
        """测试一个任务失败不影响其他任务"""
        jobs = [
            CalculationJob('descriptive', descriptive_message('age', [1, 2, 3])),
            CalculationJob('descriptive', dict(descriptive_message('income', [1, 2]), weights=[1])),
            CalculationJob('frequency', descriptive_message('score', [4, 4, 5])),
        ]
        results = inline_pool.submit_many(jobs)

        assert set(results) == {'age', 'income', 'score'}
        assert results['age']['status'] == 'success'
        assert results['income']['status'] == 'error'
        assert results['income']['variableName'] == 'income'
        assert results['score']['results']['statistics']['mode'] == [4.0]

    def test_submit(self, inline_pool):
        response = inline_pool.submit('descriptive', descriptive_message('age', [2, 4]))

        assert response['status'] == 'success'
        assert response['results']['statistics']['mean'] == pytest.approx(3.0)

    def test_submit_async(self, inline_pool):
        async def run():
            return await inline_pool.submit_many_async([
                CalculationJob('descriptive', descriptive_message('age', [1, 2, 3])),
                CalculationJob('examine', descriptive_message('age', [5, 6, 7])),
            ])

        results = asyncio.run(run())

        assert list(results) == ['age', 'age#2']
        assert results['age']['results']['statistics']['mean'] == pytest.approx(2.0)
        assert results['age#2']['results']['statistics']['descriptives']['mean'] == pytest.approx(6.0)

    def test_invalid_execution_mode(self):
        with pytest.raises(ValueError):
            WorkerPool(execution_mode='threads')


class TestProcessPool:
    """process 模式测试"""

    def test_process_batch(self):
        pool = WorkerPool(max_workers=2, execution_mode='process', timeout=60)
        try:
            results = pool.submit_many([
                CalculationJob('descriptive', descriptive_message('age', [1, 2, 3])),
                CalculationJob('unknown', descriptive_message('height', [1])),
            ])
        finally:
            pool.shutdown()

        assert results['age']['status'] == 'success'
        assert results['age']['results']['statistics']['mean'] == pytest.approx(2.0)
        assert results['height'] == {
            'status': 'error', 'variableName': 'height', 'error': '未知的计算器类型: unknown'
        }
