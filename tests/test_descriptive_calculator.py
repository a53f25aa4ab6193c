# 描述统计计算器测试
import pytest

from stat_engine.calculation.calculators.descriptive_calculator import (
    MULTIPLE_MODES_FOOTNOTE, DescriptiveCalculator
)
from stat_engine.calculation.exceptions import InvalidOptionsError
from stat_engine.calculation.models import CalculationRequest, MeasureLevel, Variable, VariableType


def make_request(data, variable=None, weights=None, **options):
    return CalculationRequest(
        variable=variable or Variable(name='score'),
        data=data,
        weights=weights,
        options=options
    )


class TestDescriptiveCalculator:
    """描述统计计算器测试"""

    def setup_method(self):
        self.calculator = DescriptiveCalculator()

    def test_basic_statistics(self):
        """测试 [1,2,3,4,5] 的默认统计量"""
        result = self.calculator.calculate(make_request([1, 2, 3, 4, 5]))

        stats = result['statistics']
        assert stats['N'] == 5
        assert stats['mean'] == pytest.approx(3.0)
        assert stats['sd'] == pytest.approx(1.5811, abs=1e-4)
        assert stats['min'] == 1
        assert stats['max'] == 5
        assert result['summary'] == {'valid': 5.0, 'missing': 0.0, 'total': 5.0}

    def test_table_layout(self):
        """测试输出表格的列顺序与行"""
        result = self.calculator.calculate(make_request([1, 2, 3, 4, 5]))

        table = result['tables'][0]
        assert table['title'] == 'Descriptive Statistics'
        assert table['columnHeaders'] == ['N', 'Minimum', 'Maximum', 'Mean', 'Std. Deviation']
        assert table['rows'][0]['rowHeader'] == ['score']
        assert table['rows'][0]['Mean'] == pytest.approx(3.0)
        assert table['rows'][1] == {'rowHeader': ['Valid N (listwise)'], 'N': 5.0}

    def test_all_statistics(self):
        """测试请求全部统计量"""
        statistics = ['mean', 'sum', 'variance', 'range', 'skewness', 'kurtosis',
                      'SEmean', 'SEskewness', 'SEkurtosis']
        result = self.calculator.calculate(make_request([1, 2, 3, 4, 5], statistics=statistics))

        stats = result['statistics']
        assert stats['sum'] == 15
        assert stats['variance'] == pytest.approx(2.5)
        assert stats['range'] == 4
        assert stats['skewness'] == pytest.approx(0.0, abs=1e-12)
        assert stats['kurtosis'] == pytest.approx(-1.2)
        assert stats['SEmean'] == pytest.approx(0.7071, abs=1e-4)
        assert stats['SEskewness'] == pytest.approx(0.9129, abs=1e-4)
        assert stats['SEkurtosis'] == pytest.approx(2.0, abs=1e-4)

    def test_statistic_aliases(self):
        result = self.calculator.calculate(make_request([1, 2, 3], statistics=['StdDev', 'MEAN']))
        assert set(result['statistics']) == {'N', 'sd', 'mean'}

    def test_all_missing(self):
        """测试全部缺失：统计量不可计算，表格单元格为空"""
        result = self.calculator.calculate(make_request([None, '', 'x']))

        assert result['summary'] == {'valid': 0.0, 'missing': 3.0, 'total': 3.0}
        assert result['statistics']['mean'] is None
        assert result['statistics']['sd'] is None
        assert result['statistics']['N'] == 0
        assert result['tables'][0]['rows'][0]['Mean'] is None

    def test_weighted_statistics(self):
        """测试加权均值：有效样本量取权重和"""
        result = self.calculator.calculate(make_request([1, 2, 3], weights=[1, 1, 2]))

        assert result['statistics']['mean'] == pytest.approx(2.25)
        assert result['statistics']['N'] == 4

    def test_invalid_weight_drops_case(self):
        result = self.calculator.calculate(make_request([1, 2, 100], weights=[1, 1, 0]))

        assert result['statistics']['mean'] == pytest.approx(1.5)
        assert result['summary']['total'] == 2

    def test_string_variable(self):
        """测试字符串变量：报告个案数，数值统计量为空"""
        variable = Variable(name='city', type=VariableType.STRING)
        result = self.calculator.calculate(make_request(['a', 'b', None], variable=variable))

        assert result['summary'] == {'valid': 2.0, 'missing': 1.0, 'total': 3.0}
        assert result['statistics']['N'] == 2
        assert result['statistics']['mean'] is None
        assert result['tables'][0]['rows'][0]['N'] == 2.0

    def test_string_variable_mode(self):
        variable = Variable(name='city', type=VariableType.STRING)
        result = self.calculator.calculate(
            make_request(['b', 'a', 'b', 'a', None], variable=variable, statistics=['mode', 'median'])
        )

        assert result['statistics']['mode'] == ['a', 'b']
        assert result['statistics']['median'] is None
        table = result['tables'][0]
        assert table['rows'][0]['Mode'] == 'a'
        assert MULTIPLE_MODES_FOOTNOTE in table['footnotes']

    def test_median_mode_iqr(self):
        """测试中位数、众数与四分位距"""
        result = self.calculator.calculate(
            make_request([1, 2, 3, 4, 5, 3], statistics=['median', 'mode', 'IQR'])
        )

        stats = result['statistics']
        assert stats['median'] == pytest.approx(3.0)
        assert stats['mode'] == [3.0]
        assert stats['IQR'] == pytest.approx(2.5)
        table = result['tables'][0]
        assert table['columnHeaders'] == ['N', 'Median', 'Mode', 'Interquartile Range']
        assert table['rows'][0]['Mode'] == 3.0
        assert 'footnotes' not in table or not table['footnotes']

    def test_ordinal_variable(self):
        variable = Variable(name='grade', measure=MeasureLevel.ORDINAL)
        result = self.calculator.calculate(
            make_request([1, 2, 2, 3, 4], variable=variable, statistics=['median', 'mode', 'mean'])
        )

        assert result['statistics']['median'] == pytest.approx(2.0)
        assert result['statistics']['mode'] == [2.0]
        assert result['statistics']['mean'] == pytest.approx(2.4)

    def test_nominal_numeric_variable(self):
        """测试 nominal 数值变量：只有个案数与众数，众数显示值标签"""
        variable = Variable(name='region', measure=MeasureLevel.NOMINAL, labels={'2': 'South'})
        result = self.calculator.calculate(
            make_request([1, 2, 2, 3], variable=variable, statistics=['mean', 'median', 'mode'])
        )

        stats = result['statistics']
        assert stats['N'] == 4
        assert stats['mean'] is None
        assert stats['median'] is None
        assert stats['mode'] == [2.0]
        assert result['tables'][0]['rows'][0]['Mode'] == 'South'

    def test_z_scores(self):
        """测试标准化得分与输入个案按位置对齐"""
        result = self.calculator.calculate(make_request([1, None, 3, 5], saveStandardized=True))

        z_scores = result['zScores']
        assert len(z_scores) == 4
        assert z_scores[1] is None
        assert z_scores[0] == pytest.approx(-1.0)
        assert z_scores[2] == pytest.approx(0.0)
        assert z_scores[3] == pytest.approx(1.0)

    def test_unknown_statistic(self):
        with pytest.raises(InvalidOptionsError):
            self.calculator.calculate(make_request([1, 2, 3], statistics=['geomean']))

    def test_input_not_mutated(self):
        """测试计算不修改调用方数组"""
        data = [3, '1', None, 2]
        weights = [1, 2, 1, 1]
        self.calculator.calculate(make_request(data, weights=weights))

        assert data == [3, '1', None, 2]
        assert weights == [1, 2, 1, 1]

    def test_date_variable(self):
        """测试日期变量的均值与最值以日期形式展示"""
        variable = Variable(name='visit', type=VariableType.DATE)
        result = self.calculator.calculate(make_request(['14-10-1582', '16-10-1582'], variable=variable))

        row = result['tables'][0]['rows'][0]
        assert row['Mean'] == '15-10-1582'
        assert row['Minimum'] == '14-10-1582'
        assert row['Maximum'] == '16-10-1582'
        assert result['statistics']['mean'] == 86400.0

    def test_validate_input_misaligned_weights(self):
        validation = self.calculator.validate_input(make_request([1, 2, 3], weights=[1, 1]))
        assert not validation['is_valid']
        assert validation['errors']
