# 交叉表计算器测试
import math

import numpy as np
import pytest

from stat_engine.calculation.calculators.crosstabs_calculator import (
    NO_VALID_CASES_FOOTNOTE, CrosstabsCalculator, build_contingency, concordance
)
from stat_engine.calculation.exceptions import InvalidOptionsError
from stat_engine.calculation.models import CrosstabsRequest, MissingSpec, Variable, VariableType

ALL_STATISTICS = ['chisq', 'phi', 'cc', 'lambda', 'gamma', 'd', 'btau', 'ctau', 'corr', 'kappa']


def make_request(row_data, col_data, row_variable=None, col_variable=None, weights=None, **options):
    return CrosstabsRequest(
        row_variable=row_variable or Variable(name='gender'),
        col_variable=col_variable or Variable(name='smoker'),
        row_data=row_data,
        col_data=col_data,
        weights=weights,
        options=options
    )


def table_by_title(result, title):
    return next(table for table in result['tables'] if table['title'] == title)


class TestContingencyTable:
    """列联表构建测试"""

    def test_counts_and_marginals(self):
        table = build_contingency([1.0, 1.0, 2.0, 2.0, 2.0], [1.0, 2.0, 2.0, 2.0, 1.0], [1.0, 1.0, 1.0, 2.0, 1.0])

        assert table.row_categories == [1.0, 2.0]
        assert table.col_categories == [1.0, 2.0]
        assert table.counts.tolist() == [[1.0, 1.0], [1.0, 3.0]]
        assert table.row_totals.tolist() == [2.0, 4.0]
        assert table.col_totals.tolist() == [2.0, 4.0]
        assert table.W == 6

    def test_descending_axis_order(self):
        table = build_contingency(['a', 'b'], ['x', 'y'], [1.0, 1.0], row_order='descending')
        assert table.row_categories == ['b', 'a']
        assert table.counts.tolist() == [[0.0, 1.0], [1.0, 0.0]]

    def test_concordance_counts_pairs_twice(self):
        table = build_contingency([1.0, 1.0, 2.0, 2.0], [1.0, 1.0, 2.0, 2.0], [1.0] * 4)
        pairs = concordance(table)

        assert pairs['P'] == 8
        assert pairs['Q'] == 0
        assert pairs['D_r'] == 8
        assert pairs['D_c'] == 8


class TestChiSquare:
    """卡方检验测试"""

    def setup_method(self):
        self.calculator = CrosstabsCalculator()

    def test_independent_table(self):
        """测试完全独立的 2x2 表：卡方为0，显著性为1"""
        result = self.calculator.calculate(make_request([1, 1, 2, 2], [1, 2, 1, 2]))

        pearson = result['statistics']['chiSquare']['pearson']
        assert pearson['value'] == pytest.approx(0.0)
        assert pearson['df'] == 1
        assert pearson['sig'] == pytest.approx(1.0)

    def test_numeric_rows_by_string_columns(self):
        """测试数值行变量与字符串列变量：每个单元格计数为1，卡方为0"""
        col_variable = Variable(name='smoker', type=VariableType.STRING)
        result = self.calculator.calculate(
            make_request([1, 1, 2, 2], ['x', 'y', 'x', 'y'], col_variable=col_variable)
        )

        stats = result['statistics']
        assert stats['rowCategories'] == [1.0, 2.0]
        assert stats['colCategories'] == ['x', 'y']
        assert np.asarray(stats['counts']).tolist() == [[1.0, 1.0], [1.0, 1.0]]
        assert stats['chiSquare']['pearson']['value'] == pytest.approx(0.0)
        table = table_by_title(result, 'gender * smoker Crosstabulation')
        assert table['columnHeaders'] == ['x', 'y', 'Total']

    def test_perfect_association(self):
        """测试完全关联的 2x2 表"""
        result = self.calculator.calculate(
            make_request([1, 1, 2, 2], [1, 1, 2, 2], statistics=ALL_STATISTICS)
        )

        stats = result['statistics']
        chi_square = stats['chiSquare']
        assert chi_square['pearson']['value'] == pytest.approx(4.0)
        assert chi_square['continuityCorrection']['value'] == pytest.approx(1.0)
        assert chi_square['likelihoodRatio']['value'] == pytest.approx(8 * math.log(2))
        assert chi_square['linearByLinear']['value'] == pytest.approx(3.0)

        assert stats['phi'] == pytest.approx(1.0)
        assert stats['cramersV'] == pytest.approx(1.0)
        assert stats['contingencyCoefficient'] == pytest.approx(math.sqrt(0.5))
        assert stats['gamma'] == pytest.approx(1.0)
        assert stats['tauB'] == pytest.approx(1.0)
        assert stats['tauC'] == pytest.approx(1.0)
        assert stats['somersD']['symmetric'] == pytest.approx(1.0)
        assert stats['somersD']['rowDependent'] == pytest.approx(1.0)
        assert stats['lambda']['symmetric'] == pytest.approx(1.0)
        assert stats['goodmanKruskalTau']['rowDependent'] == pytest.approx(1.0)
        assert stats['correlations']['pearson'] == pytest.approx(1.0)
        assert stats['correlations']['spearman'] == pytest.approx(1.0)
        assert stats['kappa'] == pytest.approx(1.0)

    def test_phi_squared_times_n_equals_chi_square(self):
        row = [1, 1, 1, 2, 2, 2, 2, 1, 2, 1]
        col = [1, 2, 3, 1, 1, 2, 3, 3, 3, 1]
        result = self.calculator.calculate(make_request(row, col, statistics=['chisq', 'phi']))

        stats = result['statistics']
        assert stats['phi'] ** 2 * stats['total'] == pytest.approx(stats['chiSquare']['pearson']['value'])
        assert stats['chiSquare']['continuityCorrection'] is None

    def test_weighted_cases(self):
        weighted = self.calculator.calculate(make_request([1, 2, 2], [1, 1, 2], weights=[2, 1, 3]))
        expanded = self.calculator.calculate(make_request([1, 1, 2, 2, 2, 2], [1, 1, 1, 2, 2, 2]))

        assert weighted['statistics']['chiSquare'] == expanded['statistics']['chiSquare']
        assert weighted['statistics']['counts'] == expanded['statistics']['counts']

    def test_chi_square_table(self):
        result = self.calculator.calculate(make_request([1, 1, 2, 2], [1, 2, 1, 2]))

        table = table_by_title(result, 'Chi-Square Tests')
        assert [row['rowHeader'] for row in table['rows']] == [
            ['Pearson Chi-Square'], ['Continuity Correction'], ['Likelihood Ratio'],
            ['Linear-by-Linear Association'], ['N of Valid Cases'],
        ]
        assert table['footnotes'][0] == (
            '4 cells (100.0%) have expected count less than 5. The minimum expected count is 1.00.'
        )
        assert 'Computed only for a 2x2 table' in table['footnotes']
        assert result['statistics']['expectedLessThan5'] == {'count': 4, 'percent': 100.0, 'minimum': 1.0}


class TestAssociationMeasures:
    """关联度量测试"""

    def setup_method(self):
        self.calculator = CrosstabsCalculator()

    def test_kappa_requires_identical_categories(self):
        col_variable = Variable(name='answer', type=VariableType.STRING)
        result = self.calculator.calculate(
            make_request([1, 2, 1, 2], ['a', 'b', 'b', 'a'], col_variable=col_variable, statistics=['kappa'])
        )

        assert result['statistics']['kappa'] is None
        assert table_by_title(result, 'Symmetric Measures')['footnotes']

    def test_lambda_with_zero_denominator(self):
        """测试行变量只有一个众数类别时方向性 lambda 不可计算"""
        result = self.calculator.calculate(
            make_request([1, 1, 1, 1], [1, 2, 1, 2], statistics=['lambda'])
        )
        assert result['statistics']['lambda']['rowDependent'] is None

    def test_directional_measures_table(self):
        result = self.calculator.calculate(
            make_request([1, 1, 2, 2], [1, 1, 2, 2], statistics=['lambda', 'd'])
        )

        table = table_by_title(result, 'Directional Measures')
        headers = [row['rowHeader'] for row in table['rows']]
        assert ['Nominal by Nominal', 'Lambda', 'gender Dependent'] in headers
        assert ['Ordinal by Ordinal', "Somers' d", 'smoker Dependent'] in headers

    def test_symmetric_measures_only_when_requested(self):
        result = self.calculator.calculate(make_request([1, 1, 2, 2], [1, 2, 1, 2]))

        titles = [table['title'] for table in result['tables']]
        assert titles == ['Case Processing Summary', 'gender * smoker Crosstabulation', 'Chi-Square Tests']


class TestCrosstabsLayout:
    """交叉表输出测试"""

    def setup_method(self):
        self.calculator = CrosstabsCalculator()

    def test_crosstabulation_cells(self):
        """测试单元格统计量选项：每个类别按选项输出多行"""
        result = self.calculator.calculate(
            make_request([1, 1, 2, 2], [1, 2, 2, 2], cells=['row', 'count', 'expected'])
        )

        table = table_by_title(result, 'gender * smoker Crosstabulation')
        assert table['columnHeaders'] == ['1', '2', 'Total']
        headers = [row['rowHeader'] for row in table['rows']]
        assert headers[:3] == [['1', 'Count'], ['1', 'Expected Count'], ['1', '% within gender']]
        assert len(table['rows']) == 9
        assert table['rows'][0] == {'rowHeader': ['1', 'Count'], '1': 1.0, '2': 1.0, 'Total': 2.0}
        assert table['rows'][-1]['rowHeader'] == ['Total', '% within gender']

    def test_value_labels_in_headers(self):
        row_variable = Variable(name='gender', labels={'1': 'Male', '2': 'Female'})
        result = self.calculator.calculate(make_request([1, 2], [1, 2], row_variable=row_variable))

        table = table_by_title(result, 'gender * smoker Crosstabulation')
        assert [row['rowHeader'][0] for row in table['rows']] == ['Male', 'Female', 'Total']

    def test_shared_labels_keep_separate_columns(self):
        """测试两个取值共用同一标签时，各列计数仍分别输出"""
        col_variable = Variable(name='smoker', labels={'1': 'Same', '2': 'Same'})
        result = self.calculator.calculate(
            make_request([1, 1, 2, 2], [1, 2, 1, 2], col_variable=col_variable)
        )

        table = table_by_title(result, 'gender * smoker Crosstabulation')
        assert table['columnHeaders'] == ['Same (1)', 'Same (2)', 'Total']
        assert table['rows'][0] == {'rowHeader': ['1', 'Count'], 'Same (1)': 1.0, 'Same (2)': 1.0, 'Total': 2.0}

    def test_label_named_total(self):
        row_variable = Variable(name='gender', labels={'1': 'Total'})
        result = self.calculator.calculate(make_request([1, 2], [1, 2], row_variable=row_variable))

        table = table_by_title(result, 'gender * smoker Crosstabulation')
        assert [row['rowHeader'][0] for row in table['rows']] == ['Total (1)', '2', 'Total']

    def test_missing_cases_excluded_listwise(self):
        row_variable = Variable(name='gender', missing=MissingSpec(discrete=(9,)))
        result = self.calculator.calculate(
            make_request([1, 2, 9, 1, None], [1, 2, 1, None, 2], row_variable=row_variable)
        )

        assert result['summary']['valid'] == 2
        assert result['summary']['missing'] == 3
        assert result['summary']['total'] == 5
        processing = table_by_title(result, 'Case Processing Summary')
        assert processing['rows'][0]['rowHeader'] == ['gender * smoker']
        assert processing['rows'][0]['Valid Percent'] == pytest.approx(40.0)

    def test_pairwise_matches_listwise(self):
        row = [1, 2, None, 1, 2, 2]
        col = [1, 1, 2, None, 2, 2]
        listwise = self.calculator.calculate(make_request(row, col, exclude='listwise'))
        pairwise = self.calculator.calculate(make_request(row, col, exclude='pairwise'))

        assert listwise == pairwise

    def test_no_valid_cases(self):
        """测试没有有效个案：输出全零表格并加脚注"""
        result = self.calculator.calculate(make_request([None, None], [1, 2]))

        assert result['summary']['noValidCases'] is True
        assert result['summary']['valid'] == 0
        assert result['summary']['missing'] == 2
        table = table_by_title(result, 'gender * smoker Crosstabulation')
        assert NO_VALID_CASES_FOOTNOTE in table['footnotes']
        assert result['statistics']['chiSquare']['pearson'] is None

    def test_single_column_category(self):
        result = self.calculator.calculate(make_request([1, 2, 1, 2], [1, 1, 1, 1], statistics=['chisq', 'phi']))

        stats = result['statistics']
        assert result['summary']['cols'] == 1
        assert stats['chiSquare']['pearson'] is None
        assert stats['phi'] is None
        assert table_by_title(result, 'Chi-Square Tests')['rows'][0]['Value'] is None

    @pytest.mark.parametrize('options', [
        {'statistics': ['chisq', 'eta']},
        {'cells': ['count', 'percent']},
        {'exclude': 'none'},
        {'rowOrder': 'appearance'},
    ])
    def test_invalid_options(self, options):
        with pytest.raises(InvalidOptionsError):
            self.calculator.calculate(make_request([1, 2], [1, 2], **options))

    def test_validate_input_misaligned_columns(self):
        validation = self.calculator.validate_input(make_request([1, 2, 3], [1, 2]))
        assert not validation['is_valid']

    def test_statistics_serializable(self):
        result = self.calculator.calculate(make_request([1, 1, 2], [1, 2, 2]))

        assert isinstance(result['statistics']['counts'], list)
        assert not isinstance(result['statistics']['total'], np.floating)
