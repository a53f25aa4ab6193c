# 数据模型与单元格边界转换测试
import math


from stat_engine.calculation.models import (
    CellKind, MeasureLevel, MissingSpec, Variable, VariableType,
    date_string_to_spss_seconds, parse_number, parse_weight, spss_seconds_to_date_string,
    to_cell, to_cells
)


class TestNumericCells:
    """数值变量的单元格转换"""

    def setup_method(self):
        self.variable = Variable(name='score')

    def test_numbers_and_numeric_strings(self):
        assert to_cell(3, self.variable).value == 3.0
        assert to_cell(' 3.5 ', self.variable).kind is CellKind.NUMBER
        assert to_cell(' 3.5 ', self.variable).value == 3.5

    def test_system_missing(self):
        for raw in (None, '', 'abc', float('nan'), float('inf'), True):
            cell = to_cell(raw, self.variable)
            assert cell.kind is CellKind.MISSING
            assert not cell.user_missing

    def test_discrete_user_missing(self):
        variable = Variable(name='score', missing=MissingSpec(discrete=(99, '98')))
        assert to_cell(99, variable).user_missing
        assert to_cell('98', variable).user_missing
        assert to_cell(97, variable).is_valid

    def test_range_user_missing(self):
        variable = Variable(name='score', missing=MissingSpec(range_min=90, range_max=100))
        assert to_cell(90, variable).user_missing
        assert to_cell(95.5, variable).user_missing
        assert to_cell(100, variable).user_missing
        assert to_cell(100.5, variable).is_valid

    def test_to_cells_does_not_mutate_input(self):
        raw = [1, None, '2', 'x']
        snapshot = list(raw)
        cells = to_cells(raw, self.variable)
        assert raw == snapshot
        assert [cell.kind for cell in cells] == [
            CellKind.NUMBER, CellKind.MISSING, CellKind.NUMBER, CellKind.MISSING
        ]


class TestStringCells:
    """字符串变量的单元格转换"""

    def test_trim_and_blank(self):
        variable = Variable(name='city', type=VariableType.STRING)
        assert to_cell('  Paris ', variable).value == 'Paris'
        assert to_cell('   ', variable).kind is CellKind.MISSING
        assert to_cell(None, variable).kind is CellKind.MISSING
        assert to_cell(12, variable).value == '12'

    def test_string_user_missing(self):
        variable = Variable(name='city', type=VariableType.STRING, missing=MissingSpec(discrete=('NA',)))
        cell = to_cell(' NA ', variable)
        assert cell.kind is CellKind.MISSING
        assert cell.user_missing
        assert cell.value == 'NA'


class TestDates:
    """日期变量：dd-mm-yyyy 与 SPSS 秒数互转"""

    def test_epoch(self):
        assert date_string_to_spss_seconds('14-10-1582') == 0.0
        assert date_string_to_spss_seconds('15-10-1582') == 86400.0
        assert spss_seconds_to_date_string(86400.0) == '15-10-1582'

    def test_round_trip(self):
        seconds = date_string_to_spss_seconds('01-02-2024')
        assert spss_seconds_to_date_string(seconds) == '01-02-2024'

    def test_invalid_date_strings(self):
        assert date_string_to_spss_seconds('31-02-2024') is None
        assert date_string_to_spss_seconds('2024-02-01') is None

    def test_date_variable_cells(self):
        variable = Variable(name='visit', type=VariableType.DATE)
        assert to_cell('15-10-1582', variable).value == 86400.0
        assert to_cell(172800, variable).value == 172800.0
        assert to_cell('not a date', variable).kind is CellKind.MISSING
        assert variable.format_location(86400.0) == '15-10-1582'


class TestVariable:
    """变量描述测试"""

    def test_effective_measure(self):
        assert Variable(name='a').effective_measure == MeasureLevel.SCALE
        assert Variable(name='b', type=VariableType.STRING).effective_measure == MeasureLevel.NOMINAL
        assert Variable(name='c', measure=MeasureLevel.ORDINAL).effective_measure == MeasureLevel.ORDINAL
        assert Variable(name='d', type=VariableType.DATE).is_numeric_like
        assert not Variable(name='e', measure=MeasureLevel.NOMINAL).is_numeric_like

    def test_value_labels(self):
        variable = Variable(name='gender', labels={'1': 'Male', '2': 'Female'}, label='Gender')
        assert variable.format_value(1.0) == 'Male'
        assert variable.format_value(3.0) == 3.0
        assert variable.format_value(None) is None
        assert variable.display_name == 'Gender'


class TestParsing:
    def test_parse_number(self):
        assert parse_number('1e3') == 1000.0
        assert parse_number('') is None
        assert parse_number(False) is None
        assert parse_number([1]) is None

    def test_parse_weight(self):
        assert parse_weight(2) == 2.0
        assert parse_weight('1.5') == 1.5
        assert parse_weight(0) is None
        assert parse_weight(-1) is None
        assert parse_weight(None) is None
        assert parse_weight(math.nan) is None
