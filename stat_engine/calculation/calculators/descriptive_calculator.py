# 描述统计计算器
import logging
from typing import Any, Dict, List, Optional

from ... import config
from .. import formulas as default_formulas
from ..engine import StatisticalStrategy, check_aligned, new_validation_result
from ..exceptions import InvalidOptionsError
from ..models import CalculationRequest, Variable
from ..tables import PivotTable, result_bundle

logger = logging.getLogger(__name__)

# 输出列顺序与列名
STATISTIC_LABELS = {
    'range': 'Range',
    'min': 'Minimum',
    'max': 'Maximum',
    'sum': 'Sum',
    'mean': 'Mean',
    'SEmean': 'Std. Error of Mean',
    'median': 'Median',
    'mode': 'Mode',
    'sd': 'Std. Deviation',
    'variance': 'Variance',
    'IQR': 'Interquartile Range',
    'skewness': 'Skewness',
    'SEskewness': 'Std. Error of Skewness',
    'kurtosis': 'Kurtosis',
    'SEkurtosis': 'Std. Error of Kurtosis',
}

# 日期变量中以日期形式展示的统计量
LOCATION_STATISTICS = ('mean', 'min', 'max', 'median')

MULTIPLE_MODES_FOOTNOTE = 'Multiple modes exist. The smallest value is shown'

_STATISTIC_ALIASES = {key.lower(): key for key in STATISTIC_LABELS}
_STATISTIC_ALIASES.update({'stddev': 'sd', 'std': 'sd', 'minimum': 'min', 'maximum': 'max',
                           'semean': 'SEmean', 'seskewness': 'SEskewness', 'sekurtosis': 'SEkurtosis'})


def normalize_statistics(requested: Optional[List[str]]) -> List[str]:
    """统一统计量名称，未知名称抛出 InvalidOptionsError"""
    if requested is None:
        return list(config.DEFAULT_DESCRIPTIVE_STATISTICS)
    normalized = []
    for name in requested:
        canonical = _STATISTIC_ALIASES.get(str(name).lower())
        if canonical is None:
            raise InvalidOptionsError(f"未知的统计量: {name}")
        if canonical not in normalized:
            normalized.append(canonical)
    return normalized


class DescriptiveCalculator(StatisticalStrategy):
    """描述统计计算器

    计算均值、标准差、方差、偏度、峰度、极差、最值、中位数、众数及标准误。
    nominal 变量只报告个案数与众数。
    有效样本量统一取加权个案数 W。
    """

    def __init__(self, formulas=default_formulas):
        self.formulas = formulas

    def describe(self, valid) -> Dict[str, Optional[float]]:
        """由有效数据计算全部描述统计量(众数除外)"""
        f = self.formulas
        moments = f.compute_moments(valid.values, valid.weights)
        has_data = moments.M1 is not None
        variance = f.variance_from_moments(moments)
        sd = variance ** 0.5 if variance is not None else None
        W = moments.W

        dist = f.weighted_distribution(valid.values, valid.weights)
        p25 = f.weighted_percentile(dist, 25)
        p75 = f.weighted_percentile(dist, 75)

        return {
            'N': W,
            'mean': moments.M1,
            'sum': moments.sum if has_data else None,
            'sd': sd,
            'variance': variance,
            'min': moments.min,
            'max': moments.max,
            'range': moments.max - moments.min if has_data else None,
            'median': f.weighted_percentile(dist, 50),
            'IQR': p75 - p25 if p25 is not None and p75 is not None else None,
            'skewness': f.skewness_from_moments(moments),
            'kurtosis': f.kurtosis_from_moments(moments),
            'SEmean': f.se_mean(sd, W),
            'SEskewness': f.se_skewness(W),
            'SEkurtosis': f.se_kurtosis(W),
        }

    def calculate(self, request: CalculationRequest) -> Dict[str, Any]:
        variable = request.variable
        options = request.options or {}
        requested = normalize_statistics(options.get('statistics'))

        valid = self.formulas.get_valid_data(request.cells, request.weights, numeric=not variable.is_string)
        if variable.is_numeric_like:
            stats = self.describe(valid)
        else:
            # nominal 变量只有个案数与众数
            stats = {key: None for key in STATISTIC_LABELS}
            stats['N'] = valid.valid_weight
        stats['mode'] = self.formulas.weighted_modes(valid.values, valid.weights)

        summary = {
            'valid': valid.valid_weight,
            'missing': valid.missing_weight,
            'total': valid.total_weight,
        }
        logger.debug(f"描述统计 [{variable.name}] 有效权重 {valid.valid_weight}")

        table = self._build_table(variable, requested, stats)
        extra = {}
        if options.get('saveStandardized'):
            extra['zScores'] = self._z_scores(request, stats)

        return result_bundle(
            [table],
            summary=summary,
            statistics={key: stats[key] for key in ['N'] + requested},
            **extra
        )

    def _build_table(self, variable: Variable, requested: List[str], stats: Dict[str, Any]) -> PivotTable:
        ordered = [key for key in STATISTIC_LABELS if key in requested]
        table = PivotTable(
            title='Descriptive Statistics',
            column_headers=['N'] + [STATISTIC_LABELS[key] for key in ordered]
        )
        cells = {'N': stats['N']}
        for key in ordered:
            value = stats[key]
            if key == 'mode':
                modes = value or []
                if len(modes) > 1:
                    table.add_footnote(MULTIPLE_MODES_FOOTNOTE)
                value = variable.format_value(modes[0]) if modes else None
            elif variable.is_date and key in LOCATION_STATISTICS:
                value = variable.format_location(value)
            cells[STATISTIC_LABELS[key]] = value
        table.add_cells([variable.display_name], cells)
        table.add_cells(['Valid N (listwise)'], {'N': stats['N']})
        return table

    def _z_scores(self, request: CalculationRequest, stats: Dict[str, Any]) -> List[Optional[float]]:
        """标准化得分，与输入个案按位置对齐，无效个案为空"""
        mean, sd = stats.get('mean'), stats.get('sd')
        cells = request.cells
        if mean is None or not sd:
            return [None] * len(cells)

        valid = self.formulas.get_valid_data(cells, request.weights, numeric=True)
        scores: List[Optional[float]] = [None] * len(cells)
        for position, value in zip(valid.positions.tolist(), valid.values.tolist()):
            scores[position] = (value - mean) / sd
        return scores

    def validate_input(self, request: CalculationRequest) -> Dict[str, Any]:
        validation_result = new_validation_result()
        check_aligned(validation_result, request.data_size, weights=request.weights)
        if request.data_size == 0:
            validation_result['warnings'].append("数据集为空")
        validation_result['stats']['total_records'] = request.data_size
        return validation_result

    def get_algorithm_info(self) -> Dict[str, str]:
        return {
            'name': 'Descriptive',
            'version': '1.0',
            'description': '描述统计(加权矩)',
            'variance_formula': 'M2 / (W - 1)',
            'skewness_formula': 'W*M3 / ((W-1)(W-2)S^3)',
            'kurtosis_formula': '(W(W+1)M4 - 3M2^2(W-1)) / ((W-1)(W-2)(W-3)S^4)',
            'effective_n': 'sum_of_weights'
        }
