# 探索分析(Examine)计算器
import logging
from typing import Any, Dict, List, Optional

import numpy as np

from ... import config
from .. import formulas as default_formulas
from ..engine import StatisticalStrategy, check_aligned, new_validation_result
from ..exceptions import InvalidOptionsError
from ..models import CalculationRequest, Variable
from ..tables import PivotTable, result_bundle
from .descriptive_calculator import DescriptiveCalculator
from .frequency_calculator import FrequencyCalculator, percentile_label, percentile_points

logger = logging.getLogger(__name__)

OUTLIER_METHODS = ('percentiles', 'tukey_hinges')

# 内栅栏 1.5·IQR，外栅栏 3·IQR
INNER_FENCE_STEP = 1.5
OUTER_FENCE_STEP = 3.0

M_ESTIMATOR_LABELS = {
    'huber': "Huber's M-Estimator",
    'tukey': "Tukey's Biweight",
    'hampel': "Hampel's M-Estimator",
    'andrews': "Andrews' Wave",
}

M_ESTIMATOR_FOOTNOTES = [
    'The weighting constant is 1.339.',
    'The weighting constant is 4.685.',
    'The weighting constants are 1.700, 3.400, and 8.500.',
    'The weighting constant is 1.339*pi.',
]


def classify_value(value: float, fences: Optional[Dict[str, float]]) -> str:
    """按栅栏标记个案：extreme / outlier / normal"""
    if fences is None:
        return 'normal'
    if value < fences['lowerOuter'] or value > fences['upperOuter']:
        return 'extreme'
    if value < fences['lowerInner'] or value > fences['upperInner']:
        return 'outlier'
    return 'normal'


class ExamineCalculator(StatisticalStrategy):
    """探索分析计算器

    组合频率分析(百分位数)与描述统计(矩)，另外计算截尾均值、均值置信区间、
    M估计量、Tukey 铰链和极端值，并按原始个案编号追踪离群个案。
    """

    def __init__(self, formulas=default_formulas,
                 frequency: Optional[FrequencyCalculator] = None,
                 descriptive: Optional[DescriptiveCalculator] = None):
        self.formulas = formulas
        self.descriptive = descriptive or DescriptiveCalculator(formulas)
        self.frequency = frequency or FrequencyCalculator(formulas, self.descriptive)

    def _read_options(self, options: Dict[str, Any]) -> Dict[str, Any]:
        method = options.get('percentileMethod') or 'haverage'
        if method not in self.formulas.PERCENTILE_METHODS:
            raise InvalidOptionsError(f"未知的百分位数计算方法: {method}")

        outlier_method = options.get('outlierMethod') or 'percentiles'
        if outlier_method not in OUTLIER_METHODS:
            raise InvalidOptionsError(f"未知的离群值判定方法: {outlier_method}")

        trim_percent = float(options.get('trimPercent', config.DEFAULT_TRIM_PERCENT))
        if not 0 <= trim_percent < 50:
            raise InvalidOptionsError(f"截尾比例必须在[0, 50)之间，当前值: {trim_percent}")

        confidence_level = float(options.get('confidenceLevel', config.DEFAULT_CONFIDENCE_LEVEL))
        if not 0 < confidence_level < 100:
            raise InvalidOptionsError(f"置信水平必须在(0, 100)之间，当前值: {confidence_level}")

        try:
            extreme_count = int(options.get('extremeCount', config.DEFAULT_EXTREME_COUNT))
        except (TypeError, ValueError):
            raise InvalidOptionsError(f"extremeCount 必须为整数，当前值: {options.get('extremeCount')}")
        if extreme_count < 1:
            raise InvalidOptionsError(f"extremeCount 必须大于0，当前值: {extreme_count}")

        return {
            'method': method,
            'outlier_method': outlier_method,
            'trim_percent': trim_percent,
            'confidence_level': confidence_level,
            'extreme_count': extreme_count,
            'points': percentile_points(options, defaults=config.DEFAULT_PERCENTILES),
            'm_estimators': options.get('mEstimators', True),
        }

    def calculate(self, request: CalculationRequest) -> Dict[str, Any]:
        variable = request.variable
        settings = self._read_options(request.options or {})
        f = self.formulas
        valid = f.get_valid_data(request.cells, request.weights, numeric=not variable.is_string)
        # 字符串变量只报告个案处理摘要，其余统计量不可计算
        analysed = f.get_valid_data([]) if variable.is_string else valid
        case_numbers = self._case_numbers(request)

        descriptives = self.descriptive.describe(analysed)
        dist = f.weighted_distribution(analysed.values, analysed.weights)
        percentiles = self.frequency.percentiles(dist, settings['points'], settings['method'])
        hinges = f.tukey_hinges(dist)
        descriptives['median'] = f.weighted_percentile(dist, 50, settings['method'])
        descriptives['trimmedMean'] = f.trimmed_mean(analysed.values, analysed.weights, settings['trim_percent'])
        descriptives['confidenceInterval'] = self._confidence_interval(descriptives, settings['confidence_level'])

        quartiles = self._quartiles(dist, hinges, settings['outlier_method'])
        iqr = quartiles['Q3'] - quartiles['Q1'] if quartiles else None
        descriptives['IQR'] = iqr
        fences = self._fences(quartiles, iqr)

        entries = [
            {'caseNumber': case_numbers[position], 'value': value}
            for position, value in zip(analysed.positions.tolist(), analysed.values.tolist())
        ]
        extremes = self._extreme_values(entries, settings['extreme_count'], fences)
        outliers = [
            dict(entry, type=classify_value(entry['value'], fences))
            for entry in entries
            if classify_value(entry['value'], fences) != 'normal'
        ]

        m_estimates = f.m_estimators(analysed.values, analysed.weights) if settings['m_estimators'] else None

        logger.debug(f"探索分析 [{variable.name}] 有效权重 {valid.valid_weight}, 离群个案 {len(outliers)}")

        tables = [
            self._case_processing_table(variable, valid),
            self._descriptives_table(variable, descriptives, settings),
        ]
        if m_estimates is not None:
            tables.append(self._m_estimators_table(variable, m_estimates))
        tables.append(self._percentiles_table(variable, percentiles, hinges, settings['method']))
        tables.append(self._extreme_values_table(variable, extremes))

        statistics = {
            'descriptives': descriptives,
            'percentiles': {'method': settings['method'], 'values': percentiles},
            'hinges': hinges,
            'mEstimators': m_estimates,
            'extremeValues': extremes,
            'outliers': outliers,
            'fences': fences,
            'outlierMethod': settings['outlier_method'],
        }
        return result_bundle(
            tables,
            summary={
                'valid': valid.valid_weight,
                'missing': valid.missing_weight,
                'total': valid.total_weight,
            },
            statistics=statistics
        )

    def _case_numbers(self, request: CalculationRequest) -> List[Any]:
        if request.case_numbers is not None:
            return list(request.case_numbers)
        return list(range(1, request.data_size + 1))

    def _confidence_interval(self, descriptives: Dict[str, Any], level: float) -> Optional[Dict[str, float]]:
        mean, se = descriptives.get('mean'), descriptives.get('SEmean')
        W = descriptives.get('N') or 0
        if mean is None or se is None or W <= 1:
            return None
        t_value = self.formulas.t_critical(W - 1, level)
        return {'lower': mean - t_value * se, 'upper': mean + t_value * se, 'level': level}

    def _quartiles(self, dist, hinges: Optional[Dict[str, float]], outlier_method: str) -> Optional[Dict[str, float]]:
        if dist.is_empty:
            return None
        if outlier_method == 'tukey_hinges':
            return {'Q1': hinges['Q1'], 'Q3': hinges['Q3']}
        return {
            'Q1': self.formulas.weighted_percentile(dist, 25, 'haverage'),
            'Q3': self.formulas.weighted_percentile(dist, 75, 'haverage'),
        }

    @staticmethod
    def _fences(quartiles: Optional[Dict[str, float]], iqr: Optional[float]) -> Optional[Dict[str, float]]:
        if quartiles is None or iqr is None:
            return None
        return {
            'lowerInner': quartiles['Q1'] - INNER_FENCE_STEP * iqr,
            'upperInner': quartiles['Q3'] + INNER_FENCE_STEP * iqr,
            'lowerOuter': quartiles['Q1'] - OUTER_FENCE_STEP * iqr,
            'upperOuter': quartiles['Q3'] + OUTER_FENCE_STEP * iqr,
        }

    @staticmethod
    def _extreme_values(entries: List[Dict[str, Any]], count: int,
                        fences: Optional[Dict[str, float]]) -> Dict[str, Any]:
        """最高与最低的 count 个个案；同值按原始顺序，截断处仍有同值个案时标记 isPartial"""
        values = np.asarray([entry['value'] for entry in entries], dtype=float)
        ascending = np.argsort(values, kind='mergesort')
        descending = np.argsort(-values, kind='mergesort')

        def pick(order: np.ndarray) -> List[Dict[str, Any]]:
            chosen = []
            for index in order[:count].tolist():
                entry = entries[index]
                chosen.append(dict(entry, type=classify_value(entry['value'], fences), isPartial=False))
            if chosen and len(order) > count and values[order[count]] == chosen[-1]['value']:
                chosen[-1]['isPartial'] = True
            return chosen

        return {
            'highest': pick(descending),
            'lowest': pick(ascending),
            'isTruncated': count > len(entries),
            'fences': fences,
        }

    def _case_processing_table(self, variable: Variable, valid) -> PivotTable:
        table = PivotTable(
            title='Case Processing Summary',
            column_headers=['Valid N', 'Valid Percent', 'Missing N', 'Missing Percent', 'Total N', 'Total Percent']
        )
        total = valid.total_weight

        def percent(weight: float) -> Optional[float]:
            return weight / total * 100 if total > 0 else None

        table.add_cells([variable.display_name], {
            'Valid N': valid.valid_weight,
            'Valid Percent': percent(valid.valid_weight),
            'Missing N': valid.missing_weight,
            'Missing Percent': percent(valid.missing_weight),
            'Total N': total,
            'Total Percent': 100.0 if total > 0 else None,
        })
        return table

    def _descriptives_table(self, variable: Variable, d: Dict[str, Any], settings: Dict[str, Any]) -> PivotTable:
        table = PivotTable(title='Descriptives', column_headers=['Statistic', 'Std. Error'])
        name = variable.display_name
        location = variable.format_location
        ci = d['confidenceInterval'] or {}
        ci_label = f"{settings['confidence_level']:g}% Confidence Interval for Mean"

        table.add_cells([name, 'Mean'], {'Statistic': location(d['mean']), 'Std. Error': d['SEmean']})
        table.add_cells([name, ci_label, 'Lower Bound'], {'Statistic': location(ci.get('lower'))})
        table.add_cells([name, ci_label, 'Upper Bound'], {'Statistic': location(ci.get('upper'))})
        table.add_cells([name, f"{settings['trim_percent']:g}% Trimmed Mean"], {'Statistic': location(d['trimmedMean'])})
        table.add_cells([name, 'Median'], {'Statistic': location(d['median'])})
        table.add_cells([name, 'Variance'], {'Statistic': d['variance']})
        table.add_cells([name, 'Std. Deviation'], {'Statistic': d['sd']})
        table.add_cells([name, 'Minimum'], {'Statistic': location(d['min'])})
        table.add_cells([name, 'Maximum'], {'Statistic': location(d['max'])})
        table.add_cells([name, 'Range'], {'Statistic': d['range']})
        table.add_cells([name, 'Interquartile Range'], {'Statistic': d['IQR']})
        table.add_cells([name, 'Skewness'], {'Statistic': d['skewness'], 'Std. Error': d['SEskewness']})
        table.add_cells([name, 'Kurtosis'], {'Statistic': d['kurtosis'], 'Std. Error': d['SEkurtosis']})
        return table

    def _m_estimators_table(self, variable: Variable, estimates: Dict[str, Optional[float]]) -> PivotTable:
        table = PivotTable(title='M-Estimators', column_headers=list(M_ESTIMATOR_LABELS.values()))
        table.add_cells([variable.display_name], {
            label: variable.format_location(estimates.get(kind))
            for kind, label in M_ESTIMATOR_LABELS.items()
        })
        for footnote in M_ESTIMATOR_FOOTNOTES:
            table.add_footnote(footnote)
        return table

    def _percentiles_table(self, variable: Variable, percentiles: Dict[str, Optional[float]],
                           hinges: Optional[Dict[str, float]], method: str) -> PivotTable:
        table = PivotTable(title='Percentiles', column_headers=list(percentiles))
        location = variable.format_location
        table.add_cells(['Weighted Average(Definition 1)', variable.display_name],
                        {label: location(value) for label, value in percentiles.items()})

        hinge_cells = {}
        if hinges is not None:
            for p, key in ((25.0, 'Q1'), (50.0, 'Q2'), (75.0, 'Q3')):
                label = percentile_label(p)
                if label in percentiles:
                    hinge_cells[label] = location(hinges[key])
        table.add_cells(["Tukey's Hinges", variable.display_name], hinge_cells)
        if method != 'haverage':
            table.add_footnote(f"Percentile method: {method}")
        return table

    def _extreme_values_table(self, variable: Variable, extremes: Dict[str, Any]) -> PivotTable:
        table = PivotTable(title='Extreme Values', column_headers=['Case Number', 'Value', 'Type'])
        for direction, key in (('Highest', 'highest'), ('Lowest', 'lowest')):
            for rank, entry in enumerate(extremes[key], start=1):
                table.add_cells([variable.display_name, direction, rank], {
                    'Case Number': entry['caseNumber'],
                    'Value': variable.format_location(entry['value']),
                    'Type': entry['type'],
                })
                if entry['isPartial']:
                    table.add_footnote(
                        f"Only a partial list of cases with the value {variable.format_location(entry['value'])} "
                        f"are shown in the table of {direction.lower()} extremes."
                    )
        return table

    def validate_input(self, request: CalculationRequest) -> Dict[str, Any]:
        validation_result = new_validation_result()
        check_aligned(
            validation_result, request.data_size,
            weights=request.weights, caseNumbers=request.case_numbers
        )
        if request.data_size == 0:
            validation_result['warnings'].append("数据集为空")
        validation_result['stats']['total_records'] = request.data_size
        return validation_result

    def get_algorithm_info(self) -> Dict[str, str]:
        return {
            'name': 'Examine',
            'version': '1.0',
            'description': '探索分析：稳健统计量、百分位数与极端值',
            'percentile_method': 'haverage (可选 waverage / empirical / tukey_hinges)',
            'outlier_rule': 'Q1-1.5IQR / Q3+1.5IQR (离群), Q1-3IQR / Q3+3IQR (极端)',
            'm_estimators': 'huber, tukey, hampel, andrews',
            'effective_n': 'sum_of_weights'
        }
