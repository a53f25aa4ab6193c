# 频率分析计算器
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .. import formulas as default_formulas
from ..engine import StatisticalStrategy, check_aligned, new_validation_result
from ..exceptions import InvalidOptionsError
from ..models import CalculationRequest, Variable, label_key
from ..tables import PivotTable, result_bundle
from .descriptive_calculator import (
    LOCATION_STATISTICS, MULTIPLE_MODES_FOOTNOTE, STATISTIC_LABELS, DescriptiveCalculator,
    normalize_statistics
)

logger = logging.getLogger(__name__)

SORT_ORDERS = ('ascending', 'descending', 'appearance', 'count_ascending', 'count_descending')

FREQUENCY_COLUMNS = ['Frequency', 'Percent', 'Valid Percent', 'Cumulative Percent']


def group_values(values: Sequence[Any], weights: Sequence[float],
                 sort_order: str = 'ascending') -> pd.DataFrame:
    """按不同取值分组，返回 value / count / weightedCount 三列

    appearance 保持首次出现顺序；按计数排序时计数相同的取值按值升序排列。
    """
    if sort_order not in SORT_ORDERS:
        raise InvalidOptionsError(f"未知的排序方式: {sort_order}")
    if len(values) == 0:
        return pd.DataFrame({'value': [], 'count': [], 'weightedCount': []})

    frame = pd.DataFrame({
        'value': pd.Series(list(values), dtype=object),
        'weight': np.asarray(weights, dtype=float)
    })
    grouped = frame.groupby('value', sort=False).agg(
        count=('weight', 'size'),
        weightedCount=('weight', 'sum')
    ).reset_index()

    if sort_order == 'appearance':
        return grouped
    if sort_order in ('ascending', 'descending'):
        return grouped.sort_values(
            'value', ascending=(sort_order == 'ascending'), kind='mergesort'
        ).reset_index(drop=True)

    by_value = grouped.sort_values('value', kind='mergesort')
    return by_value.sort_values(
        'weightedCount', ascending=(sort_order == 'count_ascending'), kind='mergesort'
    ).reset_index(drop=True)


def percentile_points(options: Dict[str, Any], defaults: Sequence[float] = ()) -> List[float]:
    """汇总 percentiles / quartiles / cutPoints 选项，去重后升序返回"""
    points = [float(p) for p in (options.get('percentiles') or defaults)]
    if options.get('quartiles'):
        points.extend([25.0, 50.0, 75.0])
    cut_points = options.get('cutPoints')
    if cut_points:
        try:
            groups = int(cut_points)
        except (TypeError, ValueError):
            raise InvalidOptionsError(f"cutPoints 必须为整数，当前值: {cut_points}")
        if groups < 2 or groups > 100:
            raise InvalidOptionsError(f"cutPoints 必须在2-100之间，当前值: {groups}")
        points.extend(100.0 * i / groups for i in range(1, groups))
    for p in points:
        if not 0 <= p <= 100:
            raise InvalidOptionsError(f"百分位数必须在0-100之间，当前值: {p}")
    # 标签相同的百分位点视为同一个点
    unique = {}
    for p in sorted(points):
        unique.setdefault(percentile_label(p), p)
    return list(unique.values())


def percentile_label(p: float) -> str:
    return f"{p:.10g}"


class FrequencyCalculator(StatisticalStrategy):
    """频率分析计算器

    生成频率表(有效值、缺失值分组及合计)与 Statistics 表(N、众数、百分位数等)。
    scale/ordinal 变量按数值处理，nominal 变量只报告频数与众数。
    """

    def __init__(self, formulas=default_formulas, descriptive: Optional[DescriptiveCalculator] = None):
        self.formulas = formulas
        self.descriptive = descriptive or DescriptiveCalculator(formulas)

    def default_sort_order(self, variable: Variable) -> str:
        return 'ascending' if variable.is_numeric_like else 'appearance'

    def percentiles(self, dist, points: Sequence[float], method: str) -> Dict[str, Optional[float]]:
        """按给定方法计算一组百分位数，键为百分位标签"""
        return {
            percentile_label(p): self.formulas.weighted_percentile(dist, p, method)
            for p in points
        }

    def find_modes(self, groups: pd.DataFrame) -> List[Any]:
        """加权频数最高的全部取值(升序)"""
        if groups.empty:
            return []
        counts = groups['weightedCount'].to_numpy(dtype=float)
        top = counts.max()
        return sorted(groups['value'][np.isclose(counts, top, rtol=1e-12, atol=0.0)].tolist())

    def calculate(self, request: CalculationRequest) -> Dict[str, Any]:
        variable = request.variable
        options = request.options or {}
        numeric = variable.is_numeric_like

        sort_order = options.get('sortOrder') or self.default_sort_order(variable)
        method = options.get('percentileMethod') or 'haverage'
        if method not in self.formulas.PERCENTILE_METHODS:
            raise InvalidOptionsError(f"未知的百分位数计算方法: {method}")
        requested = normalize_statistics(options.get('statistics') or [])
        points = percentile_points(options)

        valid = self.formulas.get_valid_data(request.cells, request.weights, numeric=numeric)
        groups = group_values(valid.values.tolist(), valid.weights, sort_order)
        frequency_rows = self._frequency_rows(variable, groups, valid)

        modes = self.find_modes(groups)
        stats: Dict[str, Any] = {'N': valid.valid_weight, 'Missing': valid.missing_weight}
        stats['mode'] = modes[0] if modes else None
        if numeric:
            stats.update(self.descriptive.describe(valid))
            stats['N'] = valid.valid_weight
            dist = self.formulas.weighted_distribution(valid.values, valid.weights)
            stats['median'] = self.formulas.weighted_percentile(dist, 50, method)
            p25 = self.formulas.weighted_percentile(dist, 25, method)
            p75 = self.formulas.weighted_percentile(dist, 75, method)
            stats['IQR'] = p75 - p25 if p25 is not None and p75 is not None else None
            percentiles = self.percentiles(dist, points, method)
        else:
            for key in requested:
                if key != 'mode':
                    stats[key] = None
            percentiles = {percentile_label(p): None for p in points}

        summary = {
            'valid': valid.valid_weight,
            'missing': valid.missing_weight,
            'total': valid.total_weight,
        }
        logger.debug(f"频率分析 [{variable.name}] {len(frequency_rows)} 个取值, 有效权重 {valid.valid_weight}")

        tables = [
            self._statistics_table(variable, requested, stats, percentiles, modes),
            self._frequency_table(variable, frequency_rows, valid),
        ]
        statistics = {'N': stats['N'], 'Missing': stats['Missing'], 'mode': modes}
        for key in requested:
            if key != 'mode':
                statistics[key] = stats.get(key)
        if points:
            statistics['percentiles'] = percentiles

        return result_bundle(
            tables,
            summary=summary,
            statistics=statistics,
            frequencyTable=frequency_rows
        )

    def _frequency_rows(self, variable: Variable, groups: pd.DataFrame, valid) -> List[Dict[str, Any]]:
        total = valid.total_weight
        valid_weight = valid.valid_weight
        rows = []
        cumulative = 0.0
        for value, count, weighted_count in groups[['value', 'count', 'weightedCount']].itertuples(index=False):
            weighted_count = float(weighted_count)
            valid_percent = weighted_count / valid_weight * 100 if valid_weight > 0 else 0.0
            cumulative += valid_percent
            rows.append({
                'value': variable.format_location(value),
                'label': variable.labels.get(label_key(value)),
                'count': int(count),
                'weightedCount': weighted_count,
                'percent': weighted_count / total * 100 if total > 0 else 0.0,
                'validPercent': valid_percent,
                'cumulativePercent': cumulative,
            })
        if rows and valid_weight > 0:
            # 累积百分比末行应为100
            rows[-1]['cumulativePercent'] = 100.0
        return rows

    def _statistics_table(self, variable: Variable, requested: List[str], stats: Dict[str, Any],
                          percentiles: Dict[str, Optional[float]], modes: List[Any]) -> PivotTable:
        column = variable.display_name
        table = PivotTable(title='Statistics', column_headers=[column])
        table.add_cells(['N', 'Valid'], {column: stats['N']})
        table.add_cells(['N', 'Missing'], {column: stats['Missing']})

        ordered = [key for key in ('mean', 'SEmean', 'median', 'mode', 'sd', 'variance', 'skewness',
                                   'SEskewness', 'kurtosis', 'SEkurtosis', 'range', 'IQR',
                                   'min', 'max', 'sum')
                   if key in requested]
        for key in ordered:
            value = stats.get(key)
            if key == 'mode':
                value = variable.format_value(value) if value is not None else None
                if len(modes) > 1:
                    table.add_footnote(MULTIPLE_MODES_FOOTNOTE)
            elif key in LOCATION_STATISTICS:
                value = variable.format_location(value)
            table.add_cells([STATISTIC_LABELS[key]], {column: value})

        for label, value in percentiles.items():
            table.add_cells(['Percentiles', label], {column: variable.format_location(value)})
        return table

    def _frequency_table(self, variable: Variable, rows: List[Dict[str, Any]], valid) -> PivotTable:
        table = PivotTable(title=variable.display_name, column_headers=list(FREQUENCY_COLUMNS))
        total = valid.total_weight
        if total <= 0:
            return table

        for row in rows:
            header = row['label'] if row['label'] is not None else row['value']
            table.add_cells(['Valid', header], {
                'Frequency': row['weightedCount'],
                'Percent': row['percent'],
                'Valid Percent': row['validPercent'],
                'Cumulative Percent': row['cumulativePercent'],
            })
        if rows:
            table.add_cells(['Valid', 'Total'], {
                'Frequency': valid.valid_weight,
                'Percent': valid.valid_weight / total * 100,
                'Valid Percent': 100.0,
            })

        for value, weight in self._user_missing_rows(valid):
            table.add_cells(['Missing', variable.format_value(value)], {
                'Frequency': weight,
                'Percent': weight / total * 100,
            })
        if valid.system_missing_weight > 0:
            table.add_cells(['Missing', 'System'], {
                'Frequency': valid.system_missing_weight,
                'Percent': valid.system_missing_weight / total * 100,
            })
        if valid.missing_weight > 0:
            table.add_cells(['Missing', 'Total'], {
                'Frequency': valid.missing_weight,
                'Percent': valid.missing_weight / total * 100,
            })

        table.add_cells(['Total'], {'Frequency': total, 'Percent': 100.0})
        return table

    @staticmethod
    def _user_missing_rows(valid) -> List[Tuple[Any, float]]:
        # 数值与字符串缺失值分开排序，避免混合比较
        return sorted(valid.user_missing.items(), key=lambda item: (isinstance(item[0], str), item[0]))

    def validate_input(self, request: CalculationRequest) -> Dict[str, Any]:
        validation_result = new_validation_result()
        check_aligned(validation_result, request.data_size, weights=request.weights)
        if request.data_size == 0:
            validation_result['warnings'].append("数据集为空")
        validation_result['stats']['total_records'] = request.data_size
        return validation_result

    def get_algorithm_info(self) -> Dict[str, str]:
        return {
            'name': 'Frequency',
            'version': '1.0',
            'description': '频率分布与百分位数',
            'percentile_methods': ', '.join(self.formulas.PERCENTILE_METHODS),
            'default_percentile_method': 'haverage',
            'sort_orders': ', '.join(SORT_ORDERS)
        }
