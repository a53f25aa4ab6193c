# 交叉表计算器
import math
import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats as scipy_stats

from ... import config
from .. import formulas as default_formulas
from ..engine import StatisticalStrategy, check_aligned, new_validation_result
from ..exceptions import InvalidOptionsError
from ..models import CrosstabsRequest, Variable, label_key, parse_weight
from ..tables import PivotTable, result_bundle
from .frequency_calculator import group_values

logger = logging.getLogger(__name__)

CELL_LABELS = {
    'count': 'Count',
    'expected': 'Expected Count',
    'row': '% within {row}',
    'column': '% within {col}',
    'total': '% of Total',
    'residual': 'Residual',
    'sresid': 'Standardized Residual',
    'asresid': 'Adjusted Residual',
}

STATISTIC_KEYS = ('chisq', 'phi', 'cc', 'lambda', 'gamma', 'd', 'btau', 'ctau', 'corr', 'kappa')

EXCLUDE_POLICIES = ('listwise', 'pairwise')

NO_VALID_CASES_FOOTNOTE = 'No valid cases'


class ContingencyTable:
    """加权列联表：行为行变量类别，列为列变量类别"""

    def __init__(self, counts: np.ndarray, row_categories: List[Any], col_categories: List[Any]):
        self.counts = counts
        self.row_categories = row_categories
        self.col_categories = col_categories
        self.row_totals = counts.sum(axis=1)
        self.col_totals = counts.sum(axis=0)
        self.W = float(counts.sum())
        self.R, self.C = counts.shape

    @property
    def is_degenerate(self) -> bool:
        return self.W <= 0 or self.R < 2 or self.C < 2

    @property
    def expected(self) -> np.ndarray:
        if self.W <= 0:
            return np.zeros_like(self.counts)
        return np.outer(self.row_totals, self.col_totals) / self.W


def build_contingency(row_values: List[Any], col_values: List[Any], weights: List[float],
                      row_order: str = 'ascending', col_order: str = 'ascending') -> ContingencyTable:
    """按两个变量的不同取值构建加权列联表，各轴独立排序"""
    row_categories = group_values(row_values, weights, row_order)['value'].tolist()
    col_categories = group_values(col_values, weights, col_order)['value'].tolist()
    if not row_categories or not col_categories:
        return ContingencyTable(np.zeros((len(row_categories), len(col_categories))),
                                row_categories, col_categories)

    frame = pd.DataFrame({
        'row': pd.Series(row_values, dtype=object),
        'col': pd.Series(col_values, dtype=object),
        'weight': np.asarray(weights, dtype=float),
    })
    counts = (
        frame.groupby(['row', 'col'], sort=False)['weight'].sum()
        .unstack(fill_value=0.0)
        .reindex(index=row_categories, columns=col_categories, fill_value=0.0)
    )
    return ContingencyTable(counts.to_numpy(dtype=float), row_categories, col_categories)


def concordance(table: ContingencyTable) -> Dict[str, float]:
    """一致对 P 与不一致对 Q(双向计数)，以及行、列方向的非同分对数"""
    counts = table.counts
    R, C = counts.shape
    P = 0.0
    Q = 0.0
    for i in range(R):
        for j in range(C):
            f = counts[i, j]
            if f <= 0:
                continue
            concordant = counts[i + 1:, j + 1:].sum() + counts[:i, :j].sum()
            discordant = counts[i + 1:, :j].sum() + counts[:i, j + 1:].sum()
            P += f * concordant
            Q += f * discordant
    W = table.W
    return {
        'P': P,
        'Q': Q,
        'D_r': W * W - float(np.sum(table.row_totals ** 2)),
        'D_c': W * W - float(np.sum(table.col_totals ** 2)),
    }


def _ratio(numerator: float, denominator: float) -> Optional[float]:
    return numerator / denominator if denominator else None


def pearson_chi_square(table: ContingencyTable) -> Optional[Dict[str, float]]:
    if table.is_degenerate:
        return None
    expected = table.expected
    mask = expected > 0
    value = float(np.sum((table.counts[mask] - expected[mask]) ** 2 / expected[mask]))
    df = (table.R - 1) * (table.C - 1)
    return {'value': value, 'df': df, 'sig': default_formulas.chi_square_sig(value, df)}


def continuity_correction(table: ContingencyTable) -> Optional[Dict[str, float]]:
    """Yates 连续性校正，仅适用于 2x2 表"""
    if table.is_degenerate or (table.R, table.C) != (2, 2):
        return None
    (a, b), (c, d) = table.counts
    r1, r2 = table.row_totals
    c1, c2 = table.col_totals
    denominator = r1 * r2 * c1 * c2
    if denominator <= 0:
        return None
    difference = abs(a * d - b * c)
    corrected = max(0.0, difference - table.W / 2)
    value = float(table.W * corrected * corrected / denominator)
    return {'value': value, 'df': 1, 'sig': default_formulas.chi_square_sig(value, 1)}


def likelihood_ratio(table: ContingencyTable) -> Optional[Dict[str, float]]:
    if table.is_degenerate:
        return None
    expected = table.expected
    mask = (table.counts > 0) & (expected > 0)
    value = float(2 * np.sum(table.counts[mask] * np.log(table.counts[mask] / expected[mask])))
    df = (table.R - 1) * (table.C - 1)
    return {'value': value, 'df': df, 'sig': default_formulas.chi_square_sig(value, df)}


def category_scores(categories: List[Any]) -> np.ndarray:
    """数值类别取其值，否则取类别序号(从1开始)"""
    if categories and all(isinstance(value, (int, float)) for value in categories):
        return np.asarray(categories, dtype=float)
    return np.arange(1, len(categories) + 1, dtype=float)


def mid_rank_scores(totals: np.ndarray) -> np.ndarray:
    cumulative = np.concatenate(([0.0], np.cumsum(totals)[:-1]))
    return cumulative + (totals + 1) / 2


def scored_correlation(table: ContingencyTable, row_scores: np.ndarray, col_scores: np.ndarray) -> Optional[float]:
    W = table.W
    if W <= 0:
        return None
    sum_x = float(np.sum(row_scores * table.row_totals))
    sum_y = float(np.sum(col_scores * table.col_totals))
    ss_x = float(np.sum(row_scores ** 2 * table.row_totals)) - sum_x * sum_x / W
    ss_y = float(np.sum(col_scores ** 2 * table.col_totals)) - sum_y * sum_y / W
    if ss_x <= 0 or ss_y <= 0:
        return None
    cross = float(row_scores @ table.counts @ col_scores) - sum_x * sum_y / W
    return cross / math.sqrt(ss_x * ss_y)


def correlation_sig(r: Optional[float], W: float) -> Optional[float]:
    """基于 t 分布的近似显著性，df = W - 2"""
    if r is None or W <= 2:
        return None
    if abs(r) >= 1:
        return 0.0
    t_value = r * math.sqrt((W - 2) / (1 - r * r))
    return float(2 * scipy_stats.t.sf(abs(t_value), W - 2))


def lambda_measures(table: ContingencyTable) -> Dict[str, Optional[float]]:
    counts, W = table.counts, table.W
    if W <= 0:
        return {'symmetric': None, 'rowDependent': None, 'colDependent': None}
    max_in_rows = float(counts.max(axis=1).sum())
    max_in_cols = float(counts.max(axis=0).sum())
    max_row_total = float(table.row_totals.max())
    max_col_total = float(table.col_totals.max())
    return {
        'symmetric': _ratio(max_in_rows + max_in_cols - max_row_total - max_col_total,
                            2 * W - max_row_total - max_col_total),
        'rowDependent': _ratio(max_in_cols - max_row_total, W - max_row_total),
        'colDependent': _ratio(max_in_rows - max_col_total, W - max_col_total),
    }


def goodman_kruskal_tau(table: ContingencyTable) -> Dict[str, Optional[float]]:
    counts, W = table.counts, table.W
    if W <= 0:
        return {'rowDependent': None, 'colDependent': None}
    squared = counts * counts
    with np.errstate(divide='ignore', invalid='ignore'):
        within_rows = float(np.nansum(squared.sum(axis=1) / np.where(table.row_totals > 0, table.row_totals, np.nan)))
        within_cols = float(np.nansum(squared.sum(axis=0) / np.where(table.col_totals > 0, table.col_totals, np.nan)))
    sum_r2 = float(np.sum(table.row_totals ** 2))
    sum_c2 = float(np.sum(table.col_totals ** 2))
    return {
        'rowDependent': _ratio(W * within_cols - sum_r2, W * W - sum_r2),
        'colDependent': _ratio(W * within_rows - sum_c2, W * W - sum_c2),
    }


def cohen_kappa(table: ContingencyTable) -> Optional[float]:
    """行列类别完全相同的方表才计算"""
    if table.W <= 0 or table.row_categories != table.col_categories:
        return None
    W = table.W
    agreement = float(np.trace(table.counts))
    chance = float(np.sum(table.row_totals * table.col_totals))
    return _ratio(W * agreement - chance, W * W - chance)


def association_measures(table: ContingencyTable, chi_square: Optional[Dict[str, float]]) -> Dict[str, Any]:
    W = table.W
    q = min(table.R, table.C)
    measures: Dict[str, Any] = {
        'phi': None, 'cramersV': None, 'contingencyCoefficient': None,
        'gamma': None, 'tauB': None, 'tauC': None,
        'somersD': {'symmetric': None, 'rowDependent': None, 'colDependent': None},
        'lambda': lambda_measures(table),
        'goodmanKruskalTau': goodman_kruskal_tau(table),
        'correlations': {'pearson': None, 'pearsonSig': None, 'spearman': None, 'spearmanSig': None},
        'kappa': cohen_kappa(table),
    }
    if table.is_degenerate:
        return measures

    if chi_square is not None:
        measures['phi'] = math.sqrt(chi_square['value'] / W)
        measures['cramersV'] = math.sqrt(chi_square['value'] / (W * (q - 1)))
        measures['contingencyCoefficient'] = math.sqrt(chi_square['value'] / (chi_square['value'] + W))

    pairs = concordance(table)
    difference = pairs['P'] - pairs['Q']
    measures['gamma'] = _ratio(difference, pairs['P'] + pairs['Q'])
    measures['tauB'] = _ratio(difference, math.sqrt(pairs['D_r'] * pairs['D_c']))
    measures['tauC'] = _ratio(q * difference, W * W * (q - 1))
    measures['somersD'] = {
        'symmetric': _ratio(difference, (pairs['D_r'] + pairs['D_c']) / 2),
        'rowDependent': _ratio(difference, pairs['D_c']),
        'colDependent': _ratio(difference, pairs['D_r']),
    }

    pearson = scored_correlation(table, category_scores(table.row_categories),
                                 category_scores(table.col_categories))
    spearman = scored_correlation(table, mid_rank_scores(table.row_totals),
                                  mid_rank_scores(table.col_totals))
    measures['correlations'] = {
        'pearson': pearson,
        'pearsonSig': correlation_sig(pearson, W),
        'spearman': spearman,
        'spearmanSig': correlation_sig(spearman, W),
    }
    return measures


class CrosstabsCalculator(StatisticalStrategy):
    """交叉表计算器

    行、列变量逐个案配对，任一变量无效或权重无效的个案整体剔除(pairwise 对单个二维表等同 listwise)。
    输出个案处理摘要、交叉表、卡方检验、对称与方向性关联度量。
    """

    def __init__(self, formulas=default_formulas):
        self.formulas = formulas

    def _read_options(self, options: Dict[str, Any]) -> Dict[str, Any]:
        exclude = options.get('exclude') or 'listwise'
        if exclude not in EXCLUDE_POLICIES:
            raise InvalidOptionsError(f"未知的缺失值处理方式: {exclude}")
        if exclude == 'pairwise':
            logger.debug("交叉表只涉及一对变量，pairwise 按 listwise 处理")

        cells = options.get('cells') or ['count']
        unknown = [key for key in cells if key not in CELL_LABELS]
        if unknown:
            raise InvalidOptionsError(f"未知的单元格统计量: {', '.join(map(str, unknown))}")

        statistics = options.get('statistics')
        if statistics is None:
            statistics = ['chisq']
        unknown = [key for key in statistics if key not in STATISTIC_KEYS]
        if unknown:
            raise InvalidOptionsError(f"未知的交叉表统计量: {', '.join(map(str, unknown))}")

        orders = {}
        for key in ('rowOrder', 'colOrder'):
            order = options.get(key) or 'ascending'
            if order not in ('ascending', 'descending'):
                raise InvalidOptionsError(f"{key} 只能为 ascending 或 descending，当前值: {order}")
            orders[key] = order

        return {
            'cells': [key for key in CELL_LABELS if key in cells],
            'statistics': list(statistics),
            'row_order': orders['rowOrder'],
            'col_order': orders['colOrder'],
        }

    def _paired_cases(self, request: CrosstabsRequest) -> Tuple[List[Any], List[Any], List[float], float, float]:
        row_values, col_values, weights = [], [], []
        valid_weight = 0.0
        missing_weight = 0.0
        for index, (row_cell, col_cell) in enumerate(zip(request.row_cells, request.col_cells)):
            weight = parse_weight(request.weights[index]) if request.weights is not None else 1.0
            if weight is None:
                continue
            if row_cell.is_valid and col_cell.is_valid:
                row_values.append(row_cell.value)
                col_values.append(col_cell.value)
                weights.append(weight)
                valid_weight += weight
            else:
                missing_weight += weight
        return row_values, col_values, weights, valid_weight, missing_weight

    def calculate(self, request: CrosstabsRequest) -> Dict[str, Any]:
        settings = self._read_options(request.options or {})
        row_var, col_var = request.row_variable, request.col_variable

        row_values, col_values, weights, valid_weight, missing_weight = self._paired_cases(request)
        table = build_contingency(row_values, col_values, weights,
                                  settings['row_order'], settings['col_order'])

        pearson = pearson_chi_square(table)
        chi_square = {
            'pearson': pearson,
            'continuityCorrection': continuity_correction(table),
            'likelihoodRatio': likelihood_ratio(table),
            'linearByLinear': None,
        }
        measures = association_measures(table, pearson)
        r = measures['correlations']['pearson']
        if r is not None and not table.is_degenerate:
            value = (table.W - 1) * r * r
            chi_square['linearByLinear'] = {'value': value, 'df': 1,
                                            'sig': self.formulas.chi_square_sig(value, 1)}
        small_expected = self._small_expected(table)

        if table.W <= 0:
            logger.warning(f"交叉表 [{request.key}] 没有有效个案")
        logger.debug(f"交叉表 [{request.key}] {table.R}x{table.C}, 有效权重 {table.W}")

        tables = [
            self._case_processing_table(request, valid_weight, missing_weight),
            self._crosstab_table(row_var, col_var, table, settings['cells']),
        ]
        requested = settings['statistics']
        if 'chisq' in requested:
            tables.append(self._chi_square_table(table, chi_square, small_expected))
        symmetric = self._symmetric_table(table, requested, measures, pearson)
        if symmetric is not None:
            tables.append(symmetric)
        directional = self._directional_table(row_var, col_var, requested, measures)
        if directional is not None:
            tables.append(directional)

        statistics = {
            'rowCategories': [row_var.format_location(value) for value in table.row_categories],
            'colCategories': [col_var.format_location(value) for value in table.col_categories],
            'counts': table.counts,
            'expected': table.expected,
            'rowTotals': table.row_totals,
            'colTotals': table.col_totals,
            'total': table.W,
            'chiSquare': chi_square,
            'expectedLessThan5': small_expected,
        }
        statistics.update(measures)

        return result_bundle(
            tables,
            summary={
                'valid': valid_weight,
                'missing': missing_weight,
                'total': valid_weight + missing_weight,
                'rows': table.R,
                'cols': table.C,
                'noValidCases': table.W <= 0,
            },
            statistics=statistics
        )

    @staticmethod
    def _small_expected(table: ContingencyTable) -> Dict[str, Any]:
        cells = table.R * table.C
        if table.W <= 0 or cells == 0:
            return {'count': 0, 'percent': 0.0, 'minimum': None}
        expected = table.expected
        count = int(np.sum(expected < config.MIN_EXPECTED_COUNT))
        return {'count': count, 'percent': count / cells * 100, 'minimum': float(expected.min())}

    def _case_processing_table(self, request: CrosstabsRequest, valid: float, missing: float) -> PivotTable:
        table = PivotTable(
            title='Case Processing Summary',
            column_headers=['Valid N', 'Valid Percent', 'Missing N', 'Missing Percent', 'Total N', 'Total Percent']
        )
        total = valid + missing

        def percent(weight: float) -> Optional[float]:
            return weight / total * 100 if total > 0 else None

        header = f"{request.row_variable.display_name} * {request.col_variable.display_name}"
        table.add_cells([header], {
            'Valid N': valid,
            'Valid Percent': percent(valid),
            'Missing N': missing,
            'Missing Percent': percent(missing),
            'Total N': total,
            'Total Percent': 100.0 if total > 0 else None,
        })
        return table

    def _crosstab_table(self, row_var: Variable, col_var: Variable,
                        table: ContingencyTable, cells: List[str]) -> PivotTable:
        col_headers = _category_headers(col_var, table.col_categories)
        pivot = PivotTable(
            title=f"{row_var.display_name} * {col_var.display_name} Crosstabulation",
            column_headers=col_headers + ['Total']
        )
        labels = {
            key: CELL_LABELS[key].format(row=row_var.display_name, col=col_var.display_name)
            for key in cells
        }
        W = table.W
        expected = table.expected
        counts = table.counts

        def share(value: float, denominator: float) -> float:
            return value / denominator * 100 if denominator > 0 else 0.0

        for i, row_header in enumerate(_category_headers(row_var, table.row_categories)):
            r_i = table.row_totals[i]
            for key in cells:
                values = {}
                for j, header in enumerate(col_headers):
                    values[header] = self._cell_value(key, counts[i, j], expected[i, j],
                                                      r_i, table.col_totals[j], W)
                values['Total'] = {
                    'count': r_i, 'expected': r_i, 'row': share(r_i, r_i),
                    'column': share(r_i, W), 'total': share(r_i, W),
                }.get(key)
                pivot.add_cells([row_header, labels[key]], values)

        for key in cells:
            values = {}
            for j, header in enumerate(col_headers):
                c_j = table.col_totals[j]
                values[header] = {
                    'count': c_j, 'expected': c_j, 'row': share(c_j, W),
                    'column': share(c_j, c_j), 'total': share(c_j, W),
                }.get(key)
            values['Total'] = {
                'count': W, 'expected': W, 'row': share(W, W), 'column': share(W, W), 'total': share(W, W),
            }.get(key)
            pivot.add_cells(['Total', labels[key]], values)

        if W <= 0:
            pivot.add_footnote(NO_VALID_CASES_FOOTNOTE)
        return pivot

    @staticmethod
    def _cell_value(key: str, observed: float, expected: float, row_total: float,
                    col_total: float, W: float) -> Optional[float]:
        if key == 'count':
            return observed
        if key == 'expected':
            return expected
        if key == 'row':
            return observed / row_total * 100 if row_total > 0 else 0.0
        if key == 'column':
            return observed / col_total * 100 if col_total > 0 else 0.0
        if key == 'total':
            return observed / W * 100 if W > 0 else 0.0
        if key == 'residual':
            return observed - expected if W > 0 else None
        if expected <= 0:
            return None
        if key == 'sresid':
            return (observed - expected) / math.sqrt(expected)
        # asresid
        denominator = math.sqrt(expected * (1 - row_total / W) * (1 - col_total / W))
        return (observed - expected) / denominator if denominator > 0 else None

    def _chi_square_table(self, table: ContingencyTable, chi_square: Dict[str, Any],
                          small_expected: Dict[str, Any]) -> PivotTable:
        sig_header = 'Asymptotic Significance (2-sided)'
        pivot = PivotTable(title='Chi-Square Tests', column_headers=['Value', 'df', sig_header])
        rows = [('Pearson Chi-Square', 'pearson')]
        if (table.R, table.C) == (2, 2):
            rows.append(('Continuity Correction', 'continuityCorrection'))
        rows.extend([('Likelihood Ratio', 'likelihoodRatio'), ('Linear-by-Linear Association', 'linearByLinear')])

        for label, key in rows:
            result = chi_square.get(key) or {}
            pivot.add_cells([label], {
                'Value': result.get('value'),
                'df': result.get('df'),
                sig_header: result.get('sig'),
            })
        pivot.add_cells(['N of Valid Cases'], {'Value': table.W})

        if table.W > 0 and table.R * table.C > 0:
            pivot.add_footnote(
                f"{small_expected['count']} cells ({small_expected['percent']:.1f}%) have expected count "
                f"less than {config.MIN_EXPECTED_COUNT:g}. "
                f"The minimum expected count is {small_expected['minimum']:.2f}."
            )
        if (table.R, table.C) == (2, 2):
            pivot.add_footnote('Computed only for a 2x2 table')
        return pivot

    def _symmetric_table(self, table: ContingencyTable, requested: List[str],
                         measures: Dict[str, Any], pearson: Optional[Dict[str, float]]) -> Optional[PivotTable]:
        sig = pearson['sig'] if pearson else None
        correlations = measures['correlations']
        candidates = [
            ('phi', ['Nominal by Nominal', 'Phi'], measures['phi'], sig),
            ('phi', ['Nominal by Nominal', "Cramer's V"], measures['cramersV'], sig),
            ('cc', ['Nominal by Nominal', 'Contingency Coefficient'], measures['contingencyCoefficient'], sig),
            ('btau', ['Ordinal by Ordinal', "Kendall's tau-b"], measures['tauB'], None),
            ('ctau', ['Ordinal by Ordinal', "Kendall's tau-c"], measures['tauC'], None),
            ('gamma', ['Ordinal by Ordinal', 'Gamma'], measures['gamma'], None),
            ('corr', ['Ordinal by Ordinal', 'Spearman Correlation'],
             correlations['spearman'], correlations['spearmanSig']),
            ('corr', ['Interval by Interval', "Pearson's R"],
             correlations['pearson'], correlations['pearsonSig']),
            ('kappa', ['Measure of Agreement', 'Kappa'], measures['kappa'], None),
        ]
        rows = [row for row in candidates if row[0] in requested]
        if not rows:
            return None

        pivot = PivotTable(title='Symmetric Measures', column_headers=['Value', 'Approximate Significance'])
        for _, header, value, significance in rows:
            pivot.add_cells(header, {'Value': value, 'Approximate Significance': significance})
        pivot.add_cells(['N of Valid Cases'], {'Value': table.W})
        if 'kappa' in requested and measures['kappa'] is None:
            pivot.add_footnote('Kappa statistics are computed only for square tables with identical row and column values.')
        return pivot

    def _directional_table(self, row_var: Variable, col_var: Variable, requested: List[str],
                           measures: Dict[str, Any]) -> Optional[PivotTable]:
        row_dependent = f"{row_var.display_name} Dependent"
        col_dependent = f"{col_var.display_name} Dependent"
        rows = []
        if 'lambda' in requested:
            lam = measures['lambda']
            tau = measures['goodmanKruskalTau']
            rows.extend([
                (['Nominal by Nominal', 'Lambda', 'Symmetric'], lam['symmetric']),
                (['Nominal by Nominal', 'Lambda', row_dependent], lam['rowDependent']),
                (['Nominal by Nominal', 'Lambda', col_dependent], lam['colDependent']),
                (['Nominal by Nominal', 'Goodman and Kruskal tau', row_dependent], tau['rowDependent']),
                (['Nominal by Nominal', 'Goodman and Kruskal tau', col_dependent], tau['colDependent']),
            ])
        if 'd' in requested:
            somers = measures['somersD']
            rows.extend([
                (['Ordinal by Ordinal', "Somers' d", 'Symmetric'], somers['symmetric']),
                (['Ordinal by Ordinal', "Somers' d", row_dependent], somers['rowDependent']),
                (['Ordinal by Ordinal', "Somers' d", col_dependent], somers['colDependent']),
            ])
        if not rows:
            return None

        pivot = PivotTable(title='Directional Measures', column_headers=['Value'])
        for header, value in rows:
            pivot.add_cells(header, {'Value': value})
        return pivot

    def validate_input(self, request: CrosstabsRequest) -> Dict[str, Any]:
        validation_result = new_validation_result()
        check_aligned(validation_result, request.data_size,
                      col=request.col_data, weights=request.weights)
        if request.data_size == 0:
            validation_result['warnings'].append("数据集为空")
        validation_result['stats']['total_records'] = request.data_size
        return validation_result

    def get_algorithm_info(self) -> Dict[str, str]:
        return {
            'name': 'Crosstabs',
            'version': '1.0',
            'description': '交叉表、卡方检验与关联度量',
            'exclusion': 'listwise (pairwise 等同 listwise)',
            'concordance': 'P/Q 双向计数',
            'chi_square_sig': 'scipy.stats.chi2.sf',
            'statistics': ', '.join(STATISTIC_KEYS)
        }


def _category_header(variable: Variable, value: Any) -> str:
    label = variable.format_value(value)
    if isinstance(label, float):
        return label_key(label)
    return str(label)


def _category_headers(variable: Variable, values: List[Any]) -> List[str]:
    """类别表头，标签重复或与 Total 重名时附加原始值"""
    headers = [_category_header(variable, value) for value in values]
    repeated = Counter(headers)
    return [
        f"{header} ({label_key(value)})" if repeated[header] > 1 or header == 'Total' else header
        for header, value in zip(headers, values)
    ]
