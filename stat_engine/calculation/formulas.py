# 统计公式工具层
"""
无状态的加权统计函数。

约定：
- 所有矩统计量与标准误的有效样本量取加权个案数 W = Σw；未加权数据 W 即有效个案数。
- 无法计算的统计量返回 None(不抛异常)，由输出表格渲染为空白单元格。
"""
import math
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
from scipy import stats as scipy_stats

from .exceptions import InvalidOptionsError
from .models import Cell, CellKind, parse_weight

logger = logging.getLogger(__name__)

PERCENTILE_METHODS = ('haverage', 'waverage', 'empirical', 'tukey_hinges')

# M估计量常数
HUBER_K = 1.339
TUKEY_C = 4.685
HAMPEL_A, HAMPEL_B, HAMPEL_C = 1.7, 3.4, 8.5
ANDREWS_A = 1.339
MAD_NORMAL_CONSISTENCY = 0.6745


def is_valid_number(value: Any) -> bool:
    """有限数值(布尔值不算)"""
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        return False
    return math.isfinite(float(value))


@dataclass
class ValidData:
    """单列有效数据(逐列删除)"""
    values: np.ndarray
    weights: np.ndarray
    positions: np.ndarray
    total_weight: float
    missing_weight: float
    system_missing_weight: float
    user_missing: Dict[Any, float]
    missing_count: int

    @property
    def valid_weight(self) -> float:
        return float(self.weights.sum()) if len(self.weights) else 0.0

    @property
    def valid_count(self) -> int:
        return int(len(self.values))


def get_valid_data(cells: Sequence[Cell], weights: Optional[Sequence[Any]] = None,
                   numeric: bool = True) -> ValidData:
    """筛选有效个案，返回有效值与对应权重

    权重无效(缺失、非有限或<=0)的个案既不计入有效也不计入缺失。
    """
    values: List[Any] = []
    valid_weights: List[float] = []
    positions: List[int] = []
    total_weight = 0.0
    system_missing_weight = 0.0
    user_missing: Dict[Any, float] = {}
    missing_count = 0

    for index, cell in enumerate(cells):
        weight = parse_weight(weights[index]) if weights is not None else 1.0
        if weight is None:
            continue
        total_weight += weight

        usable = cell.kind is CellKind.NUMBER if numeric else cell.kind is not CellKind.MISSING
        if usable:
            values.append(cell.value)
            valid_weights.append(weight)
            positions.append(index)
            continue

        missing_count += 1
        if cell.user_missing:
            user_missing[cell.value] = user_missing.get(cell.value, 0.0) + weight
        else:
            system_missing_weight += weight

    dtype = float if numeric else object
    return ValidData(
        values=np.asarray(values, dtype=dtype),
        weights=np.asarray(valid_weights, dtype=float),
        positions=np.asarray(positions, dtype=int),
        total_weight=total_weight,
        missing_weight=total_weight - float(sum(valid_weights)),
        system_missing_weight=system_missing_weight,
        user_missing=user_missing,
        missing_count=missing_count
    )


def _as_arrays(values, weights=None):
    x = np.asarray(values, dtype=float)
    w = np.ones_like(x) if weights is None else np.asarray(weights, dtype=float)
    if x.shape != w.shape:
        raise ValueError(f"数值与权重长度不一致: {x.shape} != {w.shape}")
    return x, w


@dataclass
class WeightedMoments:
    """加权矩(两遍算法：先求均值，再求中心矩和)"""
    W: float
    N: int
    sum: float
    M1: Optional[float]
    M2: float
    M3: float
    M4: float
    W2: float
    min: Optional[float]
    max: Optional[float]


def compute_moments(values, weights=None) -> WeightedMoments:
    x, w = _as_arrays(values, weights)
    total_weight = float(w.sum()) if len(w) else 0.0
    if len(x) == 0 or total_weight <= 0:
        return WeightedMoments(W=total_weight, N=int(len(x)), sum=0.0, M1=None,
                               M2=0.0, M3=0.0, M4=0.0, W2=0.0, min=None, max=None)

    weighted_sum = float(np.sum(w * x))
    mean = weighted_sum / total_weight
    delta = x - mean
    delta2 = delta * delta
    return WeightedMoments(
        W=total_weight,
        N=int(len(x)),
        sum=weighted_sum,
        M1=mean,
        M2=float(np.sum(w * delta2)),
        M3=float(np.sum(w * delta2 * delta)),
        M4=float(np.sum(w * delta2 * delta2)),
        W2=float(np.sum(w * w)),
        min=float(x.min()),
        max=float(x.max())
    )


def weighted_mean(values, weights=None) -> Optional[float]:
    """Σ(w·x)/Σw，Σw为0时返回None"""
    return compute_moments(values, weights).M1


def variance_from_moments(moments: WeightedMoments) -> Optional[float]:
    # 样本方差，分母 W-1，要求 W>1
    if moments.M1 is None or moments.W <= 1:
        return None
    return moments.M2 / (moments.W - 1)


def weighted_variance(values, weights=None) -> Optional[float]:
    return variance_from_moments(compute_moments(values, weights))


def weighted_std(values, weights=None) -> Optional[float]:
    variance = weighted_variance(values, weights)
    return math.sqrt(variance) if variance is not None else None


def skewness_from_moments(moments: WeightedMoments) -> Optional[float]:
    """G1 = W·M3 / ((W-1)(W-2)·S³)"""
    variance = variance_from_moments(moments)
    W = moments.W
    if variance is None or variance <= 0 or W < 3:
        return None
    sd = math.sqrt(variance)
    denominator = (W - 1) * (W - 2) * sd ** 3
    if denominator == 0:
        return None
    return W * moments.M3 / denominator


def kurtosis_from_moments(moments: WeightedMoments) -> Optional[float]:
    """G2 = (W(W+1)M4 - 3M2²(W-1)) / ((W-1)(W-2)(W-3)·S⁴)"""
    variance = variance_from_moments(moments)
    W = moments.W
    if variance is None or variance <= 0 or W < 4:
        return None
    numerator = W * (W + 1) * moments.M4 - 3 * moments.M2 * moments.M2 * (W - 1)
    denominator = (W - 1) * (W - 2) * (W - 3) * variance * variance
    if denominator == 0:
        return None
    return numerator / denominator


def weighted_skewness(values, weights=None) -> Optional[float]:
    return skewness_from_moments(compute_moments(values, weights))


def weighted_kurtosis(values, weights=None) -> Optional[float]:
    return kurtosis_from_moments(compute_moments(values, weights))


def se_mean(sd: Optional[float], n: float) -> Optional[float]:
    if sd is None or n <= 0:
        return None
    return sd / math.sqrt(n)


def se_skewness(n: float) -> Optional[float]:
    """√(6N(N-1)/((N-2)(N+1)(N+3)))，要求 N>=3"""
    if n < 3:
        return None
    return math.sqrt(6 * n * (n - 1) / ((n - 2) * (n + 1) * (n + 3)))


def se_kurtosis(n: float) -> Optional[float]:
    """2·SE(skew)·√((N²-1)/((N-3)(N+5)))，要求 N>=4"""
    if n < 4:
        return None
    return 2 * se_skewness(n) * math.sqrt((n * n - 1) / ((n - 3) * (n + 5)))


@dataclass
class WeightedDistribution:
    """按值升序排列的加权分布"""
    y: np.ndarray
    c: np.ndarray
    cc: np.ndarray
    W: float

    @property
    def is_empty(self) -> bool:
        return len(self.y) == 0 or self.W <= 0


def weighted_distribution(values, weights=None) -> WeightedDistribution:
    x, w = _as_arrays(values, weights)
    if len(x) == 0:
        empty = np.asarray([], dtype=float)
        return WeightedDistribution(y=empty, c=empty, cc=empty, W=0.0)
    # 稳定排序，保证同一输入得到相同的累积和
    order = np.argsort(x, kind='mergesort')
    unique_values, inverse = np.unique(x[order], return_inverse=True)
    counts = np.zeros(len(unique_values), dtype=float)
    np.add.at(counts, inverse, w[order])
    cumulative = np.cumsum(counts)
    return WeightedDistribution(y=unique_values, c=counts, cc=cumulative, W=float(cumulative[-1]))


def _interpolated_percentile(dist: WeightedDistribution, tc: float) -> float:
    """SPSS 加权平均插值：cc_k <= tc < cc_{k+1}

    tc 恰好落在某个累积权重上时直接取该位置的值(不插值)。
    """
    k = int(np.searchsorted(dist.cc, tc, side='right'))
    if k >= len(dist.y):
        return float(dist.y[-1])
    cc_k = float(dist.cc[k - 1]) if k > 0 else 0.0
    y_k = float(dist.y[k - 1]) if k > 0 else float(dist.y[0])
    y_next = float(dist.y[k])
    c_next = float(dist.c[k])

    g_star = tc - cc_k
    if g_star >= 1:
        return y_next
    if c_next >= 1:
        return (1 - g_star) * y_k + g_star * y_next
    g = g_star / c_next
    return (1 - g) * y_k + g * y_next


def _expanded_counts(dist: WeightedDistribution) -> np.ndarray:
    # 非整数权重四舍五入为整数，至少为1
    return np.cumsum(np.maximum(1.0, np.floor(dist.c + 0.5)))


def _order_statistic(dist: WeightedDistribution, cumulative: np.ndarray, depth: float) -> float:
    """按深度取次序统计量，半整数深度取相邻两值的平均"""
    lower = math.floor(depth)
    upper = math.ceil(depth)
    lower_value = float(dist.y[int(np.searchsorted(cumulative, lower, side='left'))])
    if upper == lower:
        return lower_value
    upper_value = float(dist.y[int(np.searchsorted(cumulative, upper, side='left'))])
    return (lower_value + upper_value) / 2


def tukey_hinges(dist: WeightedDistribution) -> Optional[Dict[str, float]]:
    """Tukey 铰链：返回 Q1、Q2、Q3"""
    if dist.is_empty:
        return None
    cumulative = _expanded_counts(dist)
    n = float(cumulative[-1])
    depth_median = (n + 1) / 2
    depth_hinge = (math.floor(depth_median) + 1) / 2
    return {
        'Q1': _order_statistic(dist, cumulative, depth_hinge),
        'Q2': _order_statistic(dist, cumulative, depth_median),
        'Q3': _order_statistic(dist, cumulative, n + 1 - depth_hinge),
    }


def weighted_percentile(dist: WeightedDistribution, p: float, method: str = 'haverage') -> Optional[float]:
    """计算第 p 百分位数

    haverage: 位置 (W+1)p/100 (SPSS 默认)
    waverage: 位置 Wp/100 (SPSS 定义1)
    empirical: 加权经验分布函数，不插值
    tukey_hinges: 仅支持 25/50/75，其他百分位回退到 haverage
    """
    if method not in PERCENTILE_METHODS:
        raise InvalidOptionsError(f"未知的百分位数计算方法: {method}")
    if not 0 <= p <= 100:
        raise InvalidOptionsError(f"百分位数必须在0-100之间，当前值: {p}")
    if dist.is_empty:
        return None

    if method == 'haverage':
        return _interpolated_percentile(dist, (dist.W + 1) * p / 100.0)
    if method == 'waverage':
        return _interpolated_percentile(dist, dist.W * p / 100.0)
    if method == 'empirical':
        tc = dist.W * p / 100.0
        k = int(np.searchsorted(dist.cc, tc, side='left'))
        return float(dist.y[min(k, len(dist.y) - 1)])

    hinges = tukey_hinges(dist)
    quartile = {25: 'Q1', 50: 'Q2', 75: 'Q3'}.get(p)
    if quartile is None:
        return weighted_percentile(dist, p, 'haverage')
    return hinges[quartile]


def weighted_median(values, weights=None) -> Optional[float]:
    return weighted_percentile(weighted_distribution(values, weights), 50, 'haverage')


def weighted_modes(values, weights=None) -> List[Any]:
    """加权频数最高的全部取值，数值在前、字符串在后，各自升序

    values 可以是数值或字符串。
    """
    items = values.tolist() if isinstance(values, np.ndarray) else list(values)
    if not items:
        return []
    w = [1.0] * len(items) if weights is None else np.asarray(weights, dtype=float).tolist()
    totals: Dict[Any, float] = {}
    for value, weight in zip(items, w):
        totals[value] = totals.get(value, 0.0) + weight
    top = max(totals.values())
    modes = [value for value, total in totals.items() if math.isclose(total, top, rel_tol=1e-12, abs_tol=0.0)]
    return sorted(modes, key=lambda value: (isinstance(value, str), value))


def trimmed_mean(values, weights=None, trim_percent: float = 5.0) -> Optional[float]:
    """去掉两端各 trim_percent% 加权个案后的均值(边界个案按比例保留权重)"""
    if not 0 <= trim_percent < 50:
        raise InvalidOptionsError(f"截尾比例必须在[0, 50)之间，当前值: {trim_percent}")
    x, w = _as_arrays(values, weights)
    total_weight = float(w.sum()) if len(w) else 0.0
    if len(x) == 0 or total_weight <= 0:
        return None

    order = np.argsort(x, kind='mergesort')
    x = x[order]
    w = w[order].copy()
    trim_weight = trim_percent / 100.0 * total_weight

    remaining = trim_weight
    i = 0
    while remaining > 0 and i < len(w):
        removed = min(w[i], remaining)
        w[i] -= removed
        remaining -= removed
        i += 1

    remaining = trim_weight
    j = len(w) - 1
    while remaining > 0 and j >= 0:
        removed = min(w[j], remaining)
        w[j] -= removed
        remaining -= removed
        j -= 1

    kept_weight = float(w.sum())
    if kept_weight <= 0:
        return None
    return float(np.sum(w * x)) / kept_weight


def _huber_weight(u: np.ndarray) -> np.ndarray:
    abs_u = np.abs(u)
    return np.where(abs_u <= HUBER_K, 1.0, HUBER_K / np.maximum(abs_u, 1e-300))


def _tukey_weight(u: np.ndarray) -> np.ndarray:
    ratio = u / TUKEY_C
    return np.where(np.abs(u) <= TUKEY_C, (1 - ratio * ratio) ** 2, 0.0)


def _hampel_weight(u: np.ndarray) -> np.ndarray:
    abs_u = np.maximum(np.abs(u), 1e-300)
    return np.select(
        [abs_u <= HAMPEL_A, abs_u <= HAMPEL_B, abs_u <= HAMPEL_C],
        [1.0, HAMPEL_A / abs_u, HAMPEL_A * (HAMPEL_C - abs_u) / ((HAMPEL_C - HAMPEL_B) * abs_u)],
        default=0.0
    )


def _andrews_weight(u: np.ndarray) -> np.ndarray:
    # sin(u/a)/(u/a)，|u| > aπ 时为0
    return np.where(np.abs(u) <= ANDREWS_A * math.pi, np.sinc(u / (ANDREWS_A * math.pi)), 0.0)


M_ESTIMATOR_WEIGHTS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    'huber': _huber_weight,
    'tukey': _tukey_weight,
    'hampel': _hampel_weight,
    'andrews': _andrews_weight,
}


def m_estimator(values, weights=None, kind: str = 'huber',
                tolerance: float = 1e-8, max_iterations: int = 50) -> Optional[float]:
    """迭代重加权 M 估计量，尺度取 MAD/0.6745 并保持固定"""
    weight_function = M_ESTIMATOR_WEIGHTS[kind]
    x, w = _as_arrays(values, weights)
    median = weighted_median(x, w)
    if median is None:
        return None
    mad = weighted_median(np.abs(x - median), w)
    if not mad:
        return median

    scale = mad / MAD_NORMAL_CONSISTENCY
    estimate = median
    for _ in range(max_iterations):
        case_weights = w * weight_function((x - estimate) / scale)
        total = float(case_weights.sum())
        if total <= 0:
            break
        updated = float(np.sum(case_weights * x)) / total
        converged = abs(updated - estimate) <= tolerance * scale
        estimate = updated
        if converged:
            break
    return estimate


def m_estimators(values, weights=None) -> Dict[str, Optional[float]]:
    return {kind: m_estimator(values, weights, kind) for kind in M_ESTIMATOR_WEIGHTS}


def t_critical(df: float, confidence_level: float = 95.0) -> Optional[float]:
    if df <= 0:
        return None
    alpha = 1 - confidence_level / 100.0
    return float(scipy_stats.t.ppf(1 - alpha / 2, df))


def chi_square_sig(value: Optional[float], df: float) -> Optional[float]:
    """卡方统计量的渐近双侧显著性"""
    if value is None or df <= 0:
        return None
    return float(scipy_stats.chi2.sf(value, df))
