# 计算引擎配置
import os
import multiprocessing as mp

# 执行模式: process 为独立进程执行，inline 为当前进程内执行
EXECUTION_MODE = os.getenv("STAT_ENGINE_EXECUTION_MODE", "process")
MAX_WORKERS = int(os.getenv("STAT_ENGINE_MAX_WORKERS", mp.cpu_count()))
TASK_TIMEOUT = float(os.getenv("STAT_ENGINE_TASK_TIMEOUT", "300"))

# 性能告警阈值(秒)
SLOW_CALCULATION_SECONDS = float(os.getenv("STAT_ENGINE_SLOW_CALCULATION_SECONDS", "5.0"))

LOG_LEVEL = os.getenv("STAT_ENGINE_LOG_LEVEL", "INFO")

# 统计默认参数
DEFAULT_PERCENTILES = [5, 10, 25, 50, 75, 90, 95]
DEFAULT_EXTREME_COUNT = 5
DEFAULT_TRIM_PERCENT = 5.0
DEFAULT_CONFIDENCE_LEVEL = 95.0
DEFAULT_DESCRIPTIVE_STATISTICS = ['mean', 'sd', 'min', 'max']

# 期望频数小于该值的单元格会在卡方检验脚注中报告
MIN_EXPECTED_COUNT = 5.0
