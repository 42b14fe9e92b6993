"""
Reporting module for blobnn.

Per-ROI intensity statistics and the ledger row formats they are written in.
"""

from .stats import (
    DetectionRecord,
    StatRecord,
    STAT_FEATURES,
    RAW_LEDGER_COLUMNS,
    STATS_LEDGER_COLUMNS,
    masked_mean,
    measure_foreground,
    stats_preconditions_hold,
    compute_stat_record,
    compute_records,
)

__all__ = [
    'DetectionRecord',
    'StatRecord',
    'STAT_FEATURES',
    'RAW_LEDGER_COLUMNS',
    'STATS_LEDGER_COLUMNS',
    'masked_mean',
    'measure_foreground',
    'stats_preconditions_hold',
    'compute_stat_record',
    'compute_records',
]
