# -*- coding: utf-8 -*-
"""
LendPulse - Analytics modules
"""

from lendpulse.modules.periods import PeriodGenerator, PeriodBucket, Granularity
from lendpulse.modules.delinquency import DelinquencyClassifier, Classification, DelinquencyRecord
from lendpulse.modules.aggregation import DimensionAggregator, DimensionAccumulator, DimensionKey
from lendpulse.modules.metrics import MetricDeriver, DimensionMetrics
from lendpulse.modules.ranking import Ranker

__all__ = [
    'PeriodGenerator', 'PeriodBucket', 'Granularity',
    'DelinquencyClassifier', 'Classification', 'DelinquencyRecord',
    'DimensionAggregator', 'DimensionAccumulator', 'DimensionKey',
    'MetricDeriver', 'DimensionMetrics',
    'Ranker',
]
