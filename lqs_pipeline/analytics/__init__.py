"""Client side aggregation of households into funnel, ROI and producer metrics."""

from .funnel import FunnelSummary, TimeToClose, funnel_summary, time_to_close
from .objections import ObjectionAnalysis, objection_analysis
from .producers import CrossTab, ProducerBreakdown, producer_breakdown, producer_lead_source_crosstab
from .roi import BucketRoiRow, LeadSourceRoiRow, bucket_roi, lead_source_roi, roi_dataframe
from .trend import BucketTrend, performance_trend

__all__ = [
    "BucketRoiRow",
    "BucketTrend",
    "CrossTab",
    "FunnelSummary",
    "LeadSourceRoiRow",
    "ObjectionAnalysis",
    "ProducerBreakdown",
    "TimeToClose",
    "bucket_roi",
    "funnel_summary",
    "lead_source_roi",
    "objection_analysis",
    "performance_trend",
    "producer_breakdown",
    "producer_lead_source_crosstab",
    "roi_dataframe",
    "time_to_close",
]
