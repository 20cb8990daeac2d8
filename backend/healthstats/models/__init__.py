"""Models module."""

from .health import MetricType, HealthRecord, RawRecord
from .processing import ProcessingPhase, ProcessingStatus, InvocationEvent, InvocationResponse

__all__ = [
    'MetricType', 'HealthRecord', 'RawRecord',
    'ProcessingPhase', 'ProcessingStatus', 'InvocationEvent', 'InvocationResponse'
]
