"""Jobs module - reporting run progress and outcome to the job tracker."""

from .tracker import JobRecord, JobTracker, StorageJobTracker

__all__ = ['JobRecord', 'JobTracker', 'StorageJobTracker']
