"""
Parse-run health analysis, trend detection and reporting.
"""

from .health import HealthAnalyzer, HealthMonitor, HealthReport, HealthThresholds, SystemStatus
from .history import HealthHistory
from .report import render_markdown, save_report

__all__ = [
    'HealthAnalyzer',
    'HealthHistory',
    'HealthMonitor',
    'HealthReport',
    'HealthThresholds',
    'SystemStatus',
    'render_markdown',
    'save_report',
]
