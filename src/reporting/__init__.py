"""
Performance reporting
"""

from src.reporting.performance import (
    PerformanceMetrics,
    calculate_performance,
    analyze_by_dimension,
    generate_summary_report,
)

__all__ = [
    "PerformanceMetrics",
    "calculate_performance",
    "analyze_by_dimension",
    "generate_summary_report",
]
