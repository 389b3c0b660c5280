"""
Monitoring package.
"""

from fundrouter.monitoring.metrics import EngineMetrics

__all__ = ["EngineMetrics"]
