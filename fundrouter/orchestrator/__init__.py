"""
Orchestrator package.
"""

from fundrouter.orchestrator.failover_orchestrator import FailoverOrchestrator, FailoverConfig, MatchResult

__all__ = ["FailoverOrchestrator", "FailoverConfig", "MatchResult"]
