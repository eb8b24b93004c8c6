"""LLM-driven compliance analysis."""

from mica_checker.services.analysis.orchestrator import AnalysisOrchestrator

__all__ = ["AnalysisOrchestrator"]
