from mica_checker.services.scoring.aggregator import ScoringAggregator

__all__ = ["ScoringAggregator"]
