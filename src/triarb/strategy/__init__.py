"""Strategy modules: path catalog, depth analysis, evaluation and scanning."""

from triarb.strategy.calculator import CalculatorConfig, EvaluationOptions, OpportunityCalculator
from triarb.strategy.catalog import PathSet, StaticPathCatalog, build_path
from triarb.strategy.depth import analyze_depth
from triarb.strategy.scanner import ScanOrchestrator, ranking_key


__all__ = [
    "CalculatorConfig",
    "EvaluationOptions",
    "OpportunityCalculator",
    "PathSet",
    "ScanOrchestrator",
    "StaticPathCatalog",
    "analyze_depth",
    "build_path",
    "ranking_key",
]
