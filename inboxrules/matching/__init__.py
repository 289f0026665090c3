"""Rule matching for inboxrules."""

from .ai import AIRuleChooser
from .context import EvaluationContext
from .engine import MatchingEngine, RuleChooser, ScanResult, find_matching_rule
from .evaluator import RuleEvaluator, RuleOutcome, RuleStatus

__all__ = [
    "AIRuleChooser",
    "EvaluationContext",
    "MatchingEngine",
    "RuleChooser",
    "RuleEvaluator",
    "RuleOutcome",
    "RuleStatus",
    "ScanResult",
    "find_matching_rule",
]
