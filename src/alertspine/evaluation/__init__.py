"""Sliding-window rule evaluation."""

from alertspine.evaluation.evaluator import RuleEvaluator
from alertspine.evaluation.window import SlidingWindow

__all__ = ["RuleEvaluator", "SlidingWindow"]
