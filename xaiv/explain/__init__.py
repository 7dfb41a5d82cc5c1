"""
Model-agnostic explanation adapters.

Includes:
- explainer: dalex explainer construction and the standard query sequence
"""

from .explainer import ExplanationResults, ExplanationSuite, compare, explain

__all__ = ["ExplanationResults", "ExplanationSuite", "compare", "explain"]
