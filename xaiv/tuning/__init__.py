"""
Automated model selection.

Includes:
- automl: Optuna search over learner families with time / model budgets
"""

from .automl import AutoMLResult, AutoMLSelector, automl

__all__ = ["AutoMLResult", "AutoMLSelector", "automl"]
