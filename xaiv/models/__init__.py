"""
Regression learners for the vignettes.

Includes:
- base_model: Abstract base class and regression metrics
- learners: scikit-learn / LightGBM pipelines and the learner registry
"""

from .base_model import BaseModel, ModelEvaluator
from .learners import (
    LEARNERS,
    LearnerSpec,
    SklearnModel,
    available_learners,
    get_learner_spec,
    make_learner,
)

__all__ = [
    "BaseModel",
    "ModelEvaluator",
    "LEARNERS",
    "LearnerSpec",
    "SklearnModel",
    "available_learners",
    "get_learner_spec",
    "make_learner",
]
