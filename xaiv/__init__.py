"""
XAI Vignettes

Narrative reports showing how automated model selection, benchmarking and
model-agnostic explanations fit together on small tabular datasets.
"""

__version__ = "0.1.0"
__author__ = "XAI Vignettes"
