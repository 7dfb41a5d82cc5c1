"""
Vignette reports.

Includes:
- report: section container and static HTML rendering
- vignette: AutoML and benchmark vignettes, documentation site build
"""

from .report import Section, VignetteReport, write_site_index
from .vignette import AutoMLVignette, BenchmarkVignette, Vignette, build_site, default_vignettes

__all__ = [
    "Section",
    "VignetteReport",
    "write_site_index",
    "AutoMLVignette",
    "BenchmarkVignette",
    "Vignette",
    "build_site",
    "default_vignettes",
]
