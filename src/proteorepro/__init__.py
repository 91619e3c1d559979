"""
proteorepro - Normalization and replicate reproducibility for quantitative proteomics

Turns a feature × sample log-ratio matrix into a normalized matrix and a
filtered matrix in which measurements that disagree with their replicate
group are masked, ready for downstream differential testing.
"""

__version__ = "0.1.0"

from proteorepro.core.errors import Failure, ProcessingError
from proteorepro.core.groups import GroupAssignment
from proteorepro.core.matrix import ExpressionMatrix
from proteorepro.core.quality import QualityFlag
from proteorepro.core.transform import Transform
from proteorepro.config import PipelineConfig, load_config
from proteorepro.pipeline import AnalysisPipeline, PipelineResult

__all__ = [
    "ExpressionMatrix",
    "GroupAssignment",
    "QualityFlag",
    "Transform",
    "Failure",
    "ProcessingError",
    "PipelineConfig",
    "load_config",
    "AnalysisPipeline",
    "PipelineResult",
]
