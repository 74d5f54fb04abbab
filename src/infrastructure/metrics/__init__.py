from .pipeline_metrics import PipelineMetrics

__all__ = ["PipelineMetrics"]
