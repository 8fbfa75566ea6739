"""
Row-by-row refresh path for the small lookup tables.
"""

from .pipeline import TRANSFORM_REGISTRY, LookupRecordPipeline, language_code_from_path

__all__ = ["LookupRecordPipeline", "TRANSFORM_REGISTRY", "language_code_from_path"]
