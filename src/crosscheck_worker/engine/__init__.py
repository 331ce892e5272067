"""Similarity engine adapters and result decoding."""

from crosscheck_worker.engine.base import AnalysisEngine
from crosscheck_worker.engine.decoder import ResultDecoder
from crosscheck_worker.engine.jplag import JplagEngine

__all__ = [
    "AnalysisEngine",
    "JplagEngine",
    "ResultDecoder",
]
