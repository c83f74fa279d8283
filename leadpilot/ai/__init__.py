"""Message classification and AI copy helpers."""

from .client import (
    ANALYSIS_TASK,
    AIClientError,
    AnalysisClient,
    Classifier,
    CopyWriter,
    HttpAIClient,
    KeywordClassifier,
)
from .schemas import AnalysisResult

__all__ = [
    "ANALYSIS_TASK",
    "AIClientError",
    "AnalysisClient",
    "AnalysisResult",
    "Classifier",
    "CopyWriter",
    "HttpAIClient",
    "KeywordClassifier",
]
