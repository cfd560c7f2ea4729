"""
AI market commentary.

Provides:
- MarketAnalyzer: Gemini-backed written analysis for a coin
- Swing and scalp analysis request variants
"""

from src.ai.market_analyzer import (
    AnalysisError,
    MarketAnalyzer,
    ScalpAnalysisRequest,
    SwingAnalysisRequest,
    build_analysis_request,
)

__all__ = [
    "AnalysisError",
    "MarketAnalyzer",
    "ScalpAnalysisRequest",
    "SwingAnalysisRequest",
    "build_analysis_request",
]
