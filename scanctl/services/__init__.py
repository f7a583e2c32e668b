"""
AI analysis service clients.
"""

from .gemini import GeminiAnalysisService

__all__ = ['GeminiAnalysisService']
