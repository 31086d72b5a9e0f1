from doclink.analysis.analyzer import Analyzer
from doclink.analysis.base import BaseAnalyzer
from doclink.analysis.factory import AnalyzerFactory

__all__ = ["Analyzer", "AnalyzerFactory", "BaseAnalyzer"]
