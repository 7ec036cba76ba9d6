"""
Extraction Package

HTML content extraction and PDF analysis for permit pages and application forms.
"""

from .content_extractor import ContentExtractor
from .pdf_analyzer import PDFAnalyzer

__all__ = ["ContentExtractor", "PDFAnalyzer"]
