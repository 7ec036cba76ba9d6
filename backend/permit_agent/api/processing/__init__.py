"""
Processing Package

Turns structured extraction into final permit data, with optional AI
supplementation and a demo fallback.
"""

from .ai_client import AIBackend, OpenAIBackend, build_ai_backend
from .data_processor import PermitDataProcessor, should_supplement
from .demo_data import build_demo_permit_data
from .response_parser import AISupplement, parse_ai_response

__all__ = [
    "AIBackend",
    "OpenAIBackend",
    "build_ai_backend",
    "PermitDataProcessor",
    "should_supplement",
    "build_demo_permit_data",
    "AISupplement",
    "parse_ai_response",
]
