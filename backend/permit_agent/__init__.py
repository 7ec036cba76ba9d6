"""
Permit Agent - resilient permit data acquisition pipeline
"""

__version__ = "1.0.0"
