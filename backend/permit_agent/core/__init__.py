"""
Core settings, exceptions and logging
"""
