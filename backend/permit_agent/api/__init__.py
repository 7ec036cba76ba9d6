"""
Permit agent subsystems and HTTP endpoints
"""
