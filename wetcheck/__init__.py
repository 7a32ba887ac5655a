"""
Wet Check: irrigation inspection capture, persistence and reporting.
"""

__version__ = "1.0.0"
