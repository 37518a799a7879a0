"""
Nuvia real-time collaboration service.
"""

__version__ = "1.0.0"
