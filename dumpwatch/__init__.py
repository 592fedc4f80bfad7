"""
DumpWatch - Crowd-verified reporting of illegal waste dumps.
"""

__version__ = "0.1.0"
