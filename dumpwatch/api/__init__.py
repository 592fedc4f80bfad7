"""
DumpWatch - HTTP API
"""
