"""
Shared utilities: configuration, logging and input validation
"""
