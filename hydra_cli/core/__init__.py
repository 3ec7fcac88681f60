"""
Core infrastructure: configuration, logging, exceptions and utilities.
"""
