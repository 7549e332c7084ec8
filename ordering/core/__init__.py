"""
Core package for shared utilities.

Configuration (pydantic-settings) and structured logging (structlog) used by
every other part of the orders service.
"""
