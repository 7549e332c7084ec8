"""
Database package initialization.

The package follows a modular structure:
- base: declarative base and mixins
- connection: async engine and session factory lifecycle
- models: order store and cart tables
"""

# Import submodules explicitly when needed to avoid circular dependencies

__all__ = []
