"""
Shared schemas for the monorepo starter.

Consumed by the API server and by frontend type generation.
"""

__version__ = "0.1.0"
