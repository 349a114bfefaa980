"""
authcore - authentication and access-control core.

Tokens, RBAC resolution and multi-method sign-in for an async
SQLAlchemy / FastAPI backend.
"""

__version__ = "0.1.0"
