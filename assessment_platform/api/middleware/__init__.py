"""
ASGI middleware.
"""
