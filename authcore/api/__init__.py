"""
FastAPI adapter: request dependencies and HTTP error mapping.
"""
