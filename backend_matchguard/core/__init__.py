"""
Core utilities: shared exceptions and cross-cutting concerns.

Used across validation, commitment store, and API server.
"""
