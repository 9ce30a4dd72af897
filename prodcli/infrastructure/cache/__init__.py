"""Caching Service Implementations.

Provides the file-based TTL response cache (``queries/``) and the
diskcache-backed resolver answer cache (``resolve/``) under one cache root.
Bounded Context: Cache Management
"""
