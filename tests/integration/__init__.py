"""Integration tests for the counter service.

Exercises the state store against a live Redis server, including the
fallback to the local file when Redis is unreachable.

Tests marked ``docker`` skip when Redis is not available.
"""
