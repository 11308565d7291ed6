"""Persistence: PostgreSQL repositories and the Redis cache."""
