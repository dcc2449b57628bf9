"""Persistence store module.

Durable storage for users, rooms, messages, favorites and file metadata,
kept in an embedded DuckDB database.

Services:
    - ChatStore: synchronous DuckDB store with an async ``call`` bridge.
"""
