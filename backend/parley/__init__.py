"""Parley: real-time chat backend.

Modules:
    - auth: identity tokens and the credential check used at socket connect
    - store: DuckDB persistence for users, rooms, messages, favorites, files
    - rooms: room creation and lookup
    - messages: message lifecycle rules, message service, delivery timers
    - files: blob storage and attachment uploads
    - realtime: room registry, typing tracker, broadcaster, session manager
"""
__version__ = "0.1.0"
