"""Chat room module.

Rooms are created explicitly and never mutated by the real-time core; every
message references one.
"""
