"""Message module: lifecycle rules, orchestration, delayed delivery and HTTP routes.

The state machine lives in ``state``; ``service`` wraps it in store
read-modify-writes; ``delivery`` owns the sent -> delivered timers.
"""
