"""Real-time core: socket sessions, room membership, typing state and fan-out.

All state here is owned by one SessionManager instance and confined to the
event loop that serves the sockets; nothing is a module-level singleton.
"""
