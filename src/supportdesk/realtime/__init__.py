"""Real-time support chat over Socket.IO.

- registry: which account is online on which connection
- relay: presence broadcasts, message routing, read/typing signals
- socketio: the AsyncServer and its event handlers (thin wrappers)

The relay is the only component that emits; the REST routes reach it
through the get_relay dependency so HTTP-sent messages are delivered live.
"""
