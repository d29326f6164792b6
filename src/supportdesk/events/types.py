"""Event type constants.

Centralizing event types as constants prevents typos and makes every
audited state change discoverable in one place.
"""

# ─── Accounts ────────────────────────────────────────────

USER_REGISTERED = "user.registered"
USER_CREATED = "user.created"
USER_UPDATED = "user.updated"
USER_DELETED = "user.deleted"
USER_ROLE_CHANGED = "user.role_changed"

# ─── Support chat ────────────────────────────────────────

CHAT_MESSAGE_SENT = "chat.message_sent"
CHAT_MESSAGES_READ = "chat.messages_read"
