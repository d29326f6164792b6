"""Authentication and authorization.

Local accounts log in with email/password and receive JWT access/refresh
tokens. The access token carries the user id and role, so HTTP routes
resolve an identity without a DB hit; the realtime relay additionally
checks that the account still exists and is active.
"""
