"""SupportDesk — storefront admin backend with realtime chat support.

Local accounts, role-based admin management of users, and a live
support chat between customers and the shop admin over Socket.IO.
"""

__version__ = "0.1.0"
