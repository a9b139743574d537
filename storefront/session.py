"""
session.py — Explicit Shopping and Admin Sessions

A Session is created on login and torn down on logout. It carries the user's
role and, for shoppers, the cart and the checkout orchestrator of the current
shopping session. SessionStore issues opaque tokens for the API layer.
"""

import logging
import threading
import uuid
from enum import Enum
from typing import Dict, Optional

from .cart import Cart
from .errors import NotAuthenticated, NotAuthorized

log = logging.getLogger(__name__)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Session:
    """
    Login-scoped context passed to the orchestrator and the presentation layer.

    Attributes:
        token (str): Opaque session token.
        username (str): Name the user logged in with.
        role (Role): USER (shopper) or ADMIN.
        cart (Cart | None): The shopper's cart; None for admin sessions.
        checkout: The shopper's CheckoutOrchestrator, attached lazily by the API layer.
    """

    def __init__(self, username: str, role: Role, token: Optional[str] = None):
        self.token = token or uuid.uuid4().hex
        self.username = username
        self.role = role
        self.cart = Cart() if role is Role.USER else None
        self.checkout = None
        self.active = True

    def require(self, role: Role):
        if not self.active:
            raise NotAuthenticated("Session has ended. Please log in again.")
        if self.role is not role:
            raise NotAuthorized(f"This action requires the '{role.value}' role")
        return self

    def close(self):
        """Ends the session and clears the cart."""
        if self.cart is not None:
            self.cart.clear()
        self.checkout = None
        self.active = False


class SessionStore:
    """Thread-safe in-memory registry of live sessions, keyed by token."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def login(self, username: str, role: Role) -> Session:
        session = Session(username, role)
        with self._lock:
            self._sessions[session.token] = session
        log.info(f"[Session: {session.token[:8]}] Login als '{username}' ({role.value}).")
        return session

    def get(self, token: Optional[str]) -> Session:
        if not token:
            raise NotAuthenticated("Missing session token")
        with self._lock:
            session = self._sessions.get(token)
        if session is None:
            raise NotAuthenticated("Invalid or expired session token")
        return session

    def logout(self, token: str):
        with self._lock:
            session = self._sessions.pop(token, None)
        if session is None:
            raise NotAuthenticated("Invalid or expired session token")
        session.close()
        log.info(f"[Session: {token[:8]}] Logout, Warenkorb geleert.")
