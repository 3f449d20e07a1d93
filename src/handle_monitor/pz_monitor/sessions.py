"""Per-thread requests sessions for clients shared by verifier threads."""

from __future__ import annotations

import threading

import requests


class ThreadLocalSession:
    """Hands each thread its own `requests.Session` unless one is injected."""

    def __init__(self, session: requests.Session | None = None) -> None:
        self._injected = session
        self._local = threading.local()

    def current(self) -> requests.Session:
        if self._injected is not None:
            return self._injected
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session
