"""Session state shared by every request of one client.

The only mutable state the client carries is the cookie, the active term, a
best-effort validity flag and the request counter used for self-throttling.
Two handles expose it behind one interface:

* LocalSession - plain attributes, for a client owned by a single task.
* SharedSession - credential and term behind a reader-writer lock, counter
  outside of it, for a client shared by many tasks or threads.

Neither handle hands out a lock or a read guard. Readers get an immutable
SessionState snapshot, so no call path can hold a read lock and then ask for
the write lock, and no lock is ever held while a request is in flight.
"""

import itertools
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import NamedTuple, Protocol, runtime_checkable

from webreg.logging import get_logger

logger = get_logger(__name__)


class SessionState(NamedTuple):
    """Immutable snapshot of the session.

    ``valid`` is None until a response has told us either way.
    """

    credential: str
    term: str
    valid: bool | None = None

    def __repr__(self) -> str:
        # The cookie is a bearer token; keep it out of logs and tracebacks.
        return f"SessionState(credential='***', term={self.term!r}, valid={self.valid})"


@runtime_checkable
class SessionHandle(Protocol):
    """Access to session state, independent of the concurrency variant."""

    def snapshot(self) -> SessionState: ...

    def update(self, credential: str | None = None, term: str | None = None) -> None: ...

    def mark_valid(self, valid: bool) -> None: ...

    def next_request_number(self) -> int: ...


def _log_update(credential: str | None, term: str | None) -> None:
    logger.info(
        "session_updated",
        credential_changed=credential is not None,
        term=term,
    )


class LocalSession:
    """Session state owned by a single task. No synchronization at all."""

    def __init__(self, credential: str, term: str) -> None:
        self._state = SessionState(credential, term.upper())
        self._requests = 0

    def snapshot(self) -> SessionState:
        return self._state

    def update(self, credential: str | None = None, term: str | None = None) -> None:
        """Replace the credential and/or term.

        A new credential or term resets the validity flag: the old answer
        said nothing about the new cookie.
        """
        if credential is None and term is None:
            return
        self._state = SessionState(
            credential if credential is not None else self._state.credential,
            term.upper() if term is not None else self._state.term,
        )
        _log_update(credential, term)

    def mark_valid(self, valid: bool) -> None:
        self._state = self._state._replace(valid=valid)

    def next_request_number(self) -> int:
        self._requests += 1
        return self._requests


class ReadWriteLock:
    """Many concurrent readers or one writer.

    Writer-preferring: once a writer is waiting, new readers queue behind it,
    so a steady stream of reads cannot starve a credential refresh. Not
    reentrant.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SharedSession:
    """Session state shared across tasks and threads.

    Credential, term and validity live behind a ReadWriteLock; every lock
    section only copies or swaps one small tuple. The request counter is an
    ``itertools.count``, whose ``next()`` is atomic under the GIL, so counting
    never contends with credential reads.
    """

    def __init__(self, credential: str, term: str) -> None:
        self._lock = ReadWriteLock()
        self._state = SessionState(credential, term.upper())
        self._counter = itertools.count(1)

    def snapshot(self) -> SessionState:
        with self._lock.read():
            return self._state

    def update(self, credential: str | None = None, term: str | None = None) -> None:
        if credential is None and term is None:
            return
        with self._lock.write():
            self._state = SessionState(
                credential if credential is not None else self._state.credential,
                term.upper() if term is not None else self._state.term,
            )
        _log_update(credential, term)

    def mark_valid(self, valid: bool) -> None:
        with self._lock.write():
            self._state = self._state._replace(valid=valid)

    def next_request_number(self) -> int:
        return next(self._counter)
