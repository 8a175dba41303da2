"""IMAP mailbox session wrapping imapclient with asyncio.to_thread.

One :class:`threading.Lock` serialises every command on the connection, so
the keep-alive task and the supervisor never interleave on the IMAP command
pipeline.  An in-flight IDLE holds the lock.  Whoever needs the connection
while IDLE runs either announces a keep-alive, which IDLE yields to and then
resumes, or asks IDLE to finish through :meth:`MailboxSession.abort_idle`.
"""

from __future__ import annotations

import asyncio
import ssl
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from operator import itemgetter

import structlog
from imapclient import DELETED, SEEN, IMAPClient
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError

from .config import ImapConfig
from .envelope import extract_envelope
from .errors import TransportError
from .models import MailMessage

logger = structlog.get_logger()

# Granularity at which a blocked IDLE notices an abort or a pending keep-alive.
IDLE_TICK_SECONDS = 1.0

_ACTIVITY = frozenset({b"EXISTS", b"RECENT", b"EXPUNGE"})


class MailboxSession:
    """Connection to one IMAP folder, opened read-write."""

    def __init__(self, config: ImapConfig) -> None:
        self._config = config
        self._conn: IMAPClient | None = None
        self._capabilities: frozenset[str] = frozenset()
        self._selected = False
        self._lock = threading.Lock()
        self._handover = threading.Condition(self._lock)
        self._idle_abort = threading.Event()
        self._keepalive_pending = threading.Event()

    @property
    def is_open(self) -> bool:
        """True while the folder is selected on a live connection."""
        return self._conn is not None and self._selected

    @property
    def supports_idle(self) -> bool:
        return "IDLE" in self._capabilities

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the TLS connection and log in."""
        logger.info("imap_connecting", host=self._config.host, port=self._config.port)
        await asyncio.to_thread(self._connect_sync)
        logger.info("imap_connected", host=self._config.host, idle=self.supports_idle)

    def _connect_sync(self) -> None:
        with self._lock:
            try:
                conn = IMAPClient(
                    self._config.host,
                    port=self._config.port,
                    ssl=True,
                    ssl_context=self._ssl_context(),
                    timeout=self._config.timeout_seconds,
                )
            except OSError as exc:
                raise TransportError(f"cannot connect to {self._config.host}: {exc}") from exc
            try:
                conn.login(self._config.username, self._config.password.get_secret_value())
                caps = conn.capabilities()
            except (IMAPClientError, OSError) as exc:
                _logout_quietly(conn)
                raise TransportError(f"login to {self._config.host} failed: {exc}") from exc
            self._conn = conn
            self._selected = False
            self._capabilities = frozenset(
                cap.decode("ascii", errors="replace").upper() if isinstance(cap, bytes) else str(cap).upper()
                for cap in caps
            )

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self._config.verify_tls:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    async def open_inbox(self) -> None:
        """Select the configured folder read-write."""
        await asyncio.to_thread(self._open_inbox_sync)
        logger.info("imap_folder_opened", mailbox=self._config.mailbox)

    def _open_inbox_sync(self) -> None:
        with self._command("SELECT") as conn:
            conn.select_folder(self._config.mailbox, readonly=False)
            self._selected = True

    async def reopen(self) -> None:
        """Drop whatever is left of the connection and open the folder again."""
        logger.info("imap_reopening", mailbox=self._config.mailbox)
        await self.close()
        await self.connect()
        await self.open_inbox()

    async def close(self) -> None:
        """Close the folder and log out; errors on a dead connection are ignored."""
        if self._conn is not None:
            await asyncio.to_thread(self._close_sync)
            logger.info("imap_disconnected")

    def _close_sync(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
            selected, self._selected = self._selected, False
            if conn is None:
                return
            if selected:
                try:
                    conn.close_folder()
                except (IMAPClientError, OSError):
                    pass
            _logout_quietly(conn)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def fetch_unseen(self) -> list[MailMessage]:
        """All messages without ``\\Seen``, newest sent-date first.

        Bodies are fetched with ``BODY.PEEK[]`` so reading does not mark them
        seen; :meth:`mark_seen` does that once a message has been handled.
        Raises :class:`TransportError` if any message lacks a readable date.
        """
        fetched = await asyncio.to_thread(self._fetch_unseen_sync)

        dates: list[datetime] = []
        messages: list[MailMessage] = []
        for uid, raw in fetched:
            envelope = extract_envelope(raw)
            if envelope.sent_date is None:
                raise TransportError(f"message uid={uid} has no readable sent-date")
            dates.append(envelope.sent_date)
            messages.append(
                MailMessage(uid=uid, subject=envelope.subject, sent_date=envelope.sent_date, raw=raw)
            )

        ordered = sorted(zip(dates, messages), key=itemgetter(0), reverse=True)
        logger.info("imap_unseen_fetched", count=len(ordered))
        return [message for _, message in ordered]

    def _fetch_unseen_sync(self) -> list[tuple[str, bytes]]:
        with self._command("SEARCH") as conn:
            uids = conn.search(["UNSEEN"])
            if not uids:
                return []
            response = conn.fetch(uids, ["BODY.PEEK[]"])

            results: list[tuple[str, bytes]] = []
            for uid in uids:
                raw = response.get(uid, {}).get(b"BODY[]")
                if raw is None:
                    # expunged by another client since the search
                    logger.warning("imap_fetch_empty", uid=uid)
                    continue
                results.append((str(uid), raw))
            return results

    async def mark_seen(self, message: MailMessage) -> None:
        await asyncio.to_thread(self._store_sync, message.uid, SEEN)

    async def mark_deleted(self, message: MailMessage) -> None:
        await asyncio.to_thread(self._store_sync, message.uid, DELETED)
        message.deleted = True
        logger.debug("imap_flagged_deleted", uid=message.uid)

    def _store_sync(self, uid: str, flag: bytes) -> None:
        with self._command("STORE") as conn:
            conn.add_flags([int(uid)], [flag])

    async def expunge(self) -> None:
        """Permanently remove messages flagged ``\\Deleted``."""
        await asyncio.to_thread(self._expunge_sync)
        logger.info("imap_expunged", mailbox=self._config.mailbox)

    def _expunge_sync(self) -> None:
        with self._command("EXPUNGE") as conn:
            conn.expunge()

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def keep_alive(self) -> int:
        """Cheap round-trip that keeps the session alive; returns the RECENT count.

        The request is announced before it queues for the connection.  A
        running IDLE, or one about to start, steps aside for it and resumes
        once the status command has completed.
        """
        self._keepalive_pending.set()
        return await asyncio.to_thread(self._keep_alive_sync)

    def _keep_alive_sync(self) -> int:
        try:
            with self._command("STATUS") as conn:
                status = conn.folder_status(self._config.mailbox, [b"RECENT"])
        finally:
            with self._handover:
                self._keepalive_pending.clear()
                self._handover.notify_all()
        return int(status.get(b"RECENT", 0))

    def abort_idle(self) -> None:
        """Ask a running :meth:`idle_wait` to return.  Safe from any thread."""
        self._idle_abort.set()

    async def idle_wait(self) -> bool:
        """Block until the server reports mailbox activity.

        Returns True on activity and False when woken by :meth:`abort_idle`.
        Transport errors do not raise: they are logged, the folder is marked
        closed and the caller sees ``is_open == False``.
        """
        return await asyncio.to_thread(self._idle_sync)

    def _idle_sync(self) -> bool:
        if not self.is_open:
            return False

        if not self.supports_idle:
            self._idle_abort.wait(self._config.poll_interval_seconds)
            self._idle_abort.clear()
            return False

        with self._handover:
            try:
                while not self._idle_abort.is_set():
                    if self._keepalive_pending.is_set():
                        # releases the lock so the status command can run
                        self._handover.wait_for(
                            lambda: not self._keepalive_pending.is_set() or self._idle_abort.is_set(),
                            timeout=IDLE_TICK_SECONDS,
                        )
                        continue
                    conn = self._conn
                    if conn is None or not self._selected:
                        return False
                    if self._idle_exchange(conn):
                        return True
                return False
            except (IMAPClientError, OSError) as exc:
                self._selected = False
                logger.warning("imap_idle_interrupted", error=str(exc))
                return False
            finally:
                self._idle_abort.clear()

    def _idle_exchange(self, conn: IMAPClient) -> bool:
        """One IDLE command; True if the server reported activity."""
        conn.idle()
        logger.debug("imap_idle_started")
        activity = False
        while not (self._idle_abort.is_set() or self._keepalive_pending.is_set()):
            if _has_activity(conn.idle_check(timeout=IDLE_TICK_SECONDS)):
                activity = True
                break
        _, responses = conn.idle_done()
        activity = _has_activity(responses) or activity
        if activity:
            logger.debug("imap_idle_activity")
        return activity

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _command(self, name: str) -> Iterator[IMAPClient]:
        """Hold the command lock and translate imapclient failures."""
        with self._lock:
            if self._conn is None:
                raise TransportError(f"{name}: not connected")
            try:
                yield self._conn
            except (IMAPClientAbortError, OSError) as exc:
                self._selected = False
                raise TransportError(f"{name} failed: {exc}") from exc
            except IMAPClientError as exc:
                raise TransportError(f"{name} failed: {exc}") from exc


def _has_activity(responses: list[tuple]) -> bool:
    """True if untagged *responses* report a mailbox change.

    Raises :class:`IMAPClientAbortError` when the server says BYE.
    """
    for response in responses:
        if not response:
            continue
        if response[0] == b"BYE":
            raise IMAPClientAbortError(f"server closed connection: {response!r}")
        if len(response) > 1 and response[1] in _ACTIVITY:
            return True
    return False


def _logout_quietly(conn: IMAPClient) -> None:
    try:
        conn.logout()
    except (IMAPClientError, OSError):
        pass
