"""
Client transactions and the dialog for SIP calls.

This module implements the reliability layer the engine needs over UDP:

Transaction (client, RFC 3261 Section 17.1 collapsed):
  CALLING → PROCEEDING → COMPLETED
     ↓           ↓
  TERMINATED (timeout, send failure, abandoned)

- CALLING retransmits the identical bytes on a doubling timer.
- PROCEEDING (any 1xx) stops retransmission but keeps the timeout running.
- COMPLETED resolves the transaction future with the final response.

Responses are matched to transactions by Call-ID and CSeq (number and
method). The Dialog holds what a confirmed INVITE leaves behind: tags,
remote target and the local CSeq counter.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from ._models._header import HeaderParser
from ._models._message import MessageParser, Request, Response
from ._types import (
    DecodeError,
    TransactionState,
    TransactionTimeout,
    TransportAddress,
    WriteError,
)
from ._utils import logger

if TYPE_CHECKING:
    from ._transports._base import BaseTransport


TransactionKey = Tuple[str, int, str]
ProvisionalHandler = Callable[[Response], None]
ResponseHandler = Callable[[Response], None]
RequestHandler = Callable[[Request, TransportAddress], None]


@dataclass
class Transaction:
    """
    One outbound request and its outcome.

    ``future`` resolves to the final Response, or fails with
    ``TransactionTimeout`` / ``WriteError``.
    """

    request: Request
    destination: TransportAddress
    data: bytes
    future: asyncio.Future
    timeout: float
    max_retries: int
    on_provisional: Optional[ProvisionalHandler] = None
    state: TransactionState = TransactionState.CALLING
    retries: int = 0
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)

    @property
    def key(self) -> TransactionKey:
        return transaction_key(self.request)

    @property
    def is_complete(self) -> bool:
        return self.state in (TransactionState.COMPLETED, TransactionState.TERMINATED)

    def __repr__(self) -> str:
        return (
            f"<Transaction({self.request.method}, {self.state.name}, "
            f"retries={self.retries})>"
        )


def transaction_key(message: Request | Response) -> TransactionKey:
    return (
        message.call_id or "",
        message.cseq_number or 0,
        message.cseq_method or "",
    )


class TransactionTracker:
    """
    Sends requests, retransmits them, and routes inbound datagrams.

    Every mutation happens on the event loop that owns the tracker: inbound
    datagrams arrive through ``dispatch`` and timers fire via ``call_later``.
    """

    def __init__(
        self,
        transport: BaseTransport,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._transport = transport
        self._loop = loop
        self._pending: Dict[TransactionKey, Transaction] = {}
        self._request_handler: Optional[RequestHandler] = None
        self._unmatched_handler: Optional[ResponseHandler] = None
        transport.on_receive(self.dispatch)
        transport.on_error(self._on_transport_error)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def pending(self) -> Dict[TransactionKey, Transaction]:
        return dict(self._pending)

    def on_request(self, handler: RequestHandler) -> None:
        """Register the handler for inbound requests, replacing any previous one."""
        self._request_handler = handler

    def on_unmatched_response(self, handler: ResponseHandler) -> None:
        """
        Register the handler for responses that match no pending transaction.

        Retransmitted final responses land here once their transaction has
        completed.
        """
        self._unmatched_handler = handler

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def send(
        self,
        request: Request,
        destination: TransportAddress,
        *,
        timeout: float = 0.5,
        max_retries: int = 6,
        on_provisional: Optional[ProvisionalHandler] = None,
    ) -> Transaction:
        """
        Transmit ``request`` and start its retransmission timer.

        A send failure does not raise: the returned transaction is already
        terminated and its future carries the ``WriteError``.
        """
        transaction = Transaction(
            request=request,
            destination=destination,
            data=request.to_bytes(),
            future=self.loop.create_future(),
            timeout=timeout,
            max_retries=max_retries,
            on_provisional=on_provisional,
        )

        try:
            self._transmit(transaction)
        except WriteError as exc:
            logger.error("Failed to send %s: %s", request.method, exc)
            transaction.state = TransactionState.TERMINATED
            transaction.future.set_exception(exc)
            return transaction

        self._pending[transaction.key] = transaction
        transaction.timer = self.loop.call_later(timeout, self._on_timer, transaction)
        return transaction

    def send_stateless(self, message: Request | Response, destination: TransportAddress) -> None:
        """Send a message that expects no response (ACK, answers to inbound requests)."""
        data = message.to_bytes()
        logger.debug(
            "→ %s\n%s", destination, data.decode("utf-8", errors="replace")
        )
        self._transport.send(data, destination)

    def _transmit(self, transaction: Transaction) -> None:
        logger.debug(
            "→ %s\n%s",
            transaction.destination,
            transaction.data.decode("utf-8", errors="replace"),
        )
        self._transport.send(transaction.data, transaction.destination)

    def _on_timer(self, transaction: Transaction) -> None:
        if transaction.is_complete:
            return

        if transaction.retries >= transaction.max_retries:
            self._terminate(
                transaction,
                TransactionTimeout(
                    f"No final response to {transaction.request.method} "
                    f"after {transaction.retries} retransmissions"
                ),
            )
            return

        transaction.retries += 1
        transaction.timeout *= 2

        if transaction.state == TransactionState.CALLING:
            logger.debug(
                "Retransmitting %s (%d/%d)",
                transaction.request.method,
                transaction.retries,
                transaction.max_retries,
            )
            try:
                self._transmit(transaction)
            except WriteError as exc:
                logger.error("Failed to retransmit %s: %s", transaction.request.method, exc)
                self._terminate(transaction, exc)
                return

        transaction.timer = self.loop.call_later(
            transaction.timeout, self._on_timer, transaction
        )

    def _terminate(self, transaction: Transaction, exc: Exception) -> None:
        transaction.state = TransactionState.TERMINATED
        self._pending.pop(transaction.key, None)
        _cancel(transaction.timer)
        transaction.timer = None
        if not transaction.future.done():
            logger.warning("%s transaction failed: %s", transaction.request.method, exc)
            transaction.future.set_exception(exc)

    def _on_transport_error(self, exc: Exception) -> None:
        for transaction in list(self._pending.values()):
            if transaction.state != TransactionState.CALLING:
                continue
            error = WriteError(
                f"Failed to send {transaction.request.method} to "
                f"{transaction.destination}: {exc}"
            )
            error.__cause__ = exc
            self._terminate(transaction, error)

    def cancel_all(self) -> None:
        """Abandon every pending transaction without sending anything."""
        for transaction in list(self._pending.values()):
            transaction.state = TransactionState.TERMINATED
            _cancel(transaction.timer)
            transaction.timer = None
            if not transaction.future.done():
                transaction.future.cancel()
        self._pending.clear()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def dispatch(self, data: bytes, source: TransportAddress) -> None:
        """Transport entry point: decode, then route to a transaction or handler."""
        try:
            message = MessageParser.parse(data)
        except DecodeError as exc:
            logger.debug("Dropping undecodable datagram from %s: %s", source, exc)
            return

        logger.debug("← %s\n%s", source, data.decode("utf-8", errors="replace"))

        if isinstance(message, Request):
            if self._request_handler is None:
                logger.debug("No request handler, dropping %s", message.method)
                return
            self._request_handler(message, source)
            return

        self._on_response(message)

    def _on_response(self, response: Response) -> None:
        key = transaction_key(response)
        transaction = self._pending.get(key)
        if transaction is None:
            if self._unmatched_handler is not None:
                self._unmatched_handler(response)
                return
            logger.debug(
                "Discarding unmatched response %d for %s",
                response.status_code,
                key,
            )
            return

        if response.is_provisional:
            transaction.state = TransactionState.PROCEEDING
            if transaction.on_provisional is not None:
                transaction.on_provisional(response)
            return

        transaction.state = TransactionState.COMPLETED
        del self._pending[key]
        _cancel(transaction.timer)
        transaction.timer = None
        if not transaction.future.done():
            transaction.future.set_result(response)


def _cancel(handle: Optional[asyncio.TimerHandle]) -> None:
    if handle is not None:
        handle.cancel()


@dataclass
class Dialog:
    """
    Represents the confirmed SIP dialog of the active call.

    Identified by Call-ID, local tag and remote tag (RFC 3261 Section 12).
    """

    call_id: str
    local_tag: str
    remote_tag: str
    local_uri: str
    remote_uri: str
    remote_target: str  # Contact URI of the far end
    local_seq: int = 1
    route_set: List[str] = field(default_factory=list)

    @classmethod
    def from_response(cls, request: Request, response: Response) -> Dialog:
        """Capture the dialog from the 2xx answering an INVITE."""
        contact = response.contact
        remote_target = HeaderParser.parse_uri(contact) if contact else request.uri
        return cls(
            call_id=request.call_id or "",
            local_tag=request.from_tag or "",
            remote_tag=response.to_tag or "",
            local_uri=request.from_header or "",
            remote_uri=response.to_header or "",
            remote_target=remote_target,
            local_seq=request.cseq_number or 1,
            # UAC route set is the Record-Route list in reverse order
            route_set=list(reversed(response.headers.get_all("Record-Route"))),
        )

    @property
    def id(self) -> str:
        return f"{self.call_id}:{self.local_tag}:{self.remote_tag}"

    def next_cseq(self) -> int:
        """Advance the local sequence for a new in-dialog request."""
        self.local_seq += 1
        return self.local_seq

    def matches(self, request: Request) -> bool:
        """True if an inbound request belongs to this dialog."""
        return (
            request.call_id == self.call_id
            and request.to_tag == self.local_tag
            and request.from_tag == self.remote_tag
        )

    def __repr__(self) -> str:
        return f"<Dialog({self.call_id}, seq={self.local_seq})>"


__all__ = [
    "Transaction",
    "TransactionTracker",
    "Dialog",
    "transaction_key",
]
