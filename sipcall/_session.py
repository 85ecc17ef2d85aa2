"""
SIP call session engine.

``SessionEngine`` owns one transport endpoint, one registration and at most
one call. It drives REGISTER, INVITE, INFO and BYE through the transaction
tracker and reports every state transition as an event:

    >>> async def main():
    ...     async with SessionEngine(EngineConfig.from_env()) as engine:
    ...         engine.on(CallEstablished, lambda e: engine.send_digit("1"))
    ...         await engine.connect()
    ...         call = engine.place_call("5511999990000")
    ...         await call

Operations needing a round trip return a future (or a handle carrying one)
that resolves to the resulting state; failures never surface as exceptions
on those futures but in the event payload and ``last_error``.
"""

from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from ._config import EngineConfig
from ._events import (
    CallEnded,
    CallEstablished,
    CallFailed,
    CallInitiated,
    CallRinging,
    CallTerminating,
    Connected,
    DigitSent,
    Disconnected,
    EventEmitter,
    Registering,
    RegistrationFailed,
    SessionEvent,
)
from ._fsm import Dialog, Transaction, TransactionTracker
from ._models._auth import DigestAuth, DigestChallenge
from ._models._body import DTMFRelayBody, SDPBody
from ._models._message import MessageBuilder, Request, Response
from ._transports._base import BaseTransport
from ._transports._udp import UDPTransport
from ._types import (
    AuthenticationError,
    BusyError,
    CallState,
    InvalidDigitError,
    NoActiveCallError,
    NotRegisteredError,
    ProtocolError,
    RegistrationState,
    SipCallError,
    StateError,
    TransactionTimeout,
    TransportAddress,
    TransportError,
)
from ._utils import (
    ALLOWED_METHODS,
    DTMF_DIGITS,
    generate_branch,
    generate_call_id,
    generate_tag,
    logger,
)

ALLOW = ", ".join(ALLOWED_METHODS)
ACCEPT = "application/sdp, application/dtmf-relay"

# Call statuses as reported to callers
_STATUS = {
    CallState.INVITING: "initiated",
    CallState.RINGING: "ringing",
    CallState.ESTABLISHED: "established",
    CallState.TERMINATING: "terminating",
    CallState.TERMINATED: "terminated",
    CallState.FAILED: "failed",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CallHandle:
    """
    Handle on the call created by ``place_call``.

    ``future`` resolves to ``CallState.ESTABLISHED`` or ``CallState.FAILED``
    (or ``TERMINATED`` when the engine is disconnected mid-setup). Awaiting
    the handle awaits the future.
    """

    call_id: str
    destination: str
    target_uri: str
    future: asyncio.Future
    state: CallState = CallState.INVITING
    failure_reason: Optional[str] = None
    status_code: Optional[int] = None
    created_at: datetime = field(default_factory=_now)
    connected_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def status(self) -> str:
        return _STATUS.get(self.state, self.state.value)

    @property
    def duration(self) -> float:
        """Seconds since the call was answered, frozen once it ended."""
        if not self.connected_at:
            return 0.0
        reference = self.ended_at or _now()
        return max(0.0, (reference - self.connected_at).total_seconds())

    def __await__(self):
        return self.future.__await__()


class SessionEngine:
    """
    SIP call session engine for one trunk account.

    All methods must be called from the event loop that runs the engine.
    """

    def __init__(
        self,
        config: EngineConfig,
        transport: Optional[BaseTransport] = None,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.config = config
        self._transport = transport or UDPTransport(config.local_host, config.local_port)
        self._tracker = TransactionTracker(self._transport, loop)
        self._tracker.on_request(self._on_request)
        self._tracker.on_unmatched_response(self._on_unmatched_response)
        self._events = EventEmitter()

        self._started = False
        self._local_host = "127.0.0.1"
        self._local_port = 0
        self._learned: Optional[TransportAddress] = None

        self._registration = RegistrationState.UNREGISTERED
        self._register_future: Optional[asyncio.Future] = None
        self._register_cseq = 0

        self._call: Optional[CallHandle] = None
        self._call_state = CallState.IDLE
        self._dialog: Optional[Dialog] = None
        self._ack: Optional[Request] = None
        self._hangup_future: Optional[asyncio.Future] = None

        self._tasks: Set[asyncio.Task] = set()
        self.last_error: Optional[SipCallError] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def events(self) -> EventEmitter:
        return self._events

    def on(self, event, handler=None):
        """Subscribe to a lifecycle event (see ``EventEmitter.on``)."""
        return self._events.on(event, handler)

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    @property
    def registration_state(self) -> RegistrationState:
        return self._registration

    @property
    def call_state(self) -> CallState:
        return self._call_state

    @property
    def dialog(self) -> Optional[Dialog]:
        return self._dialog

    @property
    def current_call(self) -> Optional[CallHandle]:
        return self._call

    @property
    def is_call_active(self) -> bool:
        """True while a dialog is established."""
        return self._call_state == CallState.ESTABLISHED and self._dialog is not None

    @property
    def local_address(self) -> TransportAddress:
        return TransportAddress(self._local_host, self._local_port)

    @property
    def contact_address(self) -> TransportAddress:
        """Address advertised in Contact: configured, learned, then local."""
        if self.config.public_host:
            return TransportAddress(self.config.public_host, self._local_port)
        if self._learned is not None:
            return self._learned
        return self.local_address

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Bind the transport. Idempotent."""
        if self._started:
            return
        self._local_port = await self._transport.open()
        self._local_host = self._determine_local_host(self._transport.local_address.host)
        self._started = True
        logger.info(
            "SIP engine bound on %s:%d (trunk %s)",
            self._local_host,
            self._local_port,
            self.config.trunk,
        )

    async def connect(self) -> RegistrationState:
        """Start the transport, register, and wait for the outcome."""
        await self.start()
        return await self.register()

    def disconnect(self) -> None:
        """
        Hard stop.

        Closes the endpoint and abandons timers and pending transactions
        without sending anything. The dialog is dropped and registration
        reset; pending futures resolve to the state reached.
        """
        self._tracker.cancel_all()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._transport.close()
        self._started = False
        self._learned = None

        self._registration = RegistrationState.UNREGISTERED
        _resolve(self._register_future, RegistrationState.UNREGISTERED)
        self._register_future = None

        if self._call is not None:
            self._call.state = CallState.TERMINATED
            self._call.ended_at = self._call.ended_at or _now()
            _resolve(self._call.future, CallState.TERMINATED)
        _resolve(self._hangup_future, CallState.TERMINATED)
        self._hangup_future = None
        self._call = None
        self._call_state = CallState.IDLE
        self._dialog = None
        self._ack = None

        logger.info("SIP engine disconnected")
        self._emit(Disconnected())

    async def __aenter__(self) -> SessionEngine:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self) -> asyncio.Future:
        """
        Register with the trunk.

        Returns a future resolving to ``REGISTERED`` or ``UNREGISTERED``.
        Calling again while an attempt is in flight returns the same future.

        Raises:
            ConfigurationError: If required configuration is missing.
            StateError: If the engine was not started.
        """
        self.config.validate()
        self._ensure_started()

        if self._register_future is not None and not self._register_future.done():
            return self._register_future

        loop = self._tracker.loop
        self._register_future = loop.create_future()
        self._registration = RegistrationState.REGISTERING
        logger.info("Registering %s with %s", self.config.credentials.aor, self.config.trunk)
        self._emit(Registering())

        call_id = generate_call_id(self._local_host)
        from_tag = generate_tag()
        transaction = self._send(self._build_register(call_id, from_tag))
        self._spawn(self._run_registration(transaction, call_id, from_tag))
        return self._register_future

    def _build_register(
        self, call_id: str, from_tag: str, auth: Optional[DigestAuth] = None
    ) -> Request:
        self._register_cseq += 1
        aor = self.config.credentials.aor
        request = self._build_request(
            "REGISTER",
            f"sip:{self.config.domain}",
            call_id=call_id,
            from_tag=from_tag,
            to=f"<{aor}>",
            cseq=self._register_cseq,
            headers={"Expires": str(self.config.expires), "Allow": ALLOW},
        )
        return self._authorize(request, auth)

    async def _run_registration(
        self, transaction: Transaction, call_id: str, from_tag: str
    ) -> None:
        try:
            response = await transaction.future
            if response.requires_auth:
                auth = self._digest_for(response)
                logger.info("REGISTER challenged (%d), retrying with credentials", response.status_code)
                retry = self._send(self._build_register(call_id, from_tag, auth))
                response = await retry.future
        except (TransactionTimeout, TransportError, ProtocolError) as exc:
            self._registration_failed(exc)
            return

        if response.requires_auth:
            self._registration_failed(
                AuthenticationError(
                    f"Credentials rejected ({response.status_code} {response.reason_phrase})"
                ),
                response.status_code,
            )
            return

        if not response.is_success:
            self._registration_failed(
                ProtocolError(f"REGISTER rejected: {response.status_code} {response.reason_phrase}"),
                response.status_code,
            )
            return

        self._learn_public_address(response)
        self._registration = RegistrationState.REGISTERED
        logger.info("Registered %s (expires %ss)", self.config.credentials.aor, self.config.expires)
        _resolve(self._register_future, RegistrationState.REGISTERED)
        self._emit(Connected())

    def _registration_failed(self, exc: SipCallError, status_code: Optional[int] = None) -> None:
        logger.warning("Registration failed: %s", exc)
        self.last_error = exc
        self._registration = RegistrationState.UNREGISTERED
        _resolve(self._register_future, RegistrationState.UNREGISTERED)
        self._emit(RegistrationFailed(error=str(exc), status_code=status_code))

    def _learn_public_address(self, response: Response) -> None:
        params = response.via_params
        received = params.get("received")
        rport = params.get("rport")
        if not received and not rport:
            return
        port = int(rport) if rport and rport.isdigit() else self._local_port
        learned = TransportAddress(received or self._local_host, port)
        if learned != self.local_address:
            logger.info("Trunk sees us as %s:%d", learned.host, learned.port)
            self._learned = learned

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def place_call(self, destination: str) -> CallHandle:
        """
        Place an outbound call to ``destination`` (number or SIP URI).

        Returns immediately with a handle whose status is ``initiated``.

        Raises:
            NotRegisteredError: Registration has not completed.
            BusyError: Another call is in progress.
        """
        self._ensure_started()
        if self._registration != RegistrationState.REGISTERED:
            raise NotRegisteredError("Register before placing a call")
        if self._call_state.is_active:
            raise BusyError(f"Call {self._call.call_id if self._call else ''} in progress")

        target_uri = (
            destination
            if destination.startswith(("sip:", "sips:"))
            else f"sip:{destination}@{self.config.domain}"
        )
        call_id = generate_call_id(self._local_host)
        from_tag = generate_tag()

        self._dialog = None
        self._ack = None
        self._call = CallHandle(
            call_id=call_id,
            destination=destination,
            target_uri=target_uri,
            future=self._tracker.loop.create_future(),
        )
        self._set_call_state(CallState.INVITING)
        logger.info("Calling %s (Call-ID %s)", target_uri, call_id)
        self._emit(CallInitiated(destination=destination, call_id=call_id))

        invite = self._build_invite(target_uri, call_id, from_tag, cseq=1)
        transaction = self._send(invite, on_provisional=self._on_invite_provisional)
        self._spawn(self._run_invite(self._call, transaction))
        return self._call

    def _build_invite(
        self,
        target_uri: str,
        call_id: str,
        from_tag: str,
        cseq: int,
        auth: Optional[DigestAuth] = None,
    ) -> Request:
        sdp = SDPBody.audio_offer(self.contact_address.host, self.config.media_port)
        request = self._build_request(
            "INVITE",
            target_uri,
            call_id=call_id,
            from_tag=from_tag,
            to=f"<{target_uri}>",
            cseq=cseq,
            headers={"Allow": ALLOW},
            body=sdp,
        )
        return self._authorize(request, auth)

    def _on_invite_provisional(self, response: Response) -> None:
        if self._call is None or self._call_state != CallState.INVITING:
            return
        logger.info("Call %s ringing (%d %s)", self._call.call_id, response.status_code, response.reason_phrase)
        self._set_call_state(CallState.RINGING)
        self._emit(CallRinging(destination=self._call.destination, call_id=self._call.call_id))

    async def _run_invite(self, call: CallHandle, transaction: Transaction) -> None:
        try:
            response = await transaction.future
            if response.requires_auth:
                self._ack_failure(transaction.request, response)
                auth = self._digest_for(response)
                invite = self._build_invite(
                    call.target_uri,
                    call.call_id,
                    transaction.request.from_tag or generate_tag(),
                    cseq=(transaction.request.cseq_number or 1) + 1,
                    auth=auth,
                )
                logger.info("INVITE challenged (%d), retrying with credentials", response.status_code)
                transaction = self._send(invite, on_provisional=self._on_invite_provisional)
                response = await transaction.future
        except TransactionTimeout as exc:
            self._call_failed(call, "timeout", None, exc)
            return
        except (TransportError, ProtocolError) as exc:
            self._call_failed(call, str(exc), None, exc)
            return

        if call is not self._call or self._call_state not in (CallState.INVITING, CallState.RINGING):
            return

        if response.requires_auth:
            self._ack_failure(transaction.request, response)
            self._call_failed(
                call,
                f"authentication failed ({response.status_code} {response.reason_phrase})",
                response.status_code,
                AuthenticationError("INVITE credentials rejected"),
            )
            return

        if not response.is_success:
            self._ack_failure(transaction.request, response)
            self._call_failed(
                call,
                f"{response.status_code} {response.reason_phrase}",
                response.status_code,
                ProtocolError(f"INVITE rejected: {response.status_code} {response.reason_phrase}"),
            )
            return

        dialog = Dialog.from_response(transaction.request, response)
        self._dialog = dialog
        self._ack_success(transaction.request, dialog)
        call.connected_at = _now()
        self._set_call_state(CallState.ESTABLISHED)
        logger.info("Call %s established", call.call_id)
        _resolve(call.future, CallState.ESTABLISHED)
        self._emit(CallEstablished(destination=call.destination, call_id=call.call_id))

    def _call_failed(
        self,
        call: CallHandle,
        reason: str,
        status_code: Optional[int],
        exc: SipCallError,
    ) -> None:
        if call is not self._call or call.state not in (CallState.INVITING, CallState.RINGING):
            return
        logger.warning("Call %s failed: %s", call.call_id, reason)
        self.last_error = exc
        call.failure_reason = reason
        call.status_code = status_code
        call.ended_at = _now()
        self._dialog = None
        self._ack = None
        self._set_call_state(CallState.FAILED)
        _resolve(call.future, CallState.FAILED)
        self._emit(
            CallFailed(
                destination=call.destination,
                call_id=call.call_id,
                reason=reason,
                status_code=status_code,
            )
        )

    def _ack_failure(self, invite: Request, response: Response) -> None:
        """ACK a non-2xx final response: same branch, To from the response."""
        ack = MessageBuilder.request(
            "ACK",
            invite.uri,
            via=invite.via or "",
            from_addr=invite.from_header or "",
            to_addr=response.to_header or invite.to_header or "",
            call_id=invite.call_id or "",
            cseq=invite.cseq_number or 1,
            headers={"User-Agent": self.config.user_agent},
        )
        self._send_stateless(ack, self.config.trunk)

    def _ack_success(self, invite: Request, dialog: Dialog) -> None:
        """ACK a 2xx: new transaction to the remote target, INVITE's CSeq number."""
        self._ack = self._build_in_dialog(
            "ACK", dialog, cseq=invite.cseq_number or dialog.local_seq
        )
        self._send_stateless(self._ack, self.config.trunk)

    def send_digit(self, digit: str) -> asyncio.Future:
        """
        Send one DTMF digit with an in-dialog INFO.

        Returns a future resolving to the final response, or None when the
        INFO transaction failed.

        Raises:
            InvalidDigitError: ``digit`` is not one of 0-9, *, #, A-D.
            NoActiveCallError: No call is established.
        """
        digit = str(digit).upper()
        if len(digit) != 1 or digit not in DTMF_DIGITS:
            raise InvalidDigitError(f"Invalid DTMF digit: {digit!r}")
        if self._call_state != CallState.ESTABLISHED or self._dialog is None or self._call is None:
            raise NoActiveCallError("send_digit requires an established call")

        info = self._build_in_dialog(
            "INFO",
            self._dialog,
            cseq=self._dialog.next_cseq(),
            body=DTMFRelayBody(digit, self.config.dtmf_duration),
        )
        transaction = self._send(info)
        logger.info("Sent DTMF %s on %s", digit, self._call.call_id)
        self._emit(DigitSent(digit=digit, call_id=self._call.call_id))
        return self._observe(transaction)

    def hang_up(self) -> asyncio.Future:
        """
        Terminate the established call with an in-dialog BYE.

        Returns a future resolving to ``CallState.TERMINATED`` once the BYE
        completes or times out.

        Raises:
            NoActiveCallError: No call is established.
        """
        if self._call_state != CallState.ESTABLISHED or self._dialog is None or self._call is None:
            raise NoActiveCallError("hang_up requires an established call")

        call = self._call
        self._set_call_state(CallState.TERMINATING)
        logger.info("Hanging up %s", call.call_id)
        self._emit(CallTerminating(destination=call.destination, call_id=call.call_id))

        bye = self._build_in_dialog("BYE", self._dialog, cseq=self._dialog.next_cseq())
        transaction = self._send(bye)
        self._hangup_future = self._tracker.loop.create_future()
        self._spawn(self._run_hangup(call, transaction))
        return self._hangup_future

    async def _run_hangup(self, call: CallHandle, transaction: Transaction) -> None:
        try:
            response = await transaction.future
            if not response.is_success:
                logger.warning("BYE answered with %d %s", response.status_code, response.reason_phrase)
        except (TransactionTimeout, TransportError) as exc:
            logger.warning("BYE for %s did not complete: %s", call.call_id, exc)
            self.last_error = exc
        self._end_call(call, "local")

    def _end_call(self, call: CallHandle, initiator: str) -> None:
        if call is not self._call or self._call_state not in (
            CallState.ESTABLISHED,
            CallState.TERMINATING,
        ):
            return
        call.ended_at = _now()
        self._dialog = None
        self._ack = None
        self._set_call_state(CallState.TERMINATED)
        logger.info("Call %s ended by %s after %.1fs", call.call_id, initiator, call.duration)
        _resolve(self._hangup_future, CallState.TERMINATED)
        self._hangup_future = None
        self._emit(
            CallEnded(destination=call.destination, call_id=call.call_id, initiator=initiator)
        )

    def call_status(self) -> Dict[str, Any]:
        """Snapshot of the current call, or ``{"status": "idle"}``."""
        if self._call is None:
            return {"status": "idle"}
        return {
            "status": self._call.status,
            "call_id": self._call.call_id,
            "destination": self._call.destination,
            "state": self._call_state.value,
            "duration": round(self._call.duration, 3),
        }

    def ping(self) -> asyncio.Future:
        """
        Check the trunk with an out-of-dialog OPTIONS.

        Returns a future resolving to the Response, or None on timeout.
        """
        self._ensure_started()
        uri = f"sip:{self.config.host}:{self.config.port}"
        request = self._build_request(
            "OPTIONS",
            uri,
            call_id=generate_call_id(self._local_host),
            from_tag=generate_tag(),
            to=f"<{uri}>",
            cseq=1,
            headers={"Accept": ACCEPT},
        )
        return self._observe(self._send(request))

    # ------------------------------------------------------------------
    # Inbound traffic
    # ------------------------------------------------------------------

    def _on_unmatched_response(self, response: Response) -> None:
        """Re-ACK a retransmitted 2xx to the INVITE while its dialog lasts."""
        ack, dialog = self._ack, self._dialog
        if (
            ack is None
            or dialog is None
            or not response.is_success
            or response.cseq_method != "INVITE"
            or response.call_id != dialog.call_id
            or response.cseq_number != ack.cseq_number
            or response.to_tag != dialog.remote_tag
        ):
            logger.debug(
                "Discarding unmatched response %d to %s",
                response.status_code,
                response.cseq_method,
            )
            return
        logger.debug("Retransmitted %d to INVITE, repeating ACK", response.status_code)
        self._send_stateless(ack, self.config.trunk)

    def _on_request(self, request: Request, source: TransportAddress) -> None:
        method = request.method
        if method == "ACK":
            return

        in_dialog = self._dialog is not None and self._dialog.matches(request)

        if method == "BYE":
            if not in_dialog:
                self._respond(request, source, 481)
                return
            self._respond(request, source, 200)
            if self._call is not None:
                self._end_call(self._call, "remote")
        elif method == "OPTIONS":
            self._respond(request, source, 200, {"Allow": ALLOW, "Accept": ACCEPT})
        elif method == "INFO":
            self._respond(request, source, 200 if in_dialog else 481)
        else:
            self._respond(request, source, 501)

    def _respond(
        self,
        request: Request,
        source: TransportAddress,
        status_code: int,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        response = MessageBuilder.response(
            request,
            status_code,
            headers={"User-Agent": self.config.user_agent, **(headers or {})},
        )
        logger.debug("Answering %s with %d", request.method, status_code)
        self._send_stateless(response, source)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_started(self) -> None:
        if not self._started:
            raise StateError("Engine not started; await start() or connect() first")

    def _determine_local_host(self, bound_host: str) -> str:
        if bound_host not in {"0.0.0.0", "::", ""}:
            return bound_host
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                sock.connect(self.config.trunk.as_tuple())
                return sock.getsockname()[0]
        except OSError:
            try:
                return socket.gethostbyname(socket.gethostname())
            except OSError:
                return "127.0.0.1"

    def _via(self, branch: Optional[str] = None) -> str:
        host = self.config.public_host or self._local_host
        return f"SIP/2.0/UDP {host}:{self._local_port};branch={branch or generate_branch()};rport"

    def _from(self, tag: str) -> str:
        credentials = self.config.credentials
        return f'"{credentials.caller_id}" <{credentials.aor}>;tag={tag}'

    def _contact(self) -> str:
        address = self.contact_address
        return f"<sip:{self.config.username}@{address.host}:{address.port}>"

    def _build_request(
        self,
        method: str,
        uri: str,
        *,
        call_id: str,
        from_tag: str,
        to: str,
        cseq: int,
        headers: Optional[Dict[str, str]] = None,
        body=None,
    ) -> Request:
        return MessageBuilder.request(
            method,
            uri,
            via=self._via(),
            from_addr=self._from(from_tag),
            to_addr=to,
            call_id=call_id,
            cseq=cseq,
            contact=self._contact(),
            headers={"User-Agent": self.config.user_agent, **(headers or {})},
            body=body,
        )

    def _build_in_dialog(self, method: str, dialog: Dialog, *, cseq: int, body=None) -> Request:
        request = MessageBuilder.request(
            method,
            dialog.remote_target,
            via=self._via(),
            from_addr=dialog.local_uri,
            to_addr=dialog.remote_uri,
            call_id=dialog.call_id,
            cseq=cseq,
            contact=self._contact() if method != "BYE" else None,
            headers={"User-Agent": self.config.user_agent},
            body=body,
        )
        for route in dialog.route_set:
            request.headers.add("Route", route)
        return request

    def _digest_for(self, response: Response) -> DigestAuth:
        challenge = DigestChallenge.from_response(response)
        return DigestAuth(self.config.username, self.config.password, challenge)

    @staticmethod
    def _authorize(request: Request, auth: Optional[DigestAuth]) -> Request:
        if auth is not None:
            request.headers[auth.challenge.header_name] = auth.build_authorization(
                request.method, request.uri
            )
        return request

    def _send(self, request: Request, **kwargs) -> Transaction:
        return self._tracker.send(
            request,
            self.config.trunk,
            timeout=self.config.t1,
            max_retries=self.config.max_retries,
            **kwargs,
        )

    def _send_stateless(self, message, destination: TransportAddress) -> None:
        try:
            self._tracker.send_stateless(message, destination)
        except TransportError as exc:
            logger.error("Failed to send %r: %s", message, exc)
            self.last_error = exc

    def _observe(self, transaction: Transaction) -> asyncio.Future:
        """Future resolving to the final response, or None if the transaction failed."""
        outcome = self._tracker.loop.create_future()

        def _done(future: asyncio.Future) -> None:
            if future.cancelled():
                _resolve(outcome, None)
                return
            exc = future.exception()
            if exc is not None:
                logger.warning("%s failed: %s", transaction.request.method, exc)
                if isinstance(exc, SipCallError):
                    self.last_error = exc
                _resolve(outcome, None)
                return
            response = future.result()
            logger.debug("%s answered with %d", transaction.request.method, response.status_code)
            _resolve(outcome, response)

        transaction.future.add_done_callback(_done)
        return outcome

    def _set_call_state(self, state: CallState) -> None:
        logger.debug("Call state %s → %s", self._call_state.value, state.value)
        self._call_state = state
        if self._call is not None:
            self._call.state = state

    def _spawn(self, coro) -> asyncio.Task:
        task = self._tracker.loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _emit(self, event: SessionEvent) -> None:
        self._events.emit(event)

    def __repr__(self) -> str:
        return (
            f"<SessionEngine({self.config.username}@{self.config.host}:{self.config.port}, "
            f"{self._registration.value}, call={self._call_state.value})>"
        )


def _resolve(future: Optional[asyncio.Future], value: Any) -> None:
    if future is not None and not future.done():
        future.set_result(value)


__all__ = ["SessionEngine", "CallHandle"]
