"""
Session Handler
===============

Owns one client connection from banner to response.

States:
    GREETING -> AWAITING_AGE -> AWAITING_BMI -> PROVING -> RESPONDING -> CLOSED

Invalid values keep the session in the current awaiting state and re-prompt.
A blank line, EOF or any connection error moves straight to CLOSED. Once
proving has started only a connection reset abandons the proof; a half-closed
client still receives its response.
"""

import asyncio
from enum import Enum

from services.verifier import protocol
from services.verifier.context import ServiceContext
from shared.logging import bind_context, clear_context, get_logger
from shared.zk.models import ProofRequest, ProofResult, VerificationInput
from shared.zk.validator import InputKind, InputValidationError, validate


logger = get_logger(__name__)


class SessionState(str, Enum):
    """Lifecycle of one connection."""

    GREETING = "greeting"
    AWAITING_AGE = "awaiting_age"
    AWAITING_BMI = "awaiting_bmi"
    PROVING = "proving"
    RESPONDING = "responding"
    CLOSED = "closed"


class ClientGone(Exception):
    """The client ended the conversation (EOF, blank line, disconnect)."""


class SessionHandler:
    """Runs the verification conversation for one connection."""

    def __init__(
        self,
        context: ServiceContext,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        session_id: str | None = None,
    ):
        self.context = context
        self.reader = reader
        self.writer = writer
        self.session_id = session_id or context.new_session_id()
        self.state = SessionState.GREETING
        self.history: list[SessionState] = [SessionState.GREETING]
        self.result: ProofResult | None = None

        peer = writer.get_extra_info("peername")
        self.peer = f"{peer[0]}:{peer[1]}" if isinstance(peer, tuple) else str(peer)

    def _transition(self, state: SessionState) -> None:
        if state == self.state:
            return
        logger.debug("session_state_changed", previous=self.state.value, state=state.value)
        self.state = state
        self.history.append(state)

    async def run(self) -> None:
        bind_context(session_id=self.session_id, peer=self.peer)
        logger.info("session_opened")

        try:
            await self._send(protocol.greeting())
            self._transition(SessionState.AWAITING_AGE)
            age = await self._read_field(InputKind.AGE)

            await self._send(protocol.prompt(InputKind.BMI))
            self._transition(SessionState.AWAITING_BMI)
            bmi_times_ten = await self._read_field(InputKind.BMI)

            self._transition(SessionState.PROVING)
            await self._send(protocol.GENERATING)
            self.result = await self._prove(
                VerificationInput(age=age, bmi_times_ten=bmi_times_ten)
            )

            self._transition(SessionState.RESPONDING)
            await self._send(protocol.format_response(self.result))
            logger.info(
                "session_completed",
                success=self.result.success,
                kind=self.result.kind.value,
                proving_time_ms=self.result.proving_time_ms,
            )

        except ClientGone:
            logger.info("session_client_left", state=self.state.value)
        except asyncio.TimeoutError:
            logger.info("session_read_timeout", state=self.state.value)
        except (ConnectionError, OSError) as e:
            logger.info("session_connection_error", state=self.state.value, error=str(e))
        finally:
            self._transition(SessionState.CLOSED)
            await self._close()
            clear_context()

    async def _read_field(self, kind: InputKind) -> int:
        while True:
            line = await self._readline()
            if not line.strip():
                raise ClientGone()
            try:
                return validate(line, kind)
            except InputValidationError as e:
                logger.debug("session_input_rejected", field=kind.value, reason=type(e).__name__)
                await self._send(protocol.retry(e.message, kind))

    async def _readline(self) -> str:
        try:
            data = await asyncio.wait_for(
                self.reader.readline(),
                timeout=self.context.settings.server.read_timeout_seconds,
            )
        except ValueError as e:
            # Line longer than the stream buffer limit
            raise ClientGone() from e
        return data.decode("utf-8", errors="replace")

    async def _send(self, text: str) -> None:
        self.writer.write(text.encode())
        await self.writer.drain()

    async def _prove(self, verification_input: VerificationInput) -> ProofResult:
        request = ProofRequest(input=verification_input, session_id=self.session_id)
        proof_task = asyncio.create_task(self.context.prover.prove(request))

        if not self.context.settings.server.cancel_on_disconnect:
            return await proof_task

        watcher = asyncio.create_task(self._wait_for_reset())
        try:
            done, _ = await asyncio.wait(
                {proof_task, watcher},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if watcher in done and not watcher.result():
                # A plain EOF may be a half-close: the client still expects a response
                await asyncio.wait({proof_task})
        except asyncio.CancelledError:
            proof_task.cancel()
            watcher.cancel()
            await asyncio.gather(proof_task, watcher, return_exceptions=True)
            raise

        if proof_task.done():
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            return proof_task.result()

        logger.info("session_proof_cancelled")
        proof_task.cancel()
        await asyncio.gather(proof_task, return_exceptions=True)
        raise ClientGone()

    async def _wait_for_reset(self) -> bool:
        """
        Drain the socket while proving.

        Returns True when the connection was reset and False on a plain EOF,
        which may only be a half-close.
        """
        try:
            while await self.reader.read(1024):
                pass
        except (ConnectionError, OSError):
            return True
        return False

    async def _close(self) -> None:
        if self.writer.is_closing():
            return
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass
