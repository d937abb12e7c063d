"""
Verifier Listener
=================

Accepts TCP connections and runs one independent session task per client.

Version: 0.1.0
"""

import asyncio

from services.verifier import protocol
from services.verifier.context import ServiceContext
from services.verifier.session import SessionHandler
from shared.config import OverflowPolicy
from shared.logging import get_logger


logger = get_logger(__name__)


class VerifierServer:
    """
    TCP front-end for the eligibility prover.

    Usage:
        server = VerifierServer(ServiceContext.from_settings(settings))
        await server.start()        # raises OSError if the port cannot be bound
        ...
        await server.close()
    """

    def __init__(self, context: ServiceContext):
        self.context = context
        self._server: asyncio.Server | None = None
        self._sessions: set[asyncio.Task] = set()

    @property
    def port(self) -> int:
        """Port actually bound (useful when configured with port 0)."""
        if self._server is None or not self._server.sockets:
            raise RuntimeError("Server is not running")
        return self._server.sockets[0].getsockname()[1]

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    async def start(self) -> None:
        server_settings = self.context.settings.server
        self._server = await asyncio.start_server(
            self._handle_connection,
            server_settings.host,
            server_settings.port,
        )
        logger.info(
            "verifier_listening",
            host=server_settings.host,
            port=self.port,
            max_sessions=server_settings.max_sessions,
            overflow_policy=server_settings.overflow_policy.value,
        )

    async def close(self) -> None:
        if self._server is None:
            return

        self._server.close()

        for task in list(self._sessions):
            task.cancel()
        await asyncio.gather(*self._sessions, return_exceptions=True)

        await self._server.wait_closed()
        self._server = None
        logger.info("verifier_stopped", total_sessions=self.context.total_sessions)

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        task = asyncio.current_task()
        self._sessions.add(task)
        try:
            await self._dispatch(reader, writer)
        except Exception as e:
            logger.exception("session_crashed", error=str(e))
            writer.close()
        finally:
            self._sessions.discard(task)

    async def _dispatch(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        context = self.context
        policy = context.settings.server.overflow_policy

        if policy == OverflowPolicy.REJECT and context.at_capacity:
            await self._reject(writer)
            return

        if context.at_capacity and not await self._notify_queued(writer):
            return

        async with context.limiter:
            context.active_sessions += 1
            context.total_sessions += 1
            try:
                await SessionHandler(context, reader, writer).run()
            finally:
                context.active_sessions -= 1

    async def _notify_queued(self, writer: asyncio.StreamWriter) -> bool:
        """Tell a queued client it is waiting. Returns False if it is already gone."""
        logger.info("session_queued", active_sessions=self.context.active_sessions)
        try:
            writer.write(protocol.QUEUED.encode())
            await writer.drain()
        except (ConnectionError, OSError):
            writer.close()
            return False
        return True

    async def _reject(self, writer: asyncio.StreamWriter) -> None:
        logger.warning(
            "session_rejected_at_capacity",
            peer=str(writer.get_extra_info("peername")),
            active_sessions=self.context.active_sessions,
        )
        try:
            writer.write(protocol.BUSY.encode())
            await writer.drain()
        except (ConnectionError, OSError):
            pass
        finally:
            writer.close()
