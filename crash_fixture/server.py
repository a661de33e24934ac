"""
Fixture server: answer every connection with a canned 200, then apply the crash policy.

Each connection runs in its own task (asyncio.start_server). Once a crash is
claimed the listener stops accepting and no later connection is answered.
"""
import asyncio
import logging
import os
from typing import Callable, Mapping

from crash_fixture import observability
from crash_fixture.config import FixtureConfig
from crash_fixture.crash_policy import abort_process, first_line, should_crash
from crash_fixture.errors import StartupFailure
from crash_fixture.logging_utils import log_error_event, log_event

READ_LIMIT = 1024


def build_response(instance: int) -> bytes:
    return f"HTTP/1.1 200 OK\r\n\r\nHello from instance {instance}!".encode()


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError):
        # Peer already gone; the response was written.
        pass


class FixtureServer:
    def __init__(
        self,
        config: FixtureConfig,
        logger: logging.Logger,
        abort: Callable[[], None] = abort_process,
        environ: Mapping[str, str] | None = None,
    ):
        self.config = config
        self.logger = logger
        self.abort = abort
        self.environ = os.environ if environ is None else environ
        self.response = build_response(config.instance)
        self.server: asyncio.AbstractServer | None = None
        self._timed_crash: asyncio.Task | None = None
        self._crashing = False

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        line = ""
        crash = False
        try:
            data = await reader.read(READ_LIMIT)
            if self._crashing:
                # Only the connection that triggered the crash gets a response.
                await _close(writer)
                return
            line = first_line(data.decode("utf-8", errors="replace"))
            # Claimed before writing: no other connection can be answered after this one.
            crash = should_crash(self.config.policy, line, self.environ) and self._begin_crash()
            writer.write(self.response)
            await writer.drain()
        except (ConnectionError, OSError) as exc:
            observability.record_connection_error(self.config.instance)
            log_error_event(
                self.logger,
                "connection_failed",
                exc,
                instance=self.config.instance,
                peer=peer,
                msg=f"Connection failed: {exc}",
            )
            await _close(writer)
        else:
            observability.record_request(self.config.instance)
            await _close(writer)
        if crash:
            await self._announce_and_abort(f"request {line!r}")

    def _begin_crash(self) -> bool:
        """Claim the single crash and stop accepting. False if a crash is already under way."""
        if self._crashing:
            return False
        self._crashing = True
        if self.server:
            self.server.close()
        return True

    async def crash(self, reason: str) -> None:
        """Stop accepting, announce, give the peer time to read the response, then abort."""
        if self._begin_crash():
            await self._announce_and_abort(reason)

    async def _announce_and_abort(self, reason: str) -> None:
        observability.record_crash(self.config.instance)
        log_event(
            self.logger,
            "fixture_crash",
            instance=self.config.instance,
            port=self.config.port,
            pid=os.getpid(),
            policy=self.config.policy.describe(),
            reason=reason,
            msg=f"Received CRASH command for instance {self.config.instance}!",
        )
        await asyncio.sleep(self.config.crash_delay_ms / 1000)
        self.abort()

    async def _crash_after(self, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        await self.crash(f"timer {delay_ms}ms")

    async def start(self) -> asyncio.AbstractServer:
        host, port = self.config.host, self.config.port
        try:
            self.server = await asyncio.start_server(self.handle, host, port)
        except OSError as exc:
            raise StartupFailure(host, port, exc) from exc

        pid = os.getpid()
        log_event(
            self.logger,
            "fixture_listening",
            host=host,
            port=port,
            base_port=self.config.base_port,
            instance=self.config.instance,
            pid=pid,
            variant=self.config.variant.value,
            policy=self.config.policy.describe(),
            msg=f"Server process PID: {pid} listening on {host}:{port} (base={self.config.base_port}, instance={self.config.instance})",
        )
        if self.config.crash_after_ms:
            self._timed_crash = asyncio.create_task(self._crash_after(self.config.crash_after_ms))
        return self.server

    async def stop(self) -> None:
        if self._timed_crash:
            self._timed_crash.cancel()
            try:
                await self._timed_crash
            except asyncio.CancelledError:
                pass
            self._timed_crash = None
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
