"""Bounded-retry probe/response loop shared by datagram resolvers."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..cancellation import CancelToken
from ..errors import MalformedPayload
from .protocol import Endpoint, ResolveOutcome

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_ATTEMPT_TIMEOUT = 1.0


@dataclass
class RetryConfig:
    """Attempt budget for probe-based resolution."""
    attempts: int = DEFAULT_ATTEMPTS
    attempt_timeout: float = DEFAULT_ATTEMPT_TIMEOUT

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {self.attempts}")
        if self.attempt_timeout <= 0:
            raise ValueError(f"attempt_timeout must be positive, got {self.attempt_timeout}")


class ProbeExchange(ABC):
    """One client socket used to send probes and collect replies.

    Opened on ``__enter__`` and released on ``__exit__`` whatever happened in
    between.
    """

    description = "probe"

    @abstractmethod
    def open(self) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the socket and any group membership. Never raises."""

    @abstractmethod
    def send_probe(self) -> None:
        """Send one probe datagram.

        Raises:
            OSError: On transport failure.
        """

    def drain(self) -> None:
        """Discard datagrams already queued, without blocking."""

    @abstractmethod
    def receive(
        self, timeout: float, cancel: Optional[CancelToken] = None
    ) -> Optional[tuple[bytes, tuple]]:
        """Wait up to ``timeout`` for one datagram.

        Returns:
            (data, source address), or None on timeout.
        """

    @abstractmethod
    def parse(self, data: bytes) -> Endpoint:
        """Decode a reply.

        Raises:
            MalformedPayload: If the datagram is not a valid reply.
        """

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *args):
        self.close()


class ClientResolver:
    """Drives a ProbeExchange through send / await / retry.

    Each attempt drains stale datagrams, sends a fresh probe and waits until
    its own deadline. Replies that fail to parse are skipped without ending
    the attempt. After ``attempts`` silent attempts the outcome has no
    endpoint.
    """

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    def resolve(
        self,
        exchange: ProbeExchange,
        cancel: Optional[CancelToken] = None,
        source: Optional[str] = None,
    ) -> ResolveOutcome:
        """Run the probe loop over ``exchange``.

        Args:
            exchange: Socket wrapper to probe through.
            cancel: Optional token that aborts the loop.
            source: Transport name reported in the outcome. Default: the
                exchange description.

        Raises:
            Cancelled: If ``cancel`` fires; the exchange is still closed.
        """
        start = time.monotonic()
        attempts = self.config.attempts
        source = source or exchange.description

        try:
            exchange.open()
        except OSError as e:
            logger.warning("Could not open %s: %s", exchange.description, e)
            return ResolveOutcome(
                endpoint=None,
                attempts=0,
                elapsed=time.monotonic() - start,
                source=source,
            )

        try:
            for attempt in range(1, attempts + 1):
                if cancel is not None:
                    cancel.raise_if_cancelled()

                logger.info(
                    "Discovery attempt %d/%d via %s", attempt, attempts, exchange.description
                )
                exchange.drain()
                deadline = time.monotonic() + self.config.attempt_timeout

                try:
                    exchange.send_probe()
                except OSError as e:
                    logger.warning("Probe send failed: %s", e)
                    continue

                endpoint = self._await_response(exchange, deadline, cancel)
                if endpoint is not None:
                    return ResolveOutcome(
                        endpoint=endpoint,
                        attempts=attempt,
                        elapsed=time.monotonic() - start,
                        source=source,
                    )

                if attempt < attempts:
                    logger.info("No response, retrying...")
        finally:
            exchange.close()

        logger.info("No responder found via %s after %d attempt(s)", exchange.description, attempts)
        return ResolveOutcome(
            endpoint=None,
            attempts=attempts,
            elapsed=time.monotonic() - start,
            source=source,
        )

    def _await_response(
        self,
        exchange: ProbeExchange,
        deadline: float,
        cancel: Optional[CancelToken],
    ) -> Optional[Endpoint]:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None

            try:
                received = exchange.receive(remaining, cancel)
            except OSError as e:
                logger.warning("Receive failed: %s", e)
                return None

            if received is None:
                return None

            data, addr = received
            try:
                endpoint = exchange.parse(data)
            except MalformedPayload as e:
                logger.debug("Ignoring datagram from %s: %s", addr, e)
                continue

            logger.info("Response from %s: %s", addr, endpoint)
            return endpoint
