"""Announce/Resolve roles shared by every discovery transport."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..cancellation import CancelToken


@dataclass(frozen=True)
class Endpoint:
    """A resolved service address."""
    ip: str
    port: int

    @classmethod
    def parse(cls, value: str) -> "Endpoint":
        """Parse ``host:port``.

        Raises:
            ValueError: If the value has no port or the port is not 1-65535.
        """
        host, sep, port_str = value.rpartition(":")
        if not sep or not host:
            raise ValueError(f"Expected HOST:PORT, got '{value}'")
        port = int(port_str)
        if not 0 < port < 65536:
            raise ValueError(f"Port out of range: {port}")
        return cls(ip=host, port=port)

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


@dataclass
class ResolveOutcome:
    """Result of a Resolve call."""
    endpoint: Optional[Endpoint]
    attempts: int = 0
    elapsed: float = 0.0
    source: str = ""

    @property
    def found(self) -> bool:
        return self.endpoint is not None

    def __str__(self) -> str:
        if self.endpoint is None:
            return f"not found via {self.source} after {self.attempts} attempt(s)"
        return f"{self.endpoint} via {self.source} (attempt {self.attempts})"


class Announcer(ABC):
    """Server side: make an endpoint discoverable until stopped."""

    @abstractmethod
    def start(self) -> None:
        ...

    @abstractmethod
    def stop(self, timeout: Optional[float] = 5.0) -> None:
        ...

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()


class Resolver(ABC):
    """Client side: turn a service name into an endpoint."""

    source = ""

    @abstractmethod
    def resolve(
        self, service: str, cancel: Optional[CancelToken] = None
    ) -> ResolveOutcome:
        """Look up ``service``.

        Never raises for "not found"; check ``ResolveOutcome.found``.

        Raises:
            Cancelled: If ``cancel`` fires during a blocking step.
        """
