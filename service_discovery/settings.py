"""Settings for hubs, announcers and resolvers.

Settings are dataclasses with working defaults. A YAML file may override any
of them, section by section:

    registry:
      url: http://10.0.0.2:5000
      port: 5000
    service:
      name: my-service
      port: 8080
      ttl: 30
      meta: {version: "1.0"}
    multicast:
      group: 239.0.0.222
    resolver:
      attempts: 3
      attempt_timeout: 1.0
"""

import ipaddress
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Union

import yaml

from .errors import ConfigError


@dataclass
class RegistrySettings:
    """Registry hub location and housekeeping."""
    url: str = "http://localhost:5000"
    host: str = "0.0.0.0"
    port: int = 5000
    sweep_interval: float = 5.0
    request_timeout: float = 5.0


@dataclass
class ServiceSettings:
    """The service this instance announces."""
    name: str = "my-service"
    port: int = 16000
    advertise_ip: Optional[str] = None
    ttl: int = 30
    keepalive_interval: float = 10.0
    meta: dict[str, str] = field(default_factory=lambda: {"version": "1.0"})


@dataclass
class BroadcastSettings:
    port: int = 15000
    address: str = "255.255.255.255"


@dataclass
class MulticastSettings:
    group: str = "239.0.0.222"
    port: int = 15000
    ttl: int = 1


@dataclass
class ResolverSettings:
    """Client-side probe budget and handoff timeout."""
    attempts: int = 3
    attempt_timeout: float = 1.0
    connect_timeout: float = 2.0


@dataclass
class Settings:
    registry: RegistrySettings = field(default_factory=RegistrySettings)
    service: ServiceSettings = field(default_factory=ServiceSettings)
    broadcast: BroadcastSettings = field(default_factory=BroadcastSettings)
    multicast: MulticastSettings = field(default_factory=MulticastSettings)
    resolver: ResolverSettings = field(default_factory=ResolverSettings)


@dataclass
class ValidationError:
    """A single validation problem."""
    path: str
    message: str
    severity: str = "error"  # "error" or "warning"


@dataclass
class ValidationResult:
    """Result of settings validation."""
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)

    def __str__(self) -> str:
        if self.valid:
            msg = "Valid"
            if self.warnings:
                msg += f" ({len(self.warnings)} warnings)"
            return msg
        return "; ".join(f"{e.path}: {e.message}" for e in self.errors)


def load_settings(file_path: Optional[Union[str, Path]] = None) -> Settings:
    """Load settings from a YAML file.

    Args:
        file_path: Path to the file. None returns the defaults.

    Returns:
        Parsed Settings.

    Raises:
        ConfigError: If the file is missing, not YAML, or a section is malformed.
    """
    if file_path is None:
        return Settings()

    file_path = Path(file_path)
    if not file_path.exists():
        raise ConfigError(f"Settings file not found: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {file_path}: {e}") from e

    return parse_settings_data(data or {}, source=str(file_path))


def parse_settings_data(data: dict, source: str = "<inline>") -> Settings:
    """Build Settings from an already-loaded mapping. Unknown keys are ignored."""
    if not isinstance(data, dict):
        raise ConfigError(f"Settings must be a YAML mapping in {source}, got {type(data).__name__}")

    settings = Settings()
    for section in fields(Settings):
        if section.name not in data:
            continue
        section_data = data[section.name]
        if section_data is None:
            continue
        if not isinstance(section_data, dict):
            raise ConfigError(f"'{section.name}' must be a mapping in {source}")

        current = getattr(settings, section.name)
        known = {f.name for f in fields(current)}
        overrides = {k: v for k, v in section_data.items() if k in known}
        try:
            setattr(settings, section.name, type(current)(**{**current.__dict__, **overrides}))
        except TypeError as e:
            raise ConfigError(f"Invalid '{section.name}' section in {source}: {e}") from e

    return settings


def validate_settings(settings: Settings) -> ValidationResult:
    """Check settings against the values the components accept."""
    errors: list[ValidationError] = []
    warnings: list[ValidationError] = []

    for path, port in (
        ("registry.port", settings.registry.port),
        ("service.port", settings.service.port),
        ("broadcast.port", settings.broadcast.port),
        ("multicast.port", settings.multicast.port),
    ):
        if not isinstance(port, int) or not 0 < port < 65536:
            errors.append(ValidationError(
                path=path,
                message=f"Port must be an integer in 1-65535, got {port!r}.",
            ))

    for path, value in (
        ("registry.sweep_interval", settings.registry.sweep_interval),
        ("registry.request_timeout", settings.registry.request_timeout),
        ("service.keepalive_interval", settings.service.keepalive_interval),
        ("resolver.attempt_timeout", settings.resolver.attempt_timeout),
        ("resolver.connect_timeout", settings.resolver.connect_timeout),
    ):
        if not isinstance(value, (int, float)) or value <= 0:
            errors.append(ValidationError(
                path=path,
                message=f"Must be a positive number, got {value!r}.",
            ))

    if not settings.service.name:
        errors.append(ValidationError(
            path="service.name",
            message="'name' is required and must not be empty.",
        ))

    if not isinstance(settings.resolver.attempts, int) or settings.resolver.attempts < 1:
        errors.append(ValidationError(
            path="resolver.attempts",
            message=f"Must be at least 1, got {settings.resolver.attempts!r}.",
        ))

    try:
        if not ipaddress.IPv4Address(settings.multicast.group).is_multicast:
            errors.append(ValidationError(
                path="multicast.group",
                message=f"'{settings.multicast.group}' is not in 224.0.0.0/4.",
            ))
    except ValueError:
        errors.append(ValidationError(
            path="multicast.group",
            message=f"'{settings.multicast.group}' is not an IPv4 address.",
        ))

    ttl = settings.multicast.ttl
    if not isinstance(ttl, int) or isinstance(ttl, bool) or not 0 <= ttl <= 255:
        errors.append(ValidationError(
            path="multicast.ttl",
            message=f"Multicast TTL must be an integer in 0-255, got {ttl!r}.",
        ))

    if isinstance(settings.service.ttl, int) and settings.service.ttl < 5:
        warnings.append(ValidationError(
            path="service.ttl",
            message=f"TTL {settings.service.ttl}s is below the 5s floor and will be raised.",
            severity="warning",
        ))

    if (
        isinstance(settings.service.keepalive_interval, (int, float))
        and isinstance(settings.service.ttl, int)
        and settings.service.keepalive_interval >= max(5, settings.service.ttl)
    ):
        warnings.append(ValidationError(
            path="service.keepalive_interval",
            message="Keepalive interval is not shorter than the lease TTL; the lease will lapse between pushes.",
            severity="warning",
        ))

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
    )
