"""CLI entry point for service discovery.

    service-discovery hub
    service-discovery announce {registry|broadcast|multicast}
    service-discovery resolve {registry|broadcast|multicast} [--endpoint HOST:PORT]
"""

import logging
import time
from typing import Optional

import click

from .cancellation import CancelToken
from .discovery.protocol import Endpoint
from .errors import Cancelled, ConfigError
from .factory import TRANSPORT_NAMES, make_announcer, make_resolver
from .handoff import EchoServer, HandshakeResult, greet
from .netutil import get_local_ipv4
from .settings import Settings, load_settings, validate_settings

logger = logging.getLogger("service_discovery")

EXIT_NOT_FOUND = 1
EXIT_INTERRUPTED = 130


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML settings file.",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], verbose: bool):
    """Service discovery over a registry hub, UDP broadcast or UDP multicast."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e))

    validation = validate_settings(settings)
    if not validation.valid:
        raise click.ClickException(f"Invalid settings: {validation}")
    for warning in validation.warnings:
        logger.warning("%s: %s", warning.path, warning.message)

    ctx.obj = settings


@main.command()
@click.option("--host", default=None, help="Interface to bind.")
@click.option("--port", type=int, default=None, help="HTTP port.")
@click.pass_obj
def hub(settings: Settings, host: Optional[str], port: Optional[int]):
    """Run the registry hub."""
    import uvicorn

    from .registry.hub import create_app

    app = create_app(sweep_interval=settings.registry.sweep_interval)
    uvicorn.run(
        app,
        host=host or settings.registry.host,
        port=port or settings.registry.port,
    )


@main.command()
@click.argument("transport", type=click.Choice(TRANSPORT_NAMES))
@click.option("--service", default=None, help="Service name to announce.")
@click.option("--port", type=int, default=None, help="TCP port of the announced service.")
@click.option("--advertise-ip", default=None, help="Address to advertise.")
@click.pass_obj
def announce(
    settings: Settings,
    transport: str,
    service: Optional[str],
    port: Optional[int],
    advertise_ip: Optional[str],
):
    """Serve the echo service and announce it until interrupted."""
    service = service or settings.service.name
    ip = advertise_ip or settings.service.advertise_ip or get_local_ipv4() or "127.0.0.1"
    endpoint = Endpoint(ip, port or settings.service.port)

    echo = EchoServer(endpoint.port)
    announcer = make_announcer(transport, settings, service, endpoint)

    click.echo(f"Server starting. Local IP: {ip} Service port: {endpoint.port}")
    try:
        with echo, announcer:
            while echo.running:
                time.sleep(0.5)
    except KeyboardInterrupt:
        click.echo("Stopping...")
    except OSError as e:
        raise click.ClickException(f"Failed to start {transport} announcer: {e}")


@main.command()
@click.argument("transport", type=click.Choice(TRANSPORT_NAMES))
@click.option("--service", default=None, help="Service name to resolve.")
@click.option("--endpoint", "configured", default=None, help="Try HOST:PORT before discovery.")
@click.option("--connect/--no-connect", default=True, help="Greet the resolved endpoint.")
@click.pass_context
def resolve(
    ctx: click.Context,
    transport: str,
    service: Optional[str],
    configured: Optional[str],
    connect: bool,
):
    """Resolve a service and hand off to it."""
    settings: Settings = ctx.obj
    service = service or settings.service.name
    timeout = settings.resolver.connect_timeout

    cancel = CancelToken()
    try:
        if configured:
            try:
                endpoint = Endpoint.parse(configured)
            except ValueError as e:
                raise click.BadParameter(str(e), param_hint="--endpoint")
            click.echo(f"Trying configured endpoint {endpoint}")
            result = greet(endpoint, timeout=timeout, cancel=cancel)
            if result.ok:
                _print_handshake(result)
                return
            click.echo("Configured endpoint failed, proceeding to discovery")

        outcome = make_resolver(transport, settings).resolve(service, cancel)
        if not outcome.found:
            click.echo("No service discovered")
            ctx.exit(EXIT_NOT_FOUND)

        click.echo(f"Discovered {service}: {outcome}")
        if not connect:
            return

        result = greet(outcome.endpoint, timeout=timeout, cancel=cancel)
        _print_handshake(result)
        if not result.ok:
            ctx.exit(EXIT_NOT_FOUND)

    except (KeyboardInterrupt, Cancelled):
        cancel.cancel()
        click.echo("Interrupted by user")
        ctx.exit(EXIT_INTERRUPTED)
    except OSError as e:
        raise click.ClickException(f"Discovery via {transport} failed: {e}")
    finally:
        cancel.close()


def _print_handshake(result: HandshakeResult) -> None:
    if not result.connected:
        click.echo(f"TCP connect to {result.endpoint} failed: {result.error}")
        return
    if result.greeting:
        click.echo(f"Server greeting: {result.greeting}")
    if result.reply:
        click.echo(f"Server reply: {result.reply}")
    if result.error:
        click.echo(f"Handshake error: {result.error}")
    else:
        click.echo("Connected successfully.")


if __name__ == "__main__":
    main()
