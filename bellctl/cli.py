"""Typer CLI entrypoint."""

from __future__ import annotations

import logging

import typer

from bellctl.core.decoder import HomeEvent, JoystickState, NotificationEvent, Unrecognized
from bellctl.core.device_match import best_profile_for_device
from bellctl.core.errors import BellctlError
from bellctl.core.link import LinkOutcome
from bellctl.core.model import ResolvedTarget
from bellctl.core.service import BellService
from bellctl.core.thermal import ThermalSample
from bellctl.core.uuid_match import format_short

app = typer.Typer(help="Bell BLE controller and mmc thermometer listener")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log link state transitions"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_service() -> BellService:
    service = BellService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def format_event(event: NotificationEvent) -> str:
    if isinstance(event, JoystickState):
        held = ",".join(event.pressed()) or "-"
        return (
            f"joystick pressed={held} l2={event.l2.magnitude} r2={event.r2.magnitude} "
            f"rl={event.rl[0]},{event.rl[1]} rr={event.rr[0]},{event.rr[1]}"
        )
    if isinstance(event, HomeEvent):
        return f"home held={'yes' if event.held else 'no'}"
    if isinstance(event, ThermalSample):
        return (
            f"thermal raw={event.raw:.2f} secondary={event.secondary:.2f} "
            f"offset={event.offset_corrected:.2f} smoothed={event.smoothed:.2f}"
        )
    if isinstance(event, Unrecognized):
        return f"unrecognized len={len(event.payload)} data={event.payload.hex(' ')}"
    return repr(event)


@app.command("profiles")
def list_profiles() -> None:
    """List available device profiles."""
    try:
        service = _build_service()
        profiles = service.list_profiles()
        if not profiles:
            typer.echo("No profiles loaded")
            raise typer.Exit(code=1)

        for profile in profiles:
            typer.echo(f"{profile.id}: {profile.name}")
            typer.echo(
                f"  service={format_short(profile.service_uuid)} "
                f"characteristic={format_short(profile.characteristic_uuid)} decoder={profile.decoder}"
            )
            if profile.match.name_contains:
                typer.echo(f"  name contains: {', '.join(profile.match.name_contains)}")
            if profile.command is not None:
                typer.echo(
                    f"  command: {profile.command.payload.hex()} -> "
                    f"{format_short(profile.command.characteristic_uuid)}"
                )
    except BellctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices(
    profile: str | None = typer.Option(None, "--profile", help="Only show devices this profile accepts"),
    timeout: float | None = typer.Option(None, "--timeout", help="Scan duration in seconds"),
) -> None:
    """Scan for advertising BLE devices and show the matched profile."""
    try:
        service = _build_service()
        devices = service.list_devices(profile_id=profile, timeout_s=timeout)
        if not devices:
            typer.echo("No Bluetooth devices found")
            return

        for device in devices:
            if profile is not None:
                matched = profile
            else:
                best = best_profile_for_device(device, service.profiles)
                matched = best.id if best else "<no-match>"
            typer.echo(f"{device.mac} {device.name or '<no-name>'} -> {matched}")
    except BellctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("explore")
def explore_device(
    device: str | None = typer.Option(None, "--device", help="MAC or partial name"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    timeout: float | None = typer.Option(None, "--timeout", help="Scan duration in seconds"),
) -> None:
    """Connect and print every service, characteristic and descriptor."""
    try:
        service = _build_service()
        result = service.explore(profile_id=profile, device_hint=device, timeout_s=timeout)
        target = result.target
        typer.echo(f"Target: {target.device.mac} ({target.device.name}) via {target.profile.id}")
        for svc in result.services:
            typer.echo(f"Service {svc.uuid} [{format_short(svc.short_uuid)}]")
            for char in svc.characteristics:
                flags = ",".join(char.properties)
                typer.echo(f"  Characteristic {char.uuid} [{format_short(char.short_uuid)}] {flags}")
                for desc in char.descriptors:
                    value = desc.value if desc.error is None else f"<error: {desc.error}>"
                    typer.echo(f"    Descriptor {desc.uuid} [{format_short(desc.short_uuid)}] {value}")
    except BellctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("listen")
def listen(
    device: str | None = typer.Option(None, "--device", help="MAC or partial name"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    timeout: float | None = typer.Option(None, "--timeout", help="Scan duration in seconds"),
    count: int | None = typer.Option(None, "--count", min=1, help="Stop after this many events"),
    send_command: bool = typer.Option(
        False, "--send-command", help="Write the profile's command after subscribing"
    ),
) -> None:
    """Subscribe to the profile characteristic and print decoded events."""

    def _on_target(target: ResolvedTarget) -> None:
        typer.echo(f"Listening to {target.device.mac} ({target.device.name}) via {target.profile.id}")

    def _on_event(event: NotificationEvent) -> None:
        typer.echo(format_event(event))

    try:
        service = _build_service()
        outcome = service.listen(
            _on_event,
            profile_id=profile,
            device_hint=device,
            timeout_s=timeout,
            max_events=count,
            send_command=send_command,
            on_target=_on_target,
        )
    except BellctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    if outcome is LinkOutcome.CONNECTION_LOST:
        typer.echo("Error: connection lost", err=True)
        raise typer.Exit(code=1)
    typer.echo("Disconnected")


@app.command("decode")
def decode_payload(
    payload: str = typer.Argument(..., help="Notification payload as hex, spaces allowed"),
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
) -> None:
    """Decode a captured notification payload without a device."""
    try:
        data = bytes.fromhex(payload.replace(" ", "").replace(":", ""))
    except ValueError:
        typer.echo(f"Error: '{payload}' is not a hex payload", err=True)
        raise typer.Exit(code=1) from None

    try:
        service = _build_service()
        typer.echo(format_event(service.decode(data, profile_id=profile)))
    except BellctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
