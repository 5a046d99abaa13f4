"""Command-line entry point for tracktube."""

from __future__ import annotations

import asyncio

import click

from tracktube.dependencies import (
    build_polling_driver,
    get_resolver,
    get_settings,
    get_track_video_repository,
)
from tracktube.logging_config import configure_application_logging
from tracktube.services.delivery import BrowserDelivery, EchoDelivery
from tracktube.services.playback_types import (
    ResolutionExhaustedError,
    ResolveError,
    TrackFetchError,
    TrackSnapshot,
)
from tracktube.services.polling_driver import Delivery


@click.group()
@click.version_option(version="0.1.0")
def main() -> None:
    """tracktube - follow what Spotify is playing with matching YouTube videos."""


@main.command()
@click.option("--host", default=None, help="Bind address (defaults to TRACKTUBE_HOST).")
@click.option("--port", type=int, default=None, help="Port (defaults to TRACKTUBE_PORT).")
def serve(host: str | None, port: int | None) -> None:
    """Run the HTTP and websocket server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "tracktube.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_config=None,
    )


@main.command()
@click.argument("artist")
@click.argument("title")
@click.option("--progress", "progress_seconds", type=int, default=0, help="Start offset in seconds.")
def resolve(artist: str, title: str, progress_seconds: int) -> None:
    """Print the video link for ARTIST - TITLE."""
    configure_application_logging(get_settings())
    snapshot = TrackSnapshot(title=title, artist=artist, progress_ms=progress_seconds * 1000)
    try:
        resolution = get_resolver().resolve_with_source(snapshot)
    except ResolveError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(resolution.match.embed_url)
    click.echo(f"source: {resolution.source}", err=True)


@main.command()
@click.option(
    "--open-browser/--no-open-browser",
    default=False,
    help="Open each new video in the default browser instead of only printing it.",
)
def watch(open_browser: bool) -> None:
    """Follow the current Spotify track and print a video link on every change."""
    configure_application_logging(get_settings())
    delivery: Delivery = BrowserDelivery() if open_browser else EchoDelivery()
    driver = build_polling_driver(delivery, on_resolution_error=_report_resolution_failure)
    try:
        asyncio.run(driver.run())
    except TrackFetchError as exc:
        raise click.ClickException(f"Playback source failed: {exc}") from exc
    except KeyboardInterrupt:
        driver.stop()
        click.echo("stopped", err=True)


async def _report_resolution_failure(
    snapshot: TrackSnapshot, exc: ResolutionExhaustedError
) -> None:
    click.echo(f"no video found for {snapshot.describe()}: {exc}", err=True)


@main.command()
@click.option("--limit", type=int, default=20, show_default=True)
def history(limit: int) -> None:
    """List the most recently stored track/video pairs."""
    for row in get_track_video_repository().list_recent(limit=limit):
        click.echo(f"{row.created_at}  {row.artist} - {row.title}  {row.video_id}")


if __name__ == "__main__":
    main()
