"""CLI entry point for media proxy management commands."""

import secrets
import sys

import click

from mediaproxy import create_app
from mediaproxy.config import ConfigurationError
from mediaproxy.consts import ALLOWED_FITS
from mediaproxy.exceptions import ValidationException


@click.group()
def cli() -> None:
    """Media proxy CLI - URL signing and secret management commands."""
    pass


@cli.command()
@click.argument("source_url")
@click.option("--width", "-w", type=int, default=None, help="Target width (1-2000)")
@click.option("--height", "-h", type=int, default=None, help="Target height (1-2000)")
@click.option("--quality", "-q", type=int, default=None, help="Output quality (40-85)")
@click.option(
    "--fit",
    type=click.Choice(sorted(ALLOWED_FITS)),
    default=None,
    help="Resize fit mode",
)
@click.option("--absolute", is_flag=True, help="Prefix the URL with SITE_URL")
def sign_url(
    source_url: str,
    width: int | None,
    height: int | None,
    quality: int | None,
    fit: str | None,
    absolute: bool,
) -> None:
    """Print a signed proxy URL for an upstream image.

    URLs on hosts that are not allow-listed are printed unchanged.

    Examples:
        mediaproxy-cli sign-url https://images.microcms-assets.io/assets/a.png -w 600 --fit crop
        mediaproxy-cli sign-url https://images.microcms-assets.io/assets/a.png --absolute
    """
    try:
        app = create_app()
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    params = {"w": width, "h": height, "q": quality, "fit": fit}

    signer = app.container.media_signer_service()
    try:
        signed = signer.build_signed_url(
            source_url,
            {key: value for key, value in params.items() if value is not None},
            absolute=absolute,
        )
    except ValidationException as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    if signed == source_url:
        click.echo("Warning: URL returned unchanged (site path, proxy URL or host not allow-listed)", err=True)

    click.echo(signed)


@cli.command()
@click.option("--length", type=int, default=32, show_default=True, help="Random bytes")
def generate_secret(length: int) -> None:
    """Print a random value suitable for MEDIA_PROXY_SECRET."""
    if length < 16:
        click.echo("Error: --length must be at least 16", err=True)
        sys.exit(1)
    click.echo(secrets.token_urlsafe(length))


def main() -> None:
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
