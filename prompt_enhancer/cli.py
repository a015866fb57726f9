"""CLI interface for the Prompt Enhancer API."""

import asyncio
import json
from typing import Optional

import click
from dotenv import load_dotenv

from . import __version__
from .auth import CredentialStore
from .config import Settings
from .enhancer import PromptFormat, create_enhancer
from .utils.exceptions import ConfigurationError, PromptEnhancerError

# Load environment variables
load_dotenv()


def _load_settings() -> Settings:
    try:
        return Settings.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(version=__version__)
def cli():
    """Prompt Enhancer: rewrite short prompts into detailed LLM instructions."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
@click.option("--port", default=8080, help="HTTP port (default: 8080)")
def serve(host: str, port: int):
    """Start the HTTP API."""
    from .http_server import run_http_server

    click.echo(f"Starting Prompt Enhancer API on {host}:{port}...")
    run_http_server(host=host, port=port)


@cli.command()
@click.option("--client-id", "-c", default="cli-client", help="clientId claim for the token")
@click.option("--expires-in", "-e", type=int, help="Lifetime in seconds (default: JWT_EXPIRY_SECONDS)")
@click.option("--json", "output_json", is_flag=True, help="Output the token response as JSON")
def token(client_id: str, expires_in: Optional[int], output_json: bool):
    """Mint an access token with the configured JWT_SECRET."""
    settings = _load_settings()
    if not settings.jwt_secret:
        raise click.ClickException("JWT_SECRET must be set to mint tokens that the server will accept")

    credentials = CredentialStore.from_settings(settings)
    lifetime = expires_in if expires_in is not None else credentials.default_expiry_seconds
    try:
        access_token = credentials.sign_token(
            {"clientId": client_id, "scope": settings.token_scope}, expires_in=lifetime
        )
    except PromptEnhancerError as e:
        raise click.ClickException(str(e)) from e

    if output_json:
        click.echo(json.dumps({
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": lifetime,
            "scope": settings.token_scope,
        }, indent=2))
    else:
        click.echo(access_token)


@cli.command()
@click.argument("text")
@click.option(
    "--format",
    "-f",
    "output_format",
    default=PromptFormat.STRUCTURED.value,
    type=click.Choice([f.value for f in PromptFormat]),
    help="Output format the enhanced prompt asks for",
)
def enhance(text: str, output_format: str):
    """Enhance a prompt with the configured provider."""
    settings = _load_settings()

    async def run_enhancement():
        enhancer = create_enhancer(settings)
        try:
            return await enhancer.enhance(text, PromptFormat(output_format))
        finally:
            await enhancer.close()

    try:
        enhanced = asyncio.run(run_enhancement())
    except PromptEnhancerError as e:
        raise click.ClickException(str(e)) from e

    click.echo("Original prompt:")
    click.echo(f"  {text}\n")
    click.echo("Enhanced prompt:")
    click.echo(enhanced)


if __name__ == "__main__":
    cli()
