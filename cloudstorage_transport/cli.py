"""
Command-line interface for the CloudStorage transport.

This module provides a small CLI for sending raw requests to the API,
streaming uploads and downloads with progress bars.
"""

import json
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, DownloadColumn, Progress, SpinnerColumn, TextColumn, TransferSpeedColumn

from .exceptions import ApiError, CloudStorageError
from .response import JsonResponse
from .session import ApiSession
from .utils import BUFFER_SIZE, calculate_sha1, format_file_size

# Initialize Rich console
console = Console()


class CLIContext:
    """CLI context object to share state between commands."""

    def __init__(self):
        self.session: Optional[ApiSession] = None
        self.config: Dict[str, Any] = {}
        self.config_file = Path.home() / ".cloudstorage" / "config.json"

    def load_config(self):
        """Load configuration from file."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r") as f:
                    self.config = json.load(f)
            except (json.JSONDecodeError, IOError):
                self.config = {}

    def save_config(self):
        """Save configuration to file."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w") as f:
            json.dump(self.config, f, indent=2)
        self.config_file.chmod(0o600)

    def get_session(self) -> ApiSession:
        """Get authenticated session."""
        if self.session is None:
            self.session = ApiSession(
                api_key=self.config.get("api_key") or os.getenv("CLOUDSTORAGE_API_KEY"),
                api_secret=self.config.get("api_secret") or os.getenv("CLOUDSTORAGE_API_SECRET"),
                endpoint=self.config.get("endpoint"),
            )
        return self.session


# Create CLI context
cli_context = CLIContext()


def _transfer_progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=console,
    )


def _fail(action: str, error: CloudStorageError):
    console.print(f"❌ {action} failed: {error.message}")
    if isinstance(error, ApiError):
        console.print(f"   Status: {error.status_code}")
        if error.body:
            console.print(error.body, markup=False)
    sys.exit(1)


@click.group()
@click.option("--debug", is_flag=True, help="Log requests and responses")
@click.pass_context
def cli(ctx, debug):
    """CloudStorage transport CLI - raw access to the CloudStorage API."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    cli_context.load_config()

    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )
        console.print("[dim]Debug mode enabled[/dim]")


@cli.command()
@click.option("--api-key", prompt=True, help="API key for authentication")
@click.option("--api-secret", help="API secret for request signing")
@click.option("--endpoint", default="https://api.cloudstorage.com", help="CloudStorage API endpoint")
def config(api_key, api_secret, endpoint):
    """Configure CloudStorage credentials and endpoint."""
    cli_context.config.update({
        "api_key": api_key,
        "endpoint": endpoint,
    })

    if api_secret:
        cli_context.config["api_secret"] = api_secret

    cli_context.save_config()
    cli_context.session = None

    console.print("✅ Configuration saved successfully!")


@cli.command()
@click.argument("path")
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), help="Write the body to a file")
def get(path, output):
    """Send a GET request and print the response."""
    try:
        session = cli_context.get_session()
        with session.request("GET", path).send() as response:
            if output:
                with open(output, "wb") as f:
                    shutil.copyfileobj(response.get_body(), f, BUFFER_SIZE)
                console.print(f"✅ Saved response to {output}")
            elif isinstance(response, JsonResponse):
                console.print_json(data=response.json())
            else:
                shutil.copyfileobj(response.get_body(), click.get_binary_stream("stdout"), BUFFER_SIZE)
    except CloudStorageError as e:
        _fail("Request", e)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--path", "api_path", default="/api/files", show_default=True, help="Upload endpoint")
@click.option("--name", "remote_name", help="Remote filename (defaults to the local name)")
@click.option("--field", "fields", multiple=True, help="Extra form field as KEY=VALUE")
@click.option("--checksum", is_flag=True, help="Send a SHA1 of the file for integrity checking")
def upload(file, api_path, remote_name, fields, checksum):
    """Upload a file as a streamed multipart request."""
    file_path = Path(file)
    filename = remote_name or file_path.name
    size = file_path.stat().st_size

    parsed_fields = []
    for field in fields:
        key, sep, value = field.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {field!r}", param_hint="--field")
        parsed_fields.append((key, value))

    try:
        session = cli_context.get_session()
        request = session.upload_request(api_path)
        for key, value in parsed_fields:
            request.put_field(key, value)

        with open(file_path, "rb") as f, _transfer_progress() as progress:
            if checksum:
                request.set_content_checksum(calculate_sha1(f))
            request.set_file(f, filename, size)

            task = progress.add_task(f"Uploading {filename}", total=size)

            def on_progress(sent: int, total: int):
                progress.update(task, completed=sent)

            with request.send(listener=on_progress) as response:
                result = response.json() if isinstance(response, JsonResponse) else None

        console.print(f"✅ Uploaded: {filename} ({format_file_size(size)})")
        if result is not None:
            console.print_json(data=result)
    except CloudStorageError as e:
        _fail("Upload", e)


@cli.command()
@click.argument("path")
@click.argument("output", type=click.Path(dir_okay=False, writable=True))
def download(path, output):
    """Stream a response body from PATH into OUTPUT."""
    try:
        session = cli_context.get_session()
        with session.request("GET", path).send() as response, _transfer_progress() as progress:
            total = response.content_length if response.content_length > 0 else None
            task = progress.add_task(f"Downloading {Path(output).name}", total=total)

            def on_progress(received: int, expected: int):
                progress.update(task, completed=received)

            with open(output, "wb") as f:
                shutil.copyfileobj(response.get_body(listener=on_progress), f, BUFFER_SIZE)

        console.print(f"✅ Downloaded: {output}")
    except CloudStorageError as e:
        _fail("Download", e)


if __name__ == "__main__":
    cli()
