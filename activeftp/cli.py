#!/usr/bin/env python3
"""
activeftp CLI

Command-line interface for the active-mode FTP client and server.

Usage:
    activeftp serve PORT                 # Start a server
    activeftp connect SERVER_IP PORT     # Interactive client session
"""

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from .auth import CredentialStore
from .client import ClientShell, FtpClient, console_reader, reply_printer
from .config import Config, load_config
from .protocol.errors import FtpError, LoginFailed
from .server import FtpServer
from .utils import is_valid_ipv4, is_valid_port

console = Console()


def setup_logging(level: str = 'INFO', verbose: bool = False):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def validate_ip(ctx, param, value: str) -> str:
    if not is_valid_ipv4(value):
        raise click.BadParameter(f"Invalid IP: {value}")
    return value


def validate_port(ctx, param, value: str) -> int:
    if not is_valid_port(value):
        raise click.BadParameter(f"Invalid port: {value}")
    return int(value)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(path_type=Path),
              help='JSON config file')
@click.pass_context
def cli(ctx, verbose, config_path):
    """activeftp - active-mode file transfer client and server."""
    try:
        config = load_config(config_path)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"bad configuration: {e}")
    setup_logging(config.log_level, verbose)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.argument('port', callback=validate_port)
@click.option('--root', type=click.Path(file_okay=False, path_type=Path),
              help='Directory served to clients')
@click.option('--credentials', type=click.Path(dir_okay=False, path_type=Path),
              help='File of user:pass lines')
@click.pass_context
def serve(ctx, port, root, credentials):
    """Start a server listening on PORT."""
    config: Config = ctx.obj['config']
    if root:
        config.root_dir = root
    if credentials:
        config.credentials_file = credentials

    async def run():
        server = FtpServer(config, port, CredentialStore(config.credentials_file))
        try:
            await server.start()
        except OSError as e:
            console.print(f"[red]Error binding socket on port {port}: {e}[/red]")
            return 1

        console.print(Panel.fit(
            f"[bold green]FTP Server Started[/bold green]\n\n"
            f"Port: [yellow]{server.port}[/yellow]\n"
            f"Root: [blue]{Path(config.root_dir).resolve()}[/blue]\n"
            f"Credentials: [blue]{config.credentials_file}[/blue]",
            title="Server Info"
        ))
        console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

        try:
            await server.serve_forever()
        except asyncio.CancelledError:
            pass
        finally:
            await server.stop()
            console.print("[green]Server stopped[/green]")
        return 0

    try:
        code = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
        code = 0
    ctx.exit(code)


@cli.command()
@click.argument('server_ip', callback=validate_ip)
@click.argument('port', callback=validate_port)
@click.option('--download-dir', type=click.Path(file_okay=False, path_type=Path),
              help='Where downloaded files are written')
@click.pass_context
def connect(ctx, server_ip, port, download_dir):
    """Connect to SERVER_IP:PORT and start an interactive session."""
    config: Config = ctx.obj['config']
    if download_dir:
        config.download_dir = download_dir

    async def run() -> int:
        try:
            client = await FtpClient.connect(
                server_ip, port, config, on_reply=reply_printer(console)
            )
        except FtpError as e:
            console.print(f"[red]connect failed: {e}[/red]")
            return 1

        shell = ClientShell(client, console_reader(console), console)
        try:
            await shell.login()
            await shell.run()
        except LoginFailed:
            console.print("[red]Login incorrect[/red]")
            return 1
        except FtpError as e:
            console.print(f"[red]unexpected response from server: {e}[/red]")
            return 1
        finally:
            await client.close()
        return 0

    try:
        code = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        code = 1
    ctx.exit(code)


if __name__ == '__main__':
    cli()
