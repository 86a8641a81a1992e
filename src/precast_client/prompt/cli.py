"""Command-line front end for the precast API client.

Pattern: Prompt Renderer
-------------------------
The CLI is the human-facing boundary, standing in for the mobile screens:

  1. **login** — collect credentials and delegate to ``Authenticator``.
  2. **request** — send one orchestrated request and print the outcome.
  3. **status / logout** — inspect or clear the stored credential pair.

Failures go through the same ``ErrorClassifier`` a screen would use, with a
console presenter in place of alert dialogs.  The CLI knows nothing about
header variants, sessions or refresh; it only sees outcomes.
"""

from __future__ import annotations

import asyncio
import datetime
import getpass
import json
import logging
import pathlib
import sys
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from precast_client.auth.authenticator import AuthenticationError
from precast_client.auth.credentials import (
    CredentialStore,
    CredentialStoreError,
    FileCredentialStore,
)
from precast_client.http.classifier import Verdict
from precast_client.http.client import PrecastClient
from precast_client.http.operation import Success
from precast_client.settings import Settings

logger = logging.getLogger(__name__)
console = Console()


class ConsolePresenter:
    """Presents classifier decisions on the console."""

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    async def alert(self, title: str, message: str) -> None:
        console.print(Panel(message, title=f"[bold red]{title}[/bold red]", border_style="red"))

    async def force_logout(self) -> None:
        await self._store.clear()
        console.print("[yellow]Stored credentials cleared. Run [bold]login[/bold] again.[/yellow]")


def _parse_pairs(items: list[str] | None, what: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid {what} '{item}', expected KEY=VALUE")
        pairs[key] = value
    return pairs


def _load_files(items: list[str] | None) -> dict[str, Any]:
    files: dict[str, Any] = {}
    for field, path in _parse_pairs(items, "file").items():
        file_path = pathlib.Path(path).expanduser()
        files[field] = (file_path.name, file_path.read_bytes())
    return files


async def _login(client: PrecastClient) -> int:
    console.print("\n[bold yellow]Login[/bold yellow]\n")
    email = input("  Email: ").strip()
    password = getpass.getpass("  Password: ")

    if not email or not password:
        console.print("[red]Email and password are required.[/red]")
        return 1

    try:
        data = await client.authenticator.login(email, password)
    except AuthenticationError as exc:
        console.print(f"[red]Authentication failed:[/red] {exc}")
        return 1

    console.print(f"\n  [green]Authenticated[/green] as [bold]{email}[/bold]")
    if data.get("role"):
        console.print(f"  Role: [bold]{data['role']}[/bold]")
    if data.get("expires_in"):
        console.print(f"  Token TTL: {data['expires_in']}s\n")
    return 0


async def _status(client: PrecastClient) -> int:
    try:
        pair = await client.store.get()
    except CredentialStoreError as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    if pair is None:
        console.print("[yellow]Not logged in.[/yellow]")
        return 1

    expiry = pair.expiry()
    table = Table(title="Stored Credentials")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="bold")
    table.add_row("API", client.settings.base_url)
    table.add_row("Refresh token", "present" if pair.refresh_token else "absent")
    table.add_row("Expires at", expiry.isoformat() if expiry else "unknown")
    if expiry is not None:
        remaining = (expiry - datetime.datetime.now(datetime.UTC)).total_seconds()
        table.add_row("Remaining", f"{max(remaining, 0):.0f}s")
    console.print(table)
    return 0


async def _request(client: PrecastClient, args: Any) -> int:
    try:
        headers = _parse_pairs(args.header, "header")
        form = _parse_pairs(args.form, "form field")
        files = _load_files(args.file)
        body = json.loads(args.json) if args.json else None
    except (ValueError, OSError) as exc:
        console.print(f"[red]{exc}[/red]")
        return 2

    outcome = await client.request(
        args.method,
        args.url,
        headers=headers,
        json=body,
        data=form or None,
        files=files or None,
        include_session_id=not args.no_session_header,
    )

    if isinstance(outcome, Success):
        style = "green" if outcome.ok else "red"
        console.print(f"[{style}]HTTP {outcome.status}[/{style}]")
        try:
            console.print_json(data=outcome.json())
        except ValueError:
            if outcome.body:
                console.print(outcome.text)
    else:
        logger.debug("Request ended with %s", outcome)

    verdict = await client.classifier.handle(outcome)
    return 0 if verdict is Verdict.OK else 1


async def _dispatch(settings: Settings, args: Any) -> int:
    store = FileCredentialStore(settings.credentials_path)
    async with PrecastClient(settings, store, presenter=ConsolePresenter(store)) as client:
        if args.command == "login":
            return await _login(client)
        if args.command == "logout":
            await client.authenticator.logout()
            console.print("[dim]Logged out.[/dim]")
            return 0
        if args.command == "status":
            return await _status(client)
        return await _request(client, args)


def run_cli(settings: Settings, args: Any) -> None:
    """Main entry point for the CLI."""
    sys.exit(asyncio.run(_dispatch(settings, args)))
