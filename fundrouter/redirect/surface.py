"""
Redirect surfaces: where the hosted payment page is shown to the user.
"""

from __future__ import annotations

from typing import Optional, Protocol

from rich.console import Console


class RedirectSurface(Protocol):
    def show(self, url: str) -> None: ...

    def close(self) -> None: ...

    def set_loading(self, loading: bool) -> None: ...


class ConsoleSurface:
    """Prints the payment link for a terminal user."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()
        self.url: Optional[str] = None
        self.loading = False
        self.opened = 0

    def show(self, url: str) -> None:
        self.url = url
        self.opened += 1
        self.loading = True
        self.console.print(f"[bold]Open this link to pay:[/bold] {url}")

    def close(self) -> None:
        self.url = None
        self.loading = False

    def set_loading(self, loading: bool) -> None:
        self.loading = loading
