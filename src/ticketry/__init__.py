"""Ticketry -- issue tracker with per-project workflows and state-dependent custom fields."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ticketry")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from ticketry.core import Issue, TicketDB

__all__ = ["Issue", "TicketDB", "__version__"]
