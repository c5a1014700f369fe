"""Exceptions raised by the review harvester."""

from __future__ import annotations


class HarvestError(Exception):
    """Base class for harvester errors."""


class ProviderUnavailableError(HarvestError):
    """The data source is gone (browser page lost, API transport down).

    Raised by extraction providers only for unrecoverable conditions.
    "No more data" is never an error.
    """

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class InvalidProductUrlError(HarvestError):
    """Product URL does not contain a recognisable product id."""


class SinkError(HarvestError):
    """The sink could not persist a batch."""
