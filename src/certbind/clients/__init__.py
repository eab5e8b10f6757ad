"""ACME, DNS and hosting client interfaces."""

from certbind.clients.base import AcmeClient, DnsClient, HostingClient

__all__ = ["AcmeClient", "DnsClient", "HostingClient"]
