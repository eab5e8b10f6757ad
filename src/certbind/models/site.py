"""Hosting-side site, configuration and host-name binding models.

Unlike the other models these are mutable: host-name bindings are
changed in place and flushed with one site update.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from certbind.core.types import SslState

PRODUCTION_SLOT = "production"


@dataclass
class HostNameBinding:
    name: str
    thumbprint: str | None = None
    ssl_state: SslState = SslState.DISABLED
    to_update: bool = False


@dataclass
class Site:
    resource_group: str
    name: str
    slot: str = PRODUCTION_SLOT
    kind: str = "app"
    location: str = ""
    server_farm_id: str | None = None
    scm_url: str | None = None
    host_name_bindings: list[HostNameBinding] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        if self.slot and self.slot != PRODUCTION_SLOT:
            return f"{self.resource_group}/{self.name}/{self.slot}"
        return f"{self.resource_group}/{self.name}"

    def find_bindings(self, domains) -> list[HostNameBinding]:
        """Return the bindings whose name matches one of *domains* (case-insensitive)."""
        wanted = {d.lower() for d in domains}
        return [b for b in self.host_name_bindings if b.name.lower() in wanted]

    def missing_domains(self, domains) -> list[str]:
        """Return the requested domains with no host-name binding on this site."""
        bound = {b.name.lower() for b in self.host_name_bindings}
        return [d for d in domains if d.lower() not in bound]


@dataclass
class VirtualApplication:
    virtual_path: str
    physical_path: str
    preload_enabled: bool = False


@dataclass
class SiteConfig:
    virtual_applications: list[VirtualApplication] = field(default_factory=list)


@dataclass(frozen=True)
class PublishingCredentials:
    user_name: str
    password: str
