"""Managed DNS zone and TXT record set value objects."""

from __future__ import annotations

from dataclasses import dataclass, field

OWNER_TAG_KEY = "InstanceId"


@dataclass(frozen=True)
class DnsZone:
    name: str
    resource_group: str = ""


@dataclass(frozen=True)
class TxtRecordSet:
    """TXT values at one record name, tagged with the owning workflow."""

    ttl: int
    values: tuple[str, ...] = ()
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def owner(self) -> str | None:
        return self.metadata.get(OWNER_TAG_KEY)
