"""Workflow input documents.

Each request validates itself in ``from_dict`` and raises
:class:`InputValidationError` listing every problem found, so invalid
input is rejected before any workflow instance is created.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from certbind.errors import InputValidationError

DEFAULT_SLOT = "production"


def _require_str(data: dict, key: str, errors: list[str]) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{key} is empty.")
        return ""
    return value.strip()


def _optional_slot(data: dict, errors: list[str]) -> str:
    value = data.get("slot")
    if value is None:
        return DEFAULT_SLOT
    if not isinstance(value, str) or not value.strip():
        errors.append("slot must be a non-empty string.")
        return DEFAULT_SLOT
    return value.strip()


def _require_domains(data: dict, errors: list[str]) -> tuple[str, ...]:
    domains = data.get("domains")
    if not isinstance(domains, list) or not domains:
        errors.append("domains is empty.")
        return ()
    cleaned = []
    for idx, domain in enumerate(domains):
        if not isinstance(domain, str) or not domain.strip():
            errors.append(f"domains[{idx}] must be a non-empty string.")
            continue
        cleaned.append(domain.strip())
    return tuple(cleaned)


def _as_dict(data: Any) -> dict:
    if not isinstance(data, dict):
        msg = "request body must be a JSON object."
        raise InputValidationError([msg])
    return data


@dataclass(frozen=True)
class CertificateRequest:
    """Issue a certificate for host names already bound to one site."""

    resource_group: str
    site: str
    domains: tuple[str, ...]
    slot: str = DEFAULT_SLOT
    use_ip_based_ssl: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> CertificateRequest:
        data = _as_dict(data)
        errors: list[str] = []
        resource_group = _require_str(data, "resource_group", errors)
        site = _require_str(data, "site", errors)
        domains = _require_domains(data, errors)
        slot = _optional_slot(data, errors)
        use_ip = data.get("use_ip_based_ssl")
        if use_ip is not None and not isinstance(use_ip, bool):
            errors.append("use_ip_based_ssl must be a boolean.")
        if errors:
            raise InputValidationError(errors)
        return cls(
            resource_group=resource_group,
            site=site,
            domains=domains,
            slot=slot,
            use_ip_based_ssl=bool(use_ip),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_group": self.resource_group,
            "site": self.site,
            "slot": self.slot,
            "domains": list(self.domains),
            "use_ip_based_ssl": self.use_ip_based_ssl,
        }


@dataclass(frozen=True)
class DnsZoneBatchRequest:
    """Issue one wildcard + apex certificate per zone apex in *domains*."""

    domains: tuple[str, ...]
    resource_group: str
    location: str

    @classmethod
    def from_dict(cls, data: Any) -> DnsZoneBatchRequest:
        data = _as_dict(data)
        errors: list[str] = []
        domains = _require_domains(data, errors)
        for domain in domains:
            if domain.startswith("*."):
                errors.append(f"{domain} must be a zone apex, not a wildcard.")
        resource_group = _require_str(data, "resource_group", errors)
        location = _require_str(data, "location", errors)
        if errors:
            raise InputValidationError(errors)
        return cls(domains=domains, resource_group=resource_group, location=location)

    def to_dict(self) -> dict[str, Any]:
        return {
            "domains": list(self.domains),
            "resource_group": self.resource_group,
            "location": self.location,
        }


@dataclass(frozen=True)
class BindingTarget:
    resource_group: str
    site: str
    domain: str
    slot: str = DEFAULT_SLOT

    @property
    def site_key(self) -> tuple[str, str, str]:
        return (self.resource_group, self.site, self.slot)


@dataclass(frozen=True)
class BindingRequest:
    """Apply an already-issued certificate to host names on many sites."""

    cert_thumbprint: str
    targets: tuple[BindingTarget, ...]

    @classmethod
    def from_dict(cls, data: Any) -> BindingRequest:
        data = _as_dict(data)
        errors: list[str] = []
        thumbprint = _require_str(data, "cert_thumbprint", errors)
        raw_targets = data.get("targets")
        targets: list[BindingTarget] = []
        if not isinstance(raw_targets, list) or not raw_targets:
            errors.append("targets is empty.")
        else:
            for idx, raw in enumerate(raw_targets):
                if not isinstance(raw, dict):
                    errors.append(f"targets[{idx}] must be an object.")
                    continue
                target_errors: list[str] = []
                resource_group = _require_str(raw, "resource_group", target_errors)
                site = _require_str(raw, "site", target_errors)
                domain = _require_str(raw, "domain", target_errors)
                slot = _optional_slot(raw, target_errors)
                if target_errors:
                    errors.extend(f"targets[{idx}].{e}" for e in target_errors)
                    continue
                targets.append(
                    BindingTarget(
                        resource_group=resource_group,
                        site=site,
                        domain=domain,
                        slot=slot,
                    )
                )
        if errors:
            raise InputValidationError(errors)
        return cls(cert_thumbprint=thumbprint, targets=tuple(targets))

    def to_dict(self) -> dict[str, Any]:
        return {
            "cert_thumbprint": self.cert_thumbprint,
            "targets": [
                {
                    "resource_group": t.resource_group,
                    "site": t.site,
                    "slot": t.slot,
                    "domain": t.domain,
                }
                for t in self.targets
            ],
        }
