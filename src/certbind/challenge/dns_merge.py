"""Ownership-tagged TXT record merge.

Several authorizations of one order (``*.example.com`` and
``example.com``) publish different values at the same record name, so
writes must merge instead of overwrite.  Values left behind by an
earlier, unrelated workflow must not accumulate either.  The record set
carries the id of the workflow instance that owns it:

* absent record            -> new set owned by us, holding our value
* foreign or missing owner -> previous values dropped, set retagged
* owned by us              -> previous values kept

The value is appended only if not already present, and the TTL is
forced to the configured short value.

The merger serialises writers to the same record inside one process.
Writers in different processes are not coordinated: two of them can
both read before either writes and one update is lost.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING

from certbind.models.dns import OWNER_TAG_KEY, TxtRecordSet

if TYPE_CHECKING:
    from certbind.clients.base import DnsClient
    from certbind.models.dns import DnsZone

log = logging.getLogger(__name__)

DEFAULT_TTL = 60


def merge_txt_record_set(
    existing: TxtRecordSet | None,
    values: Iterable[str],
    owner: str,
    ttl: int = DEFAULT_TTL,
) -> TxtRecordSet:
    """Return the record set to write after merging *values* for *owner*."""
    if existing is None or existing.owner != owner:
        kept: list[str] = []
        metadata = {} if existing is None else dict(existing.metadata)
    else:
        kept = list(existing.values)
        metadata = dict(existing.metadata)

    for value in values:
        if value not in kept:
            kept.append(value)

    metadata[OWNER_TAG_KEY] = owner
    return TxtRecordSet(ttl=ttl, values=tuple(kept), metadata=metadata)


class DnsRecordMerger:
    """Read-merge-write TXT records through a :class:`DnsClient`.

    Parameters
    ----------
    dns:
        Client used to read and write record sets.
    ttl:
        TTL forced on every written record set.

    """

    def __init__(self, dns: DnsClient, ttl: int = DEFAULT_TTL) -> None:
        self._dns = dns
        self._ttl = ttl
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, zone: DnsZone, name: str) -> threading.Lock:
        key = (zone.name.lower(), name.lower())
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def merge(self, zone: DnsZone, name: str, value: str, owner: str) -> TxtRecordSet:
        """Merge one value into the record at *name* in *zone*."""
        return self.merge_many(zone, name, [value], owner)

    def merge_many(
        self,
        zone: DnsZone,
        name: str,
        values: Iterable[str],
        owner: str,
    ) -> TxtRecordSet:
        """Merge several values into one record with a single write."""
        values = list(values)
        with self._lock_for(zone, name):
            existing = self._dns.get_txt_record_set(zone, name)
            merged = merge_txt_record_set(existing, values, owner, self._ttl)
            if existing is not None and existing.owner != owner:
                log.info(
                    "Taking over TXT record %s in zone %s from owner %s",
                    name,
                    zone.name,
                    existing.owner or "<untagged>",
                )
            self._dns.upsert_txt_record_set(zone, name, merged)

        log.debug(
            "Merged %d value(s) into TXT %s.%s (now %d)",
            len(values),
            name,
            zone.name,
            len(merged.values),
        )
        return merged
