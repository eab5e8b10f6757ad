"""HTTP-01 and DNS-01 challenge handlers, selection policy and TXT merge."""

from certbind.challenge.dns01 import Dns01Handler
from certbind.challenge.dns_merge import DnsRecordMerger
from certbind.challenge.http01 import Http01Handler
from certbind.challenge.selection import select_challenge_type

__all__ = [
    "Dns01Handler",
    "DnsRecordMerger",
    "Http01Handler",
    "select_challenge_type",
]
