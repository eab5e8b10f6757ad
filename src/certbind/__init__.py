"""certbind: ACME certificate issuance and host-name binding orchestration."""

__version__ = "1.0.0"
