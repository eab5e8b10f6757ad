"""Finalization and installation services used by the workflow activities."""
