"""Core enums, state machines and ACME key-authorization helpers."""
