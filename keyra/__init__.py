"""Keyra: an encrypted vault indexed on a ledger through a signal relay."""

__version__ = "0.1.0"
