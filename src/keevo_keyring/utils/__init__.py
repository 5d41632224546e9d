"""Utility modules for keevo_keyring."""

from keevo_keyring.utils.locks import RequestGate

__all__ = ["RequestGate"]
