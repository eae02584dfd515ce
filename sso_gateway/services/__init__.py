"""Cryptographic services: config encryption, password derivation, Multipass."""

from .encryption import EncryptionService
from .multipass import MultipassService
from .password import PasswordService

__all__ = [
    "EncryptionService",
    "MultipassService",
    "PasswordService",
]
