# Core package initialization
# Configuration, errors, logging and the HTTP helpers shared by controllers

from . import config, exceptions, security

__all__ = [
    "config",
    "exceptions",
    "security",
]
