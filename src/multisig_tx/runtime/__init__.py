"""
Runtime support for multisig_tx.

Exposes the error model shared by every layer of the package.
"""

from .errors import *  # noqa: F401,F403
from .errors import __all__ as _errors_all

__all__ = list(_errors_all)
