"""
Transaction data model, operation constructors and body building.
"""

from .types import *
from .types import __all__ as _types_all
from .operations import (
    payment,
    set_options,
    invoke_contract,
    bump_sequence,
    configure_multisig,
    operation_threshold,
    required_level,
)
from .builder import BASE_FEE, build_unsigned

__all__ = list(_types_all) + [
    "payment",
    "set_options",
    "invoke_contract",
    "bump_sequence",
    "configure_multisig",
    "operation_threshold",
    "required_level",
    "BASE_FEE",
    "build_unsigned",
]
