"""
multisig_tx - threshold-signed transaction assembly

Builds a transaction, resolves its cost and authorization by simulation,
collects weighted signatures from independent parties through a canonical
envelope, and submits it with bounded finalization polling.
"""

from .runtime.errors import *
from .config import (
    DEFAULT_BASE_FEE,
    DEFAULT_PASSPHRASE,
    NetworkConfig,
    PipelineConfig,
    PollPolicy,
    SecondPassPolicy,
    Settings,
    load_config,
)
from .tx import *
from .signers import (
    Signer,
    SignerError,
    CallbackSigner,
    Ed25519Signer,
    merge_signatures,
    threshold_progress,
    ThresholdProgress,
)
from .simulation import SimulationResolver, assemble_with_authorization, requires_second_pass
from .submission import FinalizationTracker
from .recovery import RetryPolicy, ExponentialBackoff, FixedBackoff, MaxRetriesExceeded
from .transport import LedgerTransport, JsonRpcTransport, InMemoryLedger, Contract, ContractTrap
from .pipeline import (
    PipelineState,
    FinalResult,
    TransactionPipeline,
    build_unsigned,
    simulate_and_prepare,
    sign,
    accumulated_weight,
    meets_threshold,
    submit_and_finalize,
)

__version__ = "0.1.0"
