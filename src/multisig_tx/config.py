"""Configuration for multisig transaction pipelines."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from .codec.hashes import network_id
from .runtime.errors import ConfigurationError

DEFAULT_PASSPHRASE = "Test Multisig Network ; 2025"
DEFAULT_BASE_FEE = 100


class SecondPassPolicy(str, Enum):
    """When to re-simulate the signed envelope before submitting it."""
    ALWAYS = "always"
    NEVER = "never"
    SIGNER_SPECIFIC = "signer_specific"


@dataclass
class PollPolicy:
    """
    Bounds for finalization polling.

    Polling stops after `max_attempts` status queries or once `timeout`
    seconds (when set) have elapsed, whichever comes first.
    """
    max_attempts: int = 30
    interval: float = 1.0
    timeout: Optional[float] = None

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(f"Poll attempts must be at least 1 (got {self.max_attempts}).")
        if self.interval < 0:
            raise ConfigurationError(f"Poll interval must not be negative (got {self.interval}).")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"Poll timeout must be greater than zero (got {self.timeout}).")


@dataclass
class NetworkConfig:
    rpc_url: str = "http://localhost:8000/rpc"
    passphrase: str = DEFAULT_PASSPHRASE
    request_timeout: float = 30.0

    def validate(self) -> None:
        if not self.rpc_url:
            raise ConfigurationError("RPC URL must be provided.")
        if not self.passphrase:
            raise ConfigurationError("Network passphrase must be provided.")
        if self.request_timeout <= 0:
            raise ConfigurationError(f"Request timeout must be greater than zero (got {self.request_timeout}).")

    @property
    def network_id(self) -> bytes:
        return network_id(self.passphrase)


@dataclass
class PipelineConfig:
    """
    Per-attempt settings.

    `tx_timeout` is the validity window in seconds written into new bodies;
    0 leaves the body unbounded in time.
    """
    base_fee: int = DEFAULT_BASE_FEE
    tx_timeout: int = 0
    second_pass: SecondPassPolicy = SecondPassPolicy.SIGNER_SPECIFIC
    poll: PollPolicy = field(default_factory=PollPolicy)
    submit_retries: int = 3
    retry_delay: float = 1.0

    def validate(self) -> None:
        if self.base_fee < 0:
            raise ConfigurationError(f"Base fee must not be negative (got {self.base_fee}).")
        if self.tx_timeout < 0:
            raise ConfigurationError(f"Transaction timeout must not be negative (got {self.tx_timeout}).")
        if self.submit_retries < 1:
            raise ConfigurationError(f"Submit retries must be at least 1 (got {self.submit_retries}).")
        if self.retry_delay < 0:
            raise ConfigurationError(f"Retry delay must not be negative (got {self.retry_delay}).")
        self.poll.validate()


@dataclass
class Settings:
    network: NetworkConfig = field(default_factory=NetworkConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    def validate(self) -> None:
        self.network.validate()
        self.pipeline.validate()


def _get(env: Mapping[str, str], name: str, cast, default):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}", cause=e)


def load_config(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from environment variables.

    Recognised variables: MULTISIG_RPC_URL, MULTISIG_NETWORK_PASSPHRASE,
    MULTISIG_REQUEST_TIMEOUT, MULTISIG_BASE_FEE, MULTISIG_TX_TIMEOUT,
    MULTISIG_SECOND_PASS, MULTISIG_POLL_ATTEMPTS, MULTISIG_POLL_INTERVAL,
    MULTISIG_POLL_TIMEOUT, MULTISIG_SUBMIT_RETRIES.

    Raises:
        ConfigurationError: If a value cannot be parsed or fails validation
    """
    if env is None:
        env = os.environ

    network = NetworkConfig(
        rpc_url=_get(env, "MULTISIG_RPC_URL", str, NetworkConfig.rpc_url),
        passphrase=_get(env, "MULTISIG_NETWORK_PASSPHRASE", str, DEFAULT_PASSPHRASE),
        request_timeout=_get(env, "MULTISIG_REQUEST_TIMEOUT", float, 30.0),
    )
    pipeline = PipelineConfig(
        base_fee=_get(env, "MULTISIG_BASE_FEE", int, DEFAULT_BASE_FEE),
        tx_timeout=_get(env, "MULTISIG_TX_TIMEOUT", int, 0),
        second_pass=_get(env, "MULTISIG_SECOND_PASS", lambda v: SecondPassPolicy(v.lower()),
                         SecondPassPolicy.SIGNER_SPECIFIC),
        poll=PollPolicy(
            max_attempts=_get(env, "MULTISIG_POLL_ATTEMPTS", int, 30),
            interval=_get(env, "MULTISIG_POLL_INTERVAL", float, 1.0),
            timeout=_get(env, "MULTISIG_POLL_TIMEOUT", float, None),
        ),
        submit_retries=_get(env, "MULTISIG_SUBMIT_RETRIES", int, 3),
    )
    settings = Settings(network=network, pipeline=pipeline)
    settings.validate()
    return settings


__all__ = [
    "DEFAULT_PASSPHRASE",
    "DEFAULT_BASE_FEE",
    "SecondPassPolicy",
    "PollPolicy",
    "NetworkConfig",
    "PipelineConfig",
    "Settings",
    "load_config",
]
