"""
JSON-RPC ledger transport.

Speaks JSON-RPC 2.0 over HTTP using `requests`. Envelopes travel as base64
of their canonical wire bytes, so what the node verifies is exactly what
the signers signed.

Methods used: getAccount, simulateTransaction, sendTransaction,
getTransaction.
"""

from __future__ import annotations
from typing import Any, Dict, Optional
import json
import logging
import random

import requests
from pydantic import ValidationError

from ..runtime.errors import ErrorCode, TransportError
from ..tx.types import (
    Account,
    AuthorizationEntry,
    CredentialsType,
    Envelope,
    ResourceData,
    SimulationResult,
    Status,
    StatusKind,
    SubmitResponse,
    SubmitStatus,
    ThresholdLevel,
)
from .base import LedgerTransport

logger = logging.getLogger(__name__)

_THRESHOLD_NAMES = {
    "low": ThresholdLevel.LOW,
    "medium": ThresholdLevel.MEDIUM,
    "high": ThresholdLevel.HIGH,
}


def _parse_auth(data: Dict[str, Any]) -> AuthorizationEntry:
    credentials = str(data.get("credentials", "source_account")).upper()
    return AuthorizationEntry(
        address=data["address"],
        nonce=int(data.get("nonce", 0)),
        expiration_ledger=int(data.get("expirationLedger", 0)),
        credentials=CredentialsType[credentials],
        invocation=data.get("invocation") or {},
    )


def _parse_resources(data: Optional[Dict[str, Any]]) -> ResourceData:
    if not data:
        return ResourceData()
    return ResourceData(
        read_only=tuple(data.get("readOnly", ())),
        read_write=tuple(data.get("readWrite", ())),
        instructions=int(data.get("instructions", 0)),
        read_bytes=int(data.get("readBytes", 0)),
        write_bytes=int(data.get("writeBytes", 0)),
        resource_fee=int(data.get("resourceFee", 0)),
    )


class JsonRpcTransport(LedgerTransport):
    """
    Ledger transport backed by a JSON-RPC endpoint.

    Example:
        ```python
        with JsonRpcTransport("https://rpc.example.org") as transport:
            account = transport.get_account(address)
        ```
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the transport.

        Args:
            endpoint: JSON-RPC endpoint URL
            timeout: Request timeout in seconds (default: 30)
            session: Optional requests.Session for connection pooling
        """
        self._endpoint = endpoint.rstrip('/')
        self._timeout = timeout
        self._session = session or requests.Session()
        self._owns_session = session is None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def close(self) -> None:
        """Close the HTTP session if owned by this transport."""
        if self._owns_session:
            self._session.close()

    # =========================================================================
    # Low-level RPC
    # =========================================================================

    def _call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make a JSON-RPC 2.0 call.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            Result from the RPC call

        Raises:
            TransportError: If the call fails at any level
        """
        request_id = random.randint(1, 1_000_000)
        request_data: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "method": method,
            "id": request_id,
        }
        if params is not None:
            request_data["params"] = params

        logger.debug(f"Request: {method} (id={request_id})")
        try:
            response = self._session.post(
                self._endpoint,
                json=request_data,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
            if response.status_code != 200:
                raise TransportError(
                    f"HTTP {response.status_code}: {response.reason}",
                    details={"method": method, "status": response.status_code},
                )
            response_data = response.json()
        except requests.exceptions.Timeout as e:
            raise TransportError(f"{method} timed out", code=ErrorCode.TIMEOUT, cause=e)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"HTTP request failed: {e}", details={"method": method}, cause=e)
        except json.JSONDecodeError as e:
            raise TransportError(f"Invalid JSON response: {e}", details={"method": method}, cause=e)

        if not isinstance(response_data, dict):
            raise TransportError(
                f"Invalid JSON-RPC response: expected an object, got {type(response_data).__name__}",
                details={"method": method},
            )
        if "error" in response_data:
            error = response_data["error"] or {}
            if not isinstance(error, dict):
                error = {"message": str(error)}
            raise TransportError(
                error.get("message", "Unknown error"),
                details={"method": method, "rpcCode": error.get("code"), "data": error.get("data")},
            )
        return response_data.get("result")

    def _parse(self, method: str, parser, result: Any):
        try:
            return parser(result)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise TransportError(f"Malformed {method} response", details={"method": method}, cause=e)

    # =========================================================================
    # LedgerTransport
    # =========================================================================

    def get_account(self, address: str) -> Account:
        result = self._call("getAccount", {"address": address})

        def parse(data: Dict[str, Any]) -> Account:
            thresholds = {_THRESHOLD_NAMES[name.lower()]: int(value)
                          for name, value in (data.get("thresholds") or {}).items()}
            return Account(
                address=data["address"],
                sequence=int(data["sequence"]),
                weights={k: int(v) for k, v in (data.get("weights") or {}).items()},
                thresholds=thresholds,
                balance=int(data.get("balance", 0)),
            )

        return self._parse("getAccount", parse, result)

    def simulate(self, envelope: Envelope) -> SimulationResult:
        result = self._call("simulateTransaction", {"transaction": envelope.to_base64()})

        def parse(data: Dict[str, Any]) -> SimulationResult:
            error = data.get("error")
            return SimulationResult(
                success=not error,
                error=error,
                resources=_parse_resources(data.get("resources")),
                auth=tuple(_parse_auth(entry) for entry in data.get("auth", ())),
                min_resource_fee=int(data.get("minResourceFee", 0)),
                latest_ledger=int(data.get("latestLedger", 0)),
            )

        return self._parse("simulateTransaction", parse, result)

    def submit(self, envelope: Envelope) -> SubmitResponse:
        result = self._call("sendTransaction", {"transaction": envelope.to_base64()})

        def parse(data: Dict[str, Any]) -> SubmitResponse:
            return SubmitResponse(
                tx_hash=data.get("hash") or envelope.hash_hex(),
                status=SubmitStatus(str(data["status"]).upper()),
                error=data.get("errorResult"),
                error_code=data.get("errorCode"),
                latest_ledger=data.get("latestLedger"),
            )

        return self._parse("sendTransaction", parse, result)

    def get_status(self, tx_hash: str) -> Status:
        result = self._call("getTransaction", {"hash": tx_hash})

        def parse(data: Dict[str, Any]) -> Status:
            return Status(
                kind=StatusKind(str(data["status"]).upper()),
                tx_hash=tx_hash,
                result=data.get("result"),
                reason=data.get("reason"),
                ledger=data.get("ledger"),
            )

        return self._parse("getTransaction", parse, result)
