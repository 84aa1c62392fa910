"""
File-based envelope handoff between signing parties.

Each party reads the latest envelope and writes its own:

    unsigned-tx.b64 -> signed-by-signer-1.b64 -> signed-by-signer-3.b64 -> ...

The latest signed envelope is also kept as `signed-candidate.b64`; it is
what the next signer reads and what gets submitted. Any subset of signers
can therefore sign, in any order. `read_for_signer` keeps the strict
chain, where signer n reads signer n-1's file.

Files hold the base64 text of the envelope's wire bytes, so they survive
copy/paste through any text channel.
"""

from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Union
import logging

from .runtime.errors import MalformedEnvelope
from .tx.types import Envelope

logger = logging.getLogger(__name__)

UNSIGNED_FILE = "unsigned-tx.b64"
CANDIDATE_FILE = "signed-candidate.b64"
SIGNED_PATTERN = "signed-by-signer-{}.b64"


def save_envelope(envelope: Envelope, path: Union[str, Path]) -> Path:
    """Write an envelope as base64 text."""
    path = Path(path)
    path.write_text(envelope.to_base64() + "\n", encoding="ascii")
    logger.debug(f"Wrote {envelope.hash_hex()[:16]} ({len(envelope.signatures)} signatures) to {path}")
    return path


def load_envelope(path: Union[str, Path], network_id: Optional[bytes] = None) -> Envelope:
    """
    Read an envelope written by `save_envelope`.

    Raises:
        FileNotFoundError: If the file does not exist
        MalformedEnvelope: If the content is not a valid envelope for the
            given network
    """
    path = Path(path)
    text = path.read_text(encoding="ascii", errors="replace").strip()
    if not text:
        raise MalformedEnvelope(f"{path} is empty", details={"path": str(path)})
    return Envelope.from_base64(text, network_id)


class HandoffDirectory:
    """
    Directory holding the chain of handoff files for one transaction.
    """

    def __init__(self, path: Union[str, Path] = "."):
        self.path = Path(path)

    @property
    def unsigned_path(self) -> Path:
        return self.path / UNSIGNED_FILE

    @property
    def candidate_path(self) -> Path:
        return self.path / CANDIDATE_FILE

    def signed_path(self, signer: int) -> Path:
        if signer < 1:
            raise ValueError(f"Signer numbers start at 1, got {signer}")
        return self.path / SIGNED_PATTERN.format(signer)

    def input_path(self, signer: int) -> Path:
        """File signer `signer` reads: the unsigned file or the previous signer's."""
        if signer == 1:
            return self.unsigned_path
        return self.signed_path(signer - 1)

    def write_unsigned(self, envelope: Envelope) -> Path:
        """Start a new chain; files left from an earlier transaction are removed."""
        self.path.mkdir(parents=True, exist_ok=True)
        self.cleanup()
        return save_envelope(envelope, self.unsigned_path)

    def read_for_signer(self, signer: int, network_id: Optional[bytes] = None) -> Envelope:
        path = self.input_path(signer)
        if not path.exists():
            previous = "prepare" if signer == 1 else f"sign {signer - 1}"
            raise FileNotFoundError(f"{path} not found; run '{previous}' first")
        return load_envelope(path, network_id)

    def write_signed(self, signer: int, envelope: Envelope) -> Path:
        """Store signer `signer`'s output and make it the submission candidate."""
        path = save_envelope(envelope, self.signed_path(signer))
        save_envelope(envelope, self.candidate_path)
        return path

    def latest(self, network_id: Optional[bytes] = None) -> Envelope:
        """Most recently signed envelope, falling back to the unsigned one."""
        if self.candidate_path.exists():
            return load_envelope(self.candidate_path, network_id)
        if self.unsigned_path.exists():
            return load_envelope(self.unsigned_path, network_id)
        raise FileNotFoundError(f"No handoff files in {self.path}; run 'prepare' first")

    def files(self) -> List[Path]:
        found = [self.unsigned_path] + sorted(self.path.glob(SIGNED_PATTERN.format("*")))
        found.append(self.candidate_path)
        return [p for p in found if p.exists()]

    def cleanup(self) -> List[Path]:
        """Remove every handoff file. Returns the removed paths."""
        removed = []
        for path in self.files():
            path.unlink()
            logger.info(f"Cleaned up {path}")
            removed.append(path)
        return removed
