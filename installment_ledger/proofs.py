"""Payment-proof file storage.

Proofs (receipt photos, scanned cheques, bank slips) are stored on disk and
referenced from billing rows by their public path, e.g.
``/uploads/payment-proofs/contract-7-1727170000000.png``. The ledger never
looks inside the files; it only keeps the reference.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional, Protocol

from .config import ProofStorageConfig
from .exceptions import ProofRejectedError
from .logging import get_logger

logger = get_logger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class ProofStore(Protocol):
    """Binary storage for payment proofs."""

    def save(
        self,
        contract_id: int,
        data: bytes,
        filename: str = "",
        content_type: Optional[str] = None,
    ) -> str:
        ...

    def delete(self, reference: Optional[str]) -> bool:
        ...


class DiskProofStore:
    """Stores proofs as files under a directory served at ``public_prefix``."""

    def __init__(self, config: Optional[ProofStorageConfig] = None) -> None:
        self.config = config or ProofStorageConfig()
        self.upload_dir = Path(self.config.upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.public_prefix = "/" + self.config.public_prefix.strip("/")

    def _extension(self, filename: str, content_type: Optional[str]) -> str:
        if content_type is not None and content_type.lower() not in CONTENT_TYPE_EXTENSIONS:
            raise ProofRejectedError("Only PNG/JPG/WEBP/PDF allowed")
        ext = Path(filename or "").suffix.lower()
        if not ext and content_type:
            ext = CONTENT_TYPE_EXTENSIONS[content_type.lower()]
        if ext not in self.config.allowed_extensions:
            raise ProofRejectedError("Only PNG/JPG/WEBP/PDF allowed")
        return ext

    def save(
        self,
        contract_id: int,
        data: bytes,
        filename: str = "",
        content_type: Optional[str] = None,
    ) -> str:
        """Store an uploaded proof and return its public reference."""
        if not data:
            raise ProofRejectedError("File missing")
        if len(data) > self.config.max_bytes:
            raise ProofRejectedError(
                f"File too large: {len(data)} bytes (limit {self.config.max_bytes})"
            )
        ext = self._extension(filename, content_type)

        stamp = int(time.time() * 1000)
        target = self.upload_dir / f"contract-{contract_id}-{stamp}{ext}"
        while target.exists():
            stamp += 1
            target = self.upload_dir / f"contract-{contract_id}-{stamp}{ext}"
        target.write_bytes(data)

        reference = f"{self.public_prefix}/{target.name}"
        logger.info("Stored payment proof %s (%d bytes)", reference, len(data))
        return reference

    def path_for(self, reference: str) -> Optional[Path]:
        """Resolve a reference to its file path, or ``None`` if it is not ours."""
        prefix = self.public_prefix + "/"
        if not reference or not reference.startswith(prefix):
            return None
        name = reference[len(prefix):]
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            return None
        return self.upload_dir / name

    def delete(self, reference: Optional[str]) -> bool:
        """Remove the file behind ``reference``; returns whether a file was removed."""
        path = self.path_for(reference or "")
        if path is None or not path.is_file():
            return False
        try:
            path.unlink()
        except OSError:
            logger.warning("Payment proof delete failed: %s", path, exc_info=True)
            return False
        logger.info("Removed payment proof %s", reference)
        return True
