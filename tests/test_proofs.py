"""Tests for payment-proof storage."""

import pytest

from installment_ledger.config import ProofStorageConfig
from installment_ledger.exceptions import LedgerValidationError, ProofRejectedError
from installment_ledger.proofs import DiskProofStore


class TestDiskProofStore:
    """Tests for DiskProofStore."""

    def test_save_returns_public_reference(self, proof_store: DiskProofStore) -> None:
        reference = proof_store.save(7, b"%PDF-1.4 test", "bank slip.PDF")
        assert reference.startswith("/uploads/payment-proofs/contract-7-")
        assert reference.endswith(".pdf")
        assert proof_store.path_for(reference).read_bytes() == b"%PDF-1.4 test"

    def test_extension_from_content_type(self, proof_store: DiskProofStore) -> None:
        reference = proof_store.save(1, b"jpegdata", "", "image/jpeg")
        assert reference.endswith(".jpg")

    def test_two_saves_do_not_collide(self, proof_store: DiskProofStore) -> None:
        first = proof_store.save(1, b"a", "a.png")
        second = proof_store.save(1, b"b", "b.png")
        assert first != second

    def test_empty_file_rejected(self, proof_store: DiskProofStore) -> None:
        with pytest.raises(ProofRejectedError, match="File missing"):
            proof_store.save(1, b"", "a.png")

    def test_oversize_rejected(self, tmp_path) -> None:
        store = DiskProofStore(ProofStorageConfig(upload_dir=tmp_path, max_bytes=10))
        with pytest.raises(ProofRejectedError, match="too large"):
            store.save(1, b"x" * 11, "a.png")

    @pytest.mark.parametrize("filename,content_type", [("a.gif", None), ("a.exe", None), ("", None), ("a.png", "text/html")])
    def test_disallowed_types(self, proof_store: DiskProofStore, filename, content_type) -> None:
        with pytest.raises(ProofRejectedError):
            proof_store.save(1, b"data", filename, content_type)

    def test_rejection_is_validation_error(self) -> None:
        assert issubclass(ProofRejectedError, LedgerValidationError)

    def test_delete(self, proof_store: DiskProofStore) -> None:
        reference = proof_store.save(1, b"a", "a.webp")
        assert proof_store.delete(reference) is True
        assert proof_store.delete(reference) is False

    @pytest.mark.parametrize(
        "reference",
        [None, "", "/elsewhere/a.png", "/uploads/payment-proofs/../secret.txt", "/uploads/payment-proofs/a/b.png"],
    )
    def test_foreign_references_are_ignored(self, proof_store: DiskProofStore, reference) -> None:
        assert proof_store.delete(reference) is False
