from __future__ import annotations

from handle_monitor.pz_monitor.contracts import (
    AdminCredentialSet,
    AssetAmount,
    AssetBalance,
    HandleRecord,
    OutcomeKind,
    PassSummary,
    PersonalizationRecord,
    ReferenceMetadata,
    ValidatorAllowlist,
    VerificationOutcome,
    reference_asset_for,
)
from handle_monitor.pz_monitor.errors import (
    DatumDecodeError,
    InfrastructureError,
    NotFoundError,
    error_detail,
    reason_code,
)

POLICY = "f0ff48bbb7bbe9d59a40f1ce90e9e9d0ff5002ec48f232b49ca0fb9a"


def test_handle_record_reads_resolved_ada_address_and_blanks_missing_fields() -> None:
    record = HandleRecord.from_payload(
        {
            "name": "alice",
            "resolved_addresses": {"ada": "addr_test1alice"},
            "bg_asset": "",
            "pfp_asset": f"{POLICY}000de140706670",
            "og_number": 12,
            "image": "ipfs://zb2rh",
        }
    )
    assert record.name == "alice"
    assert record.resolved_address == "addr_test1alice"
    assert record.bg_asset is None
    assert record.pfp_asset == f"{POLICY}000de140706670"
    assert record.og_number == 12
    assert record.image == "ipfs://zb2rh"


def test_handle_record_without_resolved_addresses_has_no_address() -> None:
    record = HandleRecord.from_payload({"name": "bob"})
    assert record.resolved_address is None
    assert record.og_number is None
    assert record.image == ""


def test_personalization_and_reference_payloads() -> None:
    personalization = PersonalizationRecord.from_payload(
        {"designer": {"font": "ubuntu"}, "validated_by": "ABCD"}
    )
    assert personalization.designer == {"font": "ubuntu"}
    assert personalization.validated_by == "ABCD"

    reference = ReferenceMetadata.from_payload({"script": {"validatorHash": "v1"}})
    assert reference.validator_hash == "v1"
    assert ReferenceMetadata.from_payload({"script": None}).validator_hash is None


def test_admin_credentials_match_case_insensitively() -> None:
    credentials = AdminCredentialSet.from_hashes(["0xAABB", "ccdd", ""])
    assert len(credentials) == 2
    assert credentials.contains("aabb")
    assert credentials.contains("CCDD")
    assert not credentials.contains(None)
    assert not credentials.contains("")


def test_validator_allowlist_matches_exactly() -> None:
    allowlist = ValidatorAllowlist.from_hashes(["abc", None, ""])
    assert len(allowlist) == 1
    assert allowlist.contains("abc")
    assert not allowlist.contains("ABC")
    assert not allowlist.contains(None)


def test_asset_balance_holds_unit() -> None:
    balance = AssetBalance(address="addr", amounts=(AssetAmount(unit="lovelace", quantity="5"),))
    assert balance.holds("lovelace")
    assert not balance.holds(f"{POLICY}00")


def test_reference_asset_swaps_user_label_for_reference_label() -> None:
    assert reference_asset_for(f"{POLICY}000de14062670001") == f"{POLICY}000643b062670001"
    assert reference_asset_for(f"{POLICY}001bc28062670001") == f"{POLICY}000643b062670001"
    assert reference_asset_for(f"{POLICY}62670001") is None
    assert reference_asset_for(None) is None


def test_outcome_payloads_only_carry_set_fields() -> None:
    mismatch = VerificationOutcome.ownership_mismatch("alice", asset="bg")
    assert mismatch.is_finding
    assert mismatch.as_dict() == {"handle": "alice", "kind": "OWNERSHIP_MISMATCH", "asset": "bg"}

    error = VerificationOutcome.error("alice", stage="render", detail="RENDER_FAILED:500|boom")
    assert not error.is_finding
    assert error.as_dict()["stage"] == "render"
    assert VerificationOutcome.verified("alice").kind == OutcomeKind.VERIFIED


def test_pass_summary_counts_by_kind() -> None:
    summary = PassSummary(pass_index=1, record_count=3)
    summary.record(VerificationOutcome.verified("a"))
    summary.record(VerificationOutcome.verified("b"))
    summary.record(VerificationOutcome.image_mismatch("c", claimed="ipfs://x", computed="ipfs://y"))
    assert summary.total == 3
    assert summary.as_dict()["counts"] == {"IMAGE_MISMATCH": 1, "VERIFIED": 2}


def test_reason_codes_are_stable() -> None:
    assert reason_code(InfrastructureError("BLOCKFROST_TIMEOUT", "/addresses/x")) == "BLOCKFROST_TIMEOUT"
    assert reason_code(DatumDecodeError("truncated")) == "DATUM_DECODE_FAILED"
    assert reason_code(NotFoundError("HANDLE_NOT_FOUND")) == "HANDLE_NOT_FOUND"
    assert reason_code(RuntimeError("boom")) == "INTERNAL_ERROR"
    assert reason_code(RuntimeError("RATE_LIMITED: retry later")) == "RATE_LIMITED"
    assert reason_code(RuntimeError("UPSTREAM DOWN")) == "INTERNAL_ERROR"
    assert reason_code(RuntimeError("")) == "INTERNAL_ERROR"
    assert error_detail(NotFoundError("HANDLE_NOT_FOUND")) == "HANDLE_NOT_FOUND"
    assert error_detail(ValueError("x" * 400)) == "x" * 256
