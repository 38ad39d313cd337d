"""
CLI tests, driven through `main(argv)`.
"""

from __future__ import annotations

import json

import pytest
import yaml

from ticketmint.cli import main
from ticketmint.codec import claim_digest
from ticketmint.keys import DEFAULT_PROGRAM_ID, Keypair
from ticketmint.signing import generate_claim_proof
from ticketmint.state import CollectionState, TicketState, ticket_address

from conftest import keypair


SIGNER = keypair(2)
ALICE = keypair(10).pubkey
COLLECTION = keypair(3).pubkey


def run(capsys, *argv):
    code = main(list(argv))
    out, err = capsys.readouterr()
    return code, out, err


def ok(capsys, *argv):
    code, out, err = run(capsys, *argv)
    assert code == 0, err
    return json.loads(out)


def failed(capsys, *argv):
    code, out, err = run(capsys, *argv)
    assert code == 1
    assert out == ""
    return json.loads(err.strip().splitlines()[-1])


class TestGeneral:

    def test_no_command_prints_help(self, capsys):
        code, out, _ = run(capsys)
        assert code == 0
        assert "usage: ticketmint" in out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert "ticketmint" in capsys.readouterr().out

    def test_yaml_output(self, capsys):
        code, out, _ = run(capsys, "--format", "yaml", "proof", "digest", "-n", "1", "-r", str(ALICE))
        assert code == 0
        assert yaml.safe_load(out)["digest_hex"] == claim_digest(ALICE, 1).hex()

    def test_text_output(self, capsys):
        code, out, _ = run(capsys, "--format", "text", "proof", "digest", "-n", "1", "-r", str(ALICE))
        assert code == 0
        assert f"digest_hex: {claim_digest(ALICE, 1).hex()}" in out

    def test_quiet_suppresses_errors(self, capsys):
        code, out, err = run(capsys, "--quiet", "proof", "generate", "-n", "1", "-r", str(ALICE))
        assert code == 1
        assert "SigningKeyNotConfigured" not in err


class TestKeygen:

    def test_keygen(self, capsys):
        data = ok(capsys, "keygen")
        assert str(Keypair.from_base58(data["secret_key"]).pubkey) == data["public_key"]


class TestProofCommands:

    def test_generate(self, capsys):
        data = ok(capsys, "proof", "generate", "-n", "7", "-r", str(ALICE), "-k", SIGNER.to_base58())
        assert data == generate_claim_proof(7, ALICE, SIGNER).to_dict()

    def test_generate_with_environment_key(self, capsys, monkeypatch):
        monkeypatch.setenv("TICKETMINT_SIGNING_PRIVATE_KEY", SIGNER.to_base58())
        data = ok(capsys, "proof", "generate", "-n", "7", "-r", str(ALICE))
        assert data["public_key_b58"] == str(SIGNER.pubkey)

    def test_generate_without_key(self, capsys):
        error = failed(capsys, "proof", "generate", "-n", "7", "-r", str(ALICE))
        assert error["error"] == "SigningKeyNotConfigured"
        assert error["message"].startswith("SIGNING_PRIVATE_KEY not configured")

    def test_generate_out_of_range(self, capsys):
        error = failed(capsys, "proof", "generate", "-n", "10000", "-r", str(ALICE), "-k", SIGNER.to_base58())
        assert error["error"] == "ValidationError"

    def test_generate_bad_recipient(self, capsys):
        error = failed(capsys, "proof", "generate", "-n", "1", "-r", "nope!", "-k", SIGNER.to_base58())
        assert error["error"] == "CLIError"

    def test_verify(self, capsys):
        signature = generate_claim_proof(7, ALICE, SIGNER).signature_hex
        data = ok(capsys, "proof", "verify", "-s", signature, "-n", "7", "-r", str(ALICE), "--signer", str(SIGNER.pubkey))
        assert data["valid"] is True
        data = ok(capsys, "proof", "verify", "-s", signature, "-n", "8", "-r", str(ALICE), "--signer", str(SIGNER.pubkey))
        assert data["valid"] is False

    def test_verify_requires_signer(self, capsys):
        error = failed(capsys, "proof", "verify", "-s", "00", "-n", "7", "-r", str(ALICE))
        assert error["error"] == "CLIError"

    def test_digest(self, capsys):
        data = ok(capsys, "proof", "digest", "-n", "258", "-r", str(ALICE))
        assert data["message_hex"] == (ALICE.to_bytes() + bytes([2, 1, 0, 0])).hex()


class TestRecordCommands:

    def test_encode_then_parse(self, capsys):
        signature = generate_claim_proof(7, ALICE, SIGNER).signature_hex
        encoded = ok(
            capsys, "record", "encode", "-s", signature, "--signer", str(SIGNER.pubkey), "-n", "7", "-r", str(ALICE)
        )
        assert encoded["program_id"] == "Ed25519SigVerify111111111111111111111111111"
        parsed = ok(capsys, "record", "parse", "-d", encoded["record_hex"])
        assert parsed["signature_hex"] == signature
        assert parsed["public_key"] == str(SIGNER.pubkey)
        assert parsed["message_hex"] == claim_digest(ALICE, 7).hex()
        assert parsed["offsets"]["message"] == [112, 32, 0xFFFF]

    def test_parse_not_hex(self, capsys):
        assert failed(capsys, "record", "parse", "-d", "xyz")["error"] == "CLIError"

    def test_parse_malformed(self, capsys):
        assert failed(capsys, "record", "parse", "-d", "0100")["error"] == "MalformedRecord"


class TestAddressAndInspect:

    def test_ticket_address(self, capsys):
        data = ok(capsys, "address", "ticket", "-n", "5", "--collection", str(COLLECTION))
        assert data["address"] == str(ticket_address(COLLECTION, 5, DEFAULT_PROGRAM_ID))
        assert data["program_id"] == str(DEFAULT_PROGRAM_ID)

    def test_ticket_address_from_environment(self, capsys, monkeypatch):
        monkeypatch.setenv("TICKETMINT_COLLECTION", str(COLLECTION))
        data = ok(capsys, "address", "ticket", "-n", "5")
        assert data["collection"] == str(COLLECTION)

    def test_ticket_address_needs_collection(self, capsys):
        assert failed(capsys, "address", "ticket", "-n", "5")["error"] == "CLIError"

    def test_inspect_collection(self, capsys):
        state = CollectionState.create(keypair(1).pubkey, SIGNER.pubkey, "ipfs://x/")
        data = ok(capsys, "inspect", "collection", "-d", state.to_bytes().hex())
        assert data == {
            "authority": str(keypair(1).pubkey),
            "signer": str(SIGNER.pubkey),
            "is_locked": False,
            "total_supply": 0,
            "base_uri": "ipfs://x/",
        }

    def test_inspect_ticket(self, capsys):
        data = ok(capsys, "inspect", "ticket", "-d", TicketState.create(4, ALICE, COLLECTION).to_bytes().hex())
        assert data == {"nft_id": 4, "owner": str(ALICE), "collection": str(COLLECTION)}

    def test_inspect_wrong_kind(self, capsys):
        state = CollectionState.create(keypair(1).pubkey, SIGNER.pubkey, "")
        error = failed(capsys, "inspect", "ticket", "-d", state.to_bytes().hex())
        assert error["error"] == "AccountDiscriminatorMismatch"


class TestConfigCommands:

    def test_show_masks_secret(self, capsys, monkeypatch):
        monkeypatch.setenv("TICKETMINT_SIGNING_PRIVATE_KEY", SIGNER.to_base58())
        data = ok(capsys, "config", "show")
        assert data["signing"]["private_key"] == "***"

    def test_validate_effective(self, capsys):
        assert ok(capsys, "config", "validate") == {"valid": True, "errors": []}

    def test_validate_file(self, capsys, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("observability:\n  log_level: loud\n", encoding="utf-8")
        data = ok(capsys, "config", "validate", "--file", str(path))
        assert data["valid"] is False
        assert len(data["errors"]) == 1

    def test_schema(self, capsys):
        data = ok(capsys, "config", "schema")
        assert "program_id" in data["properties"]["program"]

    def test_bad_config_file(self, capsys, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("nonsense: true\n", encoding="utf-8")
        error = failed(capsys, "--config", str(path), "config", "show")
        assert error["error"] == "ConfigValidationError"
        assert error["errors"]

    def test_config_file_applies(self, capsys, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text(f"ledger:\n  collection_address: {COLLECTION}\n", encoding="utf-8")
        data = ok(capsys, "--config", str(path), "address", "ticket", "-n", "1")
        assert data["collection"] == str(COLLECTION)
