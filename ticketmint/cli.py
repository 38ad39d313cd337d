#!/usr/bin/env python3
"""
Ticketmint CLI

Command-line tools for proof issuance, record encoding and inspection of
ticket accounts.

Usage:
    ticketmint <command> [subcommand] [options]

Commands:
    keygen      Generate an Ed25519 keypair
    proof       Generate, verify or digest claim proofs
    record      Encode or parse native verification records
    address     Derive ticket addresses
    inspect     Decode collection and ticket account data
    config      Configuration management

Copyright (c) 2026 The Ticketmint Authors. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from typing import Any, List, Optional

import yaml

from ticketmint import __version__
from ticketmint.codec import build_message, claim_digest, encode_sibling_record, parse_sibling_record
from ticketmint.config import ConfigError, ConfigValidationError, get_config_manager, validate_document
from ticketmint.errors import TicketmintError
from ticketmint.keys import ED25519_PROGRAM_ID, Keypair, Pubkey
from ticketmint.observability import configure_logging
from ticketmint.signing import SigningKeyNotConfigured, generate_claim_proof, verify_claim_proof
from ticketmint.state import CollectionState, TicketState, describe, describe_ticket, ticket_address


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def _hex(value: str, what: str) -> bytes:
    text = value[2:] if value.startswith("0x") else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise CLIError(f"{what} is not valid hex") from e


def _pubkey(value: Optional[str], what: str) -> Pubkey:
    if not value:
        raise CLIError(f"{what} is required")
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise CLIError(f"{what} is not a valid public key: {e}") from e


class TicketmintCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="ticketmint",
            description="Ticket ledger tooling",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"ticketmint {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=[f.value for f in OutputFormat],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument("--config", "-c", help="YAML configuration file")
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error output",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        self.subparsers.add_parser("keygen", help="Generate an Ed25519 keypair")
        self._register_proof_commands()
        self._register_record_commands()
        self._register_address_commands()
        self._register_inspect_commands()
        self._register_config_commands()

    def _register_proof_commands(self) -> None:
        proof = self.subparsers.add_parser("proof", help="Claim proof operations")
        proof_sub = proof.add_subparsers(dest="subcommand")

        generate = proof_sub.add_parser("generate", help="Sign a claim proof")
        generate.add_argument("--nft-id", "-n", type=int, required=True, help="Ticket id")
        generate.add_argument("--recipient", "-r", required=True, help="Recipient public key")
        generate.add_argument("--private-key", "-k", help="Signer secret (default: signing.private_key)")

        verify = proof_sub.add_parser("verify", help="Verify a claim proof")
        verify.add_argument("--signature", "-s", required=True, help="Signature hex")
        verify.add_argument("--nft-id", "-n", type=int, required=True, help="Ticket id")
        verify.add_argument("--recipient", "-r", required=True, help="Recipient public key")
        verify.add_argument("--signer", help="Signer public key (default: signing.public_key)")

        digest = proof_sub.add_parser("digest", help="Show the claim message and digest")
        digest.add_argument("--nft-id", "-n", type=int, required=True, help="Ticket id")
        digest.add_argument("--recipient", "-r", required=True, help="Recipient public key")

    def _register_record_commands(self) -> None:
        record = self.subparsers.add_parser("record", help="Native verification records")
        record_sub = record.add_subparsers(dest="subcommand")

        encode = record_sub.add_parser("encode", help="Build a record for a claim proof")
        encode.add_argument("--signature", "-s", required=True, help="Signature hex")
        encode.add_argument("--signer", required=True, help="Signer public key")
        encode.add_argument("--nft-id", "-n", type=int, required=True, help="Ticket id")
        encode.add_argument("--recipient", "-r", required=True, help="Recipient public key")

        parse = record_sub.add_parser("parse", help="Decode a record")
        parse.add_argument("--data", "-d", required=True, help="Record hex")

    def _register_address_commands(self) -> None:
        address = self.subparsers.add_parser("address", help="Address derivation")
        address_sub = address.add_subparsers(dest="subcommand")

        ticket = address_sub.add_parser("ticket", help="Derive a ticket address")
        ticket.add_argument("--nft-id", "-n", type=int, required=True, help="Ticket id")
        ticket.add_argument("--collection", help="Collection address (default: ledger.collection_address)")
        ticket.add_argument("--program-id", help="Program address (default: program.program_id)")

    def _register_inspect_commands(self) -> None:
        inspect = self.subparsers.add_parser("inspect", help="Decode account data")
        inspect_sub = inspect.add_subparsers(dest="subcommand")

        for name in ("collection", "ticket"):
            cmd = inspect_sub.add_parser(name, help=f"Decode {name} account data")
            cmd.add_argument("--data", "-d", required=True, help="Account data hex")

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        config_sub.add_parser("show", help="Show effective configuration (secrets masked)")
        validate = config_sub.add_parser("validate", help="Validate configuration")
        validate.add_argument("--file", help="Validate this YAML file against the schema")
        config_sub.add_parser("schema", help="Describe configuration values")

    def run(self, args: Optional[List[str]] = None) -> int:
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            mgr = get_config_manager()
            if parsed.config:
                mgr.load_from_file(parsed.config)
            configure_logging(mgr.get("observability.log_level"), mgr.get("observability.log_format"))

            result = self._dispatch(parsed)
            if result is not None:
                print(format_output(result, OutputFormat(parsed.format)))
            return 0

        except CLIError as e:
            self._report(parsed, "CLIError", str(e))
            return e.exit_code

        except ConfigValidationError as e:
            self._report(parsed, type(e).__name__, str(e), errors=e.errors)
            return 1

        except (ConfigError, SigningKeyNotConfigured, TicketmintError, OSError, ValueError) as e:
            self._report(parsed, type(e).__name__, str(e))
            return 1

    @staticmethod
    def _report(parsed: argparse.Namespace, kind: str, message: str, **extra: Any) -> None:
        if parsed.quiet:
            return
        print(json.dumps({"error": kind, "message": message, **extra}), file=sys.stderr)

    def _dispatch(self, args: argparse.Namespace) -> Any:
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}".strip())

        return handler(args)

    # Key handlers
    def _handle_keygen(self, args: argparse.Namespace) -> Any:
        keypair = Keypair.generate()
        return {"public_key": str(keypair.pubkey), "secret_key": keypair.to_base58()}

    # Proof handlers
    def _handle_proof_generate(self, args: argparse.Namespace) -> Any:
        recipient = _pubkey(args.recipient, "recipient")
        return generate_claim_proof(args.nft_id, recipient, args.private_key).to_dict()

    def _handle_proof_verify(self, args: argparse.Namespace) -> Any:
        signer = args.signer or get_config_manager().get("signing.public_key")
        if not signer:
            raise CLIError("signer is required (--signer or signing.public_key)")
        valid = verify_claim_proof(args.signature, args.nft_id, args.recipient, signer)
        return {"valid": valid, "nft_id": args.nft_id, "recipient": args.recipient, "signer": signer}

    def _handle_proof_digest(self, args: argparse.Namespace) -> Any:
        recipient = _pubkey(args.recipient, "recipient")
        return {
            "message_hex": build_message(recipient, args.nft_id).hex(),
            "digest_hex": claim_digest(recipient, args.nft_id).hex(),
        }

    # Record handlers
    def _handle_record_encode(self, args: argparse.Namespace) -> Any:
        signature = _hex(args.signature, "signature")
        signer = _pubkey(args.signer, "signer")
        recipient = _pubkey(args.recipient, "recipient")
        record = encode_sibling_record(signature, signer, claim_digest(recipient, args.nft_id))
        return {"program_id": str(ED25519_PROGRAM_ID), "record_hex": record.hex()}

    def _handle_record_parse(self, args: argparse.Namespace) -> Any:
        attestation = parse_sibling_record(_hex(args.data, "record"))
        offsets = attestation.offsets
        return {
            "signature_hex": attestation.signature.hex(),
            "public_key": str(Pubkey(attestation.public_key)),
            "message_hex": attestation.message.hex(),
            "offsets": {
                "signature": [offsets.signature_offset, offsets.signature_instruction_index],
                "public_key": [offsets.public_key_offset, offsets.public_key_instruction_index],
                "message": [
                    offsets.message_data_offset,
                    offsets.message_data_size,
                    offsets.message_instruction_index,
                ],
            },
        }

    # Address handlers
    def _handle_address_ticket(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        collection = _pubkey(args.collection or mgr.get("ledger.collection_address"), "collection")
        program_id = _pubkey(args.program_id or mgr.get("program.program_id"), "program id")
        address = ticket_address(collection, args.nft_id, program_id)
        return {
            "nft_id": args.nft_id,
            "collection": str(collection),
            "program_id": str(program_id),
            "address": str(address),
        }

    # Inspect handlers
    def _handle_inspect_collection(self, args: argparse.Namespace) -> Any:
        return describe(CollectionState.from_bytes(_hex(args.data, "account data")))

    def _handle_inspect_ticket(self, args: argparse.Namespace) -> Any:
        return describe_ticket(TicketState.from_bytes(_hex(args.data, "account data")))

    # Config handlers
    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        if args.file:
            with open(args.file, encoding="utf-8") as f:
                try:
                    document = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise CLIError(f"Invalid YAML in {args.file}: {e}") from e
            errors = validate_document(document or {})
        else:
            errors = get_config_manager().validate()
        return {"valid": not errors, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    return TicketmintCLI().run(argv)


if __name__ == "__main__":
    sys.exit(main())
