"""
ticketmint: a permissioned, capped ticket ledger

Tickets are numbered 0..9999 within a collection. A claimant mints a ticket by
presenting an Ed25519 signature from the collection's off-ledger signer over
``sha256(recipient || nft_id_le)``; the signature itself is checked by the
host's native Ed25519 program earlier in the same transaction, and the ticket
program only binds that attestation to the claim's own parameters. After
issue, only the collection authority may move or destroy tickets, rotate the
signer or change the base URI. Locking the collection freezes all of that,
permanently.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                              TICKETMINT                                  │
    │                                                                          │
    │  OFF-LEDGER                                                             │
    │    signing.py      Claim proof issuance and verification                │
    │    client.py       Transaction builders and account readers             │
    │    cli.py          Command line                                         │
    │                                                                          │
    │  PROGRAM                                                                │
    │    program.py      Account constraints, dispatch, transaction logs      │
    │    lifecycle.py    The seven operations over explicit records           │
    │    verifier.py     Binds a native attestation to a claim                │
    │    state.py        Collection and ticket records                        │
    │    codec.py        Claim message, digest, verification record           │
    │    events.py       Notifications and event bus                          │
    │                                                                          │
    │  HOST                                                                   │
    │    ledger.py       Accounts, atomic transactions, native Ed25519        │
    │    keys.py         Public keys, keypairs, derived addresses             │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Copyright © 2026 The Ticketmint Authors. All rights reserved.
"""

__version__ = "0.1.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import ticketmint modules on first access."""

    if name in ("Pubkey", "Keypair", "derive_address", "DEFAULT_PROGRAM_ID", "ED25519_PROGRAM_ID"):
        from ticketmint import keys
        return getattr(keys, name)

    if name in ("build_message", "digest", "claim_digest", "parse_sibling_record",
                "encode_sibling_record", "Attestation"):
        from ticketmint import codec
        return getattr(codec, name)

    if name in ("ProofVerifier", "NativeVerifier"):
        from ticketmint import verifier
        return getattr(verifier, name)

    if name in ("CollectionState", "TicketState", "LockState", "MAX_SUPPLY", "ticket_address"):
        from ticketmint import state
        return getattr(state, name)

    if name == "LifecycleOperations":
        from ticketmint import lifecycle
        return lifecycle.LifecycleOperations

    if name in ("Ledger", "Transaction", "Receipt", "FixedClock"):
        from ticketmint import ledger
        return getattr(ledger, name)

    if name == "TicketProgram":
        from ticketmint import program
        return program.TicketProgram

    if name == "TicketClient":
        from ticketmint import client
        return client.TicketClient

    if name in ("generate_claim_proof", "verify_claim_proof", "ClaimProof"):
        from ticketmint import signing
        return getattr(signing, name)

    raise AttributeError(f"module 'ticketmint' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Keys
    "Pubkey",
    "Keypair",
    "derive_address",
    "DEFAULT_PROGRAM_ID",
    "ED25519_PROGRAM_ID",
    # Codec
    "build_message",
    "digest",
    "claim_digest",
    "parse_sibling_record",
    "encode_sibling_record",
    "Attestation",
    # Program
    "ProofVerifier",
    "NativeVerifier",
    "CollectionState",
    "TicketState",
    "LockState",
    "MAX_SUPPLY",
    "ticket_address",
    "LifecycleOperations",
    "TicketProgram",
    # Host
    "Ledger",
    "Transaction",
    "Receipt",
    "FixedClock",
    # Off-ledger
    "TicketClient",
    "generate_claim_proof",
    "verify_claim_proof",
    "ClaimProof",
]
