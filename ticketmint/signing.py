"""Off-ledger claim proof issuance.

The proof service holds the collection's signer key and hands a claimant a
signature over ``sha256(recipient || nft_id_le)``. The claimant submits that
signature with a claim; the ticket program accepts it only while the issuing
key is the collection's registered signer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Union

from ticketmint.codec import claim_digest
from ticketmint.config import get_config_manager
from ticketmint.hardening import ValidationError
from ticketmint.keys import Keypair, Pubkey, as_pubkey
from ticketmint.observability import Layer, get_logger
from ticketmint.state import MAX_SUPPLY

logger = get_logger("signing", Layer.SIGNING)


class SigningKeyNotConfigured(RuntimeError):
    pass


@dataclass(frozen=True)
class ClaimProof:
    signature_hex: str
    public_key_b58: str
    digest_hex: str

    @property
    def signature(self) -> bytes:
        return bytes.fromhex(self.signature_hex)

    @property
    def public_key(self) -> Pubkey:
        return Pubkey.from_string(self.public_key_b58)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_signing_keypair(private_key: Union[Keypair, str, None] = None) -> Keypair:
    """Keypair from the argument, else from `signing.private_key`."""
    if isinstance(private_key, Keypair):
        return private_key
    secret = private_key or get_config_manager().get("signing.private_key")
    if not secret:
        raise SigningKeyNotConfigured(
            "SIGNING_PRIVATE_KEY not configured "
            "(set signing.private_key or TICKETMINT_SIGNING_PRIVATE_KEY)"
        )
    return Keypair.from_base58(secret)


def _check_nft_id(nft_id: Any) -> int:
    if isinstance(nft_id, bool) or not isinstance(nft_id, int) or not 0 <= nft_id < MAX_SUPPLY:
        raise ValidationError("nft_id", f"must be an integer in [0, {MAX_SUPPLY})", nft_id)
    return nft_id


def generate_claim_proof(
    nft_id: int,
    recipient: Union[Pubkey, str, bytes],
    private_key: Union[Keypair, str, None] = None,
) -> ClaimProof:
    """Sign the claim digest for (recipient, nft_id).

    Ed25519 signing is deterministic: the same key and inputs always produce
    the same signature.
    """
    nft_id = _check_nft_id(nft_id)
    recipient = as_pubkey(recipient)
    keypair = load_signing_keypair(private_key)

    digest = claim_digest(recipient, nft_id)
    signature = keypair.sign(digest)
    logger.info("claim proof issued", nft_id=nft_id, recipient=str(recipient), signer=str(keypair.pubkey))
    return ClaimProof(
        signature_hex=signature.hex(),
        public_key_b58=str(keypair.pubkey),
        digest_hex=digest.hex(),
    )


def verify_claim_proof(
    signature_hex: str,
    nft_id: int,
    recipient: Union[Pubkey, str, bytes],
    signer: Union[Pubkey, str, bytes, None] = None,
) -> bool:
    """True when `signature_hex` is signer's signature for (recipient, nft_id).

    Malformed input of any kind yields False.
    """
    try:
        signer_key = as_pubkey(signer or get_config_manager().get("signing.public_key"))
        signature = bytes.fromhex(signature_hex)
        digest = claim_digest(as_pubkey(recipient), nft_id)
    except (ValueError, TypeError) as ex:
        logger.debug("claim proof rejected", reason=str(ex))
        return False
    return signer_key.verify(digest, signature)
