import os
import pathlib
import sys
from typing import Callable

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import ticketmint`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from ticketmint.client import TicketClient  # noqa: E402
from ticketmint.config import ConfigManager  # noqa: E402
from ticketmint.keys import Keypair, Pubkey  # noqa: E402
from ticketmint.ledger import FixedClock, Ledger, Receipt  # noqa: E402
from ticketmint.program import TicketProgram  # noqa: E402
from ticketmint.signing import generate_claim_proof  # noqa: E402


NOW = 1_700_000_000
BASE_URI = "https://tickets.example/meta/"
FUNDING = 10 ** 12


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless TICKETMINT_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('TICKETMINT_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set TICKETMINT_RUN_SLOW=1 to enable'))


def keypair(n: int) -> Keypair:
    """Deterministic keypair number n."""
    return Keypair.from_seed(bytes([n]) * 32)


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Every test starts from default configuration and no TICKETMINT_* variables."""
    for name in list(os.environ):
        if name.startswith("TICKETMINT_") and name != "TICKETMINT_RUN_SLOW":
            monkeypatch.delenv(name, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture
def authority() -> Keypair:
    return keypair(1)


@pytest.fixture
def signer() -> Keypair:
    return keypair(2)


@pytest.fixture
def collection_kp() -> Keypair:
    return keypair(3)


@pytest.fixture
def alice() -> Keypair:
    return keypair(10)


@pytest.fixture
def bob() -> Keypair:
    return keypair(11)


@pytest.fixture
def mallory() -> Keypair:
    return keypair(66)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def ledger(clock, authority, alice, bob, mallory) -> Ledger:
    ledger = Ledger(clock=clock)
    ledger.register_program(TicketProgram())
    for kp in (authority, alice, bob, mallory):
        ledger.airdrop(kp.pubkey, FUNDING)
    return ledger


@pytest.fixture
def client(ledger) -> TicketClient:
    return TicketClient(ledger)


@pytest.fixture
def collection(client, authority, collection_kp, signer) -> Pubkey:
    return client.initialize(authority, collection_kp, signer.pubkey, BASE_URI)


@pytest.fixture
def claim(client, collection, signer) -> Callable[..., Receipt]:
    """claim(nft_id, owner_kp) with a proof from the registered signer."""
    def _claim(nft_id: int, owner: Keypair, issuer: Keypair = None) -> Receipt:
        issuer = issuer or signer
        proof = generate_claim_proof(nft_id, owner.pubkey, issuer)
        return client.claim(collection, owner, proof.signature, nft_id, owner.pubkey, issuer.pubkey)
    return _claim
