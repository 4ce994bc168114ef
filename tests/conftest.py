import os
import pathlib
import sys
from types import SimpleNamespace

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import tokenbound`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from tokenbound.collaborators import MockERC1155, MockERC721  # noqa: E402
from tokenbound.config import get_config_manager  # noqa: E402
from tokenbound.events import EventBus  # noqa: E402
from tokenbound.ledger import Ledger  # noqa: E402
from tokenbound.registry import deploy_system  # noqa: E402


_CONFIG_ENV_VARS = (
    "TOKENBOUND_MAX_CHAIN_DEPTH",
    "TOKENBOUND_CHAIN_ID",
    "TOKENBOUND_MAX_CALL_DEPTH",
    "TOKENBOUND_LOG_LEVEL",
    "TOKENBOUND_LOG_FORMAT",
    "TOKENBOUND_TRACING_ENABLED",
)


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow fuzz tests (skipped unless TOKENBOUND_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('TOKENBOUND_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set TOKENBOUND_RUN_SLOW=1 to enable'))


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Every test starts from default configuration."""
    for var in _CONFIG_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    manager = get_config_manager()
    manager.reset()
    yield manager
    manager.reset()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def ledger(event_bus):
    return Ledger(event_bus=event_bus)


@pytest.fixture
def system(ledger):
    return deploy_system(ledger)


@pytest.fixture
def accounts(ledger):
    """Named externally owned accounts, funded with 10 ether-equivalents each."""
    names = ("owner", "new_owner", "account1", "account2", "account3")
    return SimpleNamespace(**{n: ledger.new_account(n, balance=10 ** 19) for n in names})


@pytest.fixture
def deploy_erc721(ledger, system):
    def _deploy(name: str = "foo", symbol: str = "FOO"):
        address = ledger.deploy(system.deployer, MockERC721(), {"name": name, "symbol": symbol})
        return ledger.at(address, MockERC721)
    return _deploy


@pytest.fixture
def deploy_erc1155(ledger, system):
    def _deploy():
        return ledger.at(ledger.deploy(system.deployer, MockERC1155()), MockERC1155)
    return _deploy


@pytest.fixture
def erc721(deploy_erc721, accounts, system):
    """Token contract with token 1 minted to ``accounts.owner``."""
    token = deploy_erc721()
    token.transact("mint", accounts.owner, 1, sender=system.deployer)
    return token


@pytest.fixture
def wallet(system, erc721, accounts):
    """Wallet bound to ``erc721`` token 1, created by its owner."""
    return system.create_wallet(erc721.address, 1, sender=accounts.owner)
