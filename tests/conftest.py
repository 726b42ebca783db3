import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import licensing`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from licensing.keys import generate_key_pair  # noqa: E402


PASSPHRASE = "correct horse battery staple"


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless LICENSING_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('LICENSING_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set LICENSING_RUN_SLOW=1 to enable'))


@pytest.fixture(scope="session")
def key_pair():
    """Passphrase-protected issuer key pair."""
    return generate_key_pair(PASSPHRASE)


@pytest.fixture(scope="session")
def plain_key_pair():
    """Unencrypted key pair."""
    return generate_key_pair()


@pytest.fixture(scope="session")
def other_key_pair():
    """A second, unrelated key pair."""
    return generate_key_pair()


@pytest.fixture
def passphrase():
    return PASSPHRASE


@pytest.fixture(autouse=True)
def _isolated_licensing_env(monkeypatch):
    """Keep LICENSING_* variables from the developer's shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("LICENSING_") and name != "LICENSING_RUN_SLOW":
            monkeypatch.delenv(name, raising=False)
