import pytest
from pydantic import ValidationError

from x402link.config import ENV_VARS, Settings
from x402link.facilitator import DEFAULT_FACILITATOR_URL

PAY_TO = "0x1111111111111111111111111111111111111111"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


def test_defaults():
    settings = Settings(address=PAY_TO)

    assert settings.network == "base-sepolia"
    assert settings.price == "$0.001"
    assert settings.facilitator_url == DEFAULT_FACILITATOR_URL
    assert settings.max_timeout_seconds == 60
    assert settings.base_url == "http://localhost:3000"
    assert settings.settle_payments is False


@pytest.mark.parametrize("address", ["", "0x123", "1111111111111111111111111111111111111111", "0x" + "g" * 40])
def test_invalid_address(address):
    with pytest.raises(ValidationError):
        Settings(address=address)


def test_invalid_network():
    with pytest.raises(ValidationError):
        Settings(address=PAY_TO, network="mars")


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ADDRESS", PAY_TO)
    monkeypatch.setenv("NETWORK", "avalanche-fuji")
    monkeypatch.setenv("PRICE", "$0.01")
    monkeypatch.setenv("MAX_TIMEOUT_SECONDS", "120")
    monkeypatch.setenv("BASE_URL", "https://short.example/")
    monkeypatch.setenv("SETTLE_PAYMENTS", "true")

    settings = Settings.from_env(str(tmp_path / "missing.env"))

    assert settings.address == PAY_TO
    assert settings.network == "avalanche-fuji"
    assert settings.price == "$0.01"
    assert settings.max_timeout_seconds == 120
    assert settings.base_url == "https://short.example"
    assert settings.settle_payments is True


def test_from_env_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(f"ADDRESS={PAY_TO}\nFACILITATOR_URL=https://facilitator.test/\n")

    settings = Settings.from_env(str(env_file))

    assert settings.address == PAY_TO
    assert settings.facilitator_url == "https://facilitator.test"


def test_from_env_requires_address(tmp_path):
    with pytest.raises(ValueError, match="ADDRESS"):
        Settings.from_env(str(tmp_path / "missing.env"))
