"""Unit tests for configuration loading."""

from decimal import Decimal

import pytest

from condofin.services.config import DEFAULT_DATABASE_URL, load_config
from condofin.services.errors import ConfigError

SETTINGS = [
    "DATABASE_URL",
    "DEFAULT_MONTHLY_FEE",
    "ALLOCATION_TOLERANCE",
    "LUMPSUM_MIN_MONTHS",
    "LUMPSUM_MAX_FRACTION",
    "LOG_FILE",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run with no settings in the environment and no .env file in reach."""
    monkeypatch.chdir(tmp_path)
    for name in SETTINGS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadConfig:
    def test_defaults(self, clean_env):
        config = load_config()

        assert config.database_url == DEFAULT_DATABASE_URL
        assert config.default_monthly_fee == Decimal("0")
        assert config.allocation_tolerance == Decimal("0.01")
        assert config.lumpsum_min_months == 6
        assert config.lumpsum_max_fraction == Decimal("0.25")
        assert config.log_file == "logs/server.log"

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("DEFAULT_MONTHLY_FEE", "37.50")
        clean_env.setenv("LUMPSUM_MIN_MONTHS", "3")
        clean_env.setenv("DATABASE_URL", "postgresql://condo@localhost/condofin")

        config = load_config()

        assert config.default_monthly_fee == Decimal("37.50")
        assert config.lumpsum_min_months == 3
        assert config.database_url == "postgresql://condo@localhost/condofin"

    def test_env_file_is_read(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("DEFAULT_MONTHLY_FEE=45\n")
        # load_dotenv writes into os.environ; register it so monkeypatch restores it
        clean_env.setenv("DEFAULT_MONTHLY_FEE", "45")
        clean_env.delenv("DEFAULT_MONTHLY_FEE")

        assert load_config().default_monthly_fee == Decimal("45")

    @pytest.mark.parametrize(
        "name,value",
        [
            ("DEFAULT_MONTHLY_FEE", "abc"),
            ("DEFAULT_MONTHLY_FEE", "-1"),
            ("ALLOCATION_TOLERANCE", "x"),
            ("LUMPSUM_MIN_MONTHS", "six"),
            ("LUMPSUM_MIN_MONTHS", "0"),
            ("LUMPSUM_MAX_FRACTION", "0.75"),
        ],
    )
    def test_invalid_values_rejected(self, clean_env, name, value):
        clean_env.setenv(name, value)
        with pytest.raises(ConfigError, match=name):
            load_config()
