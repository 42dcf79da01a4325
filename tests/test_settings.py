"""Tests for configuration loading."""

from pathlib import Path

import pytest

from tokenchat.config.settings import SOL_MINT, AppSettings, RiskPolicy, load_settings

CONFIGS = Path(__file__).resolve().parent.parent / "configs"


class TestAppSettings:
    """Test AppSettings defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        """Test default values match the documented configuration."""
        monkeypatch.delenv("RPC_URL", raising=False)
        settings = AppSettings(_env_file=None)

        assert settings.env == "dev"
        assert settings.qdrant_collection == "jupiter_hackthon"
        assert settings.retrieval_top_k == 4
        assert settings.retry_attempts == 3
        assert settings.retry_base_seconds == 1.0
        assert settings.slippage_bps == 50
        assert settings.swap_mode == "ExactOut"
        assert settings.send_max_retries == 10
        assert settings.wallet_sign_timeout_seconds is None
        assert settings.merchant_pubkey is None

    def test_env_override(self, monkeypatch):
        """Test environment variables override defaults, including nested risk fields."""
        monkeypatch.setenv("RPC_URL", "https://rpc.example.com")
        monkeypatch.setenv("RISK__SOL_USD_PRICE", "150")

        settings = AppSettings(_env_file=None)

        assert settings.rpc_url == "https://rpc.example.com"
        assert settings.risk.sol_usd_price == 150.0

    def test_risk_policy_defaults(self):
        """Test heuristic defaults."""
        policy = RiskPolicy()

        assert policy.sol_usd_price == 100.0
        assert policy.large_swap_sol == 10.0
        assert policy.price_impact_threshold_pct == 5.0
        assert policy.liquidity_threshold_usd == 10000.0
        assert policy.new_coin_days == 7
        assert len(policy.blacklisted_tokens) == 2

    def test_sol_mint(self):
        assert SOL_MINT == "So11111111111111111111111111111111111111112"


class TestLoadSettings:
    """Test load_settings from YAML."""

    def test_load_yaml(self, tmp_path, monkeypatch):
        """Test YAML values are applied and profile sets env."""
        monkeypatch.delenv("CHAT_MODEL", raising=False)
        config = tmp_path / "test.yaml"
        config.write_text(
            "chat_model: mistral\n"
            "retrieval_top_k: 6\n"
            "risk:\n"
            "  large_swap_sol: 5\n"
        )

        settings = load_settings("prod", str(config))

        assert settings.env == "prod"
        assert settings.chat_model == "mistral"
        assert settings.retrieval_top_k == 6
        assert settings.risk.large_swap_sol == 5.0

    def test_empty_yaml(self, tmp_path):
        """Test an empty YAML file yields defaults."""
        config = tmp_path / "empty.yaml"
        config.write_text("")

        settings = load_settings("dev", str(config))

        assert settings.env == "dev"

    def test_invalid_profile(self, tmp_path):
        config = tmp_path / "test.yaml"
        config.write_text("")

        with pytest.raises(ValueError, match="Invalid profile"):
            load_settings("staging", str(config))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings("dev", str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        config = tmp_path / "bad.yaml"
        config.write_text("chat_model: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_settings("dev", str(config))

    def test_shipped_profiles_load(self):
        """Test the bundled dev and prod profiles are valid."""
        dev = load_settings("dev", str(CONFIGS / "dev.yaml"))
        prod = load_settings("prod", str(CONFIGS / "prod.yaml"))

        assert dev.env == "dev"
        assert prod.env == "prod"
        assert prod.wallet_sign_timeout_seconds == 300
