"""
Tests for branch billing configuration (venue_config).

Covers the shipped billing.yaml, branch overrides, validation failures and
the VENUE_CONFIG_TRACE audit record.
"""

from decimal import Decimal
from textwrap import dedent
from uuid import uuid4

import pytest
import yaml

from venue_config import get_branch_billing, load_billing_config
from venue_config.loader import compute_checksum, merge_override, parse_decimal
from venue_kernel.exceptions import ConfigurationError

DOWNTOWN = "6f1c2a9e-0b7d-4c1e-9a52-3d8e4b7f0a11"


def write_config(tmp_path, text):
    (tmp_path / "billing.yaml").write_text(dedent(text), encoding="utf-8")
    return tmp_path


VALID = dedent("""\
    config_id: TEST-BILLING
    version: 3
    default:
      currency: USD
      tax_rate: 0.1
      pricing:
        hour_1_price: 10
        hour_2_price: 8
        hour_3_plus_price: 7.5
        max_additional_charge: 20
""")


class TestShippedConfig:
    """The billing.yaml bundled with the package."""

    def test_default_block(self):
        billing = get_branch_billing(None)
        assert billing.currency == "EGP"
        assert billing.tax_rate == Decimal("0")
        assert billing.pricing.hour_1_price == Decimal("40")
        assert billing.pricing.hour_3_plus_price == Decimal("30")
        assert billing.pricing.max_additional_charge == Decimal("100")
        assert billing.branch_id is None

    def test_branch_without_override_gets_default(self):
        branch = uuid4()
        billing = get_branch_billing(branch)
        assert billing.branch_id == str(branch)
        assert billing.pricing.hour_1_price == Decimal("40")

    def test_branch_override_merges_per_tier(self):
        billing = get_branch_billing(DOWNTOWN)
        assert billing.tax_rate == Decimal("0.14")
        assert billing.pricing.hour_1_price == Decimal("50")
        assert billing.pricing.hour_3_plus_price == Decimal("30")
        assert billing.currency == "EGP"

    def test_config_set_metadata(self):
        config_set = load_billing_config()
        assert config_set.config_id == "VENUE-BILLING"
        assert config_set.version == 1
        assert len(config_set.checksum) == 64
        assert DOWNTOWN in config_set.overrides


class TestCustomConfig:
    """Files supplied through config_dir."""

    def test_yaml_floats_parse_exactly(self, tmp_path):
        billing = get_branch_billing(None, config_dir=write_config(tmp_path, VALID))
        assert billing.tax_rate == Decimal("0.1")
        assert billing.pricing.hour_3_plus_price == Decimal("7.5")
        assert billing.currency == "USD"

    def test_missing_tier(self, tmp_path):
        write_config(tmp_path, """\
            default:
              pricing:
                hour_1_price: 10
                hour_2_price: 8
                hour_3_plus_price: 7
        """)
        with pytest.raises(ConfigurationError, match="max_additional_charge"):
            load_billing_config(tmp_path)

    def test_negative_price(self, tmp_path):
        write_config(tmp_path, VALID.replace("hour_1_price: 10", "hour_1_price: -1"))
        with pytest.raises(ConfigurationError):
            load_billing_config(tmp_path)

    def test_tax_rate_out_of_range(self, tmp_path):
        write_config(tmp_path, VALID.replace("tax_rate: 0.1", "tax_rate: 1.5"))
        with pytest.raises(ConfigurationError):
            load_billing_config(tmp_path)

    def test_bad_override_fails_at_load(self, tmp_path):
        text = VALID + dedent("""\
            branches:
              some-branch:
                pricing:
                  hour_1_price: not-a-number
        """)
        write_config(tmp_path, text)
        with pytest.raises(ConfigurationError):
            load_billing_config(tmp_path)

    def test_default_block_required(self, tmp_path):
        write_config(tmp_path, "config_id: X\n")
        with pytest.raises(ConfigurationError):
            load_billing_config(tmp_path)

    def test_branches_must_be_mapping(self, tmp_path):
        write_config(tmp_path, VALID + "branches: [a, b]\n")
        with pytest.raises(ConfigurationError):
            load_billing_config(tmp_path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_billing_config(tmp_path)

    def test_invalid_yaml(self, tmp_path):
        write_config(tmp_path, "default: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_billing_config(tmp_path)


class TestLoaderHelpers:

    def test_parse_decimal_rejects_bool(self):
        with pytest.raises(ConfigurationError):
            parse_decimal(True, "src", "x")

    def test_merge_override_keeps_unlisted_tiers(self):
        merged = merge_override(
            {"tax_rate": "0", "pricing": {"hour_1_price": "40", "hour_2_price": "30"}},
            {"pricing": {"hour_1_price": "50"}},
        )
        assert merged["pricing"] == {"hour_1_price": "50", "hour_2_price": "30"}
        assert merged["tax_rate"] == "0"

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


class TestConfigTrace:

    def test_resolution_is_traced(self, captured_logs):
        get_branch_billing(DOWNTOWN)
        traces = [r for r in captured_logs() if r.get("message") == "VENUE_CONFIG_TRACE"]
        assert len(traces) == 1
        trace = traces[0]
        assert trace["config_set_id"] == "VENUE-BILLING"
        assert trace["branch_override"] is True
        assert trace["tax_rate"] == "0.14"
        assert trace["currency"] == "EGP"
