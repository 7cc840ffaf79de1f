"""Tests for vatcalc.config."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from vatcalc.config import (
    DEFAULTS,
    _normalize_country_codes,
    _normalize_url,
    get_default_config_path,
    init_config,
    load_config,
    validate_config,
)


# ===================================================================
# Normalisation helpers
# ===================================================================


class TestNormalizeUrl:
    """Tests for URL normalization."""

    def test_adds_https_scheme(self) -> None:
        assert _normalize_url("ec.europa.eu/vies") == "https://ec.europa.eu/vies"

    def test_strips_trailing_slashes(self) -> None:
        assert _normalize_url("https://ip2c.org///") == "https://ip2c.org"

    def test_preserves_http(self) -> None:
        assert _normalize_url("http://localhost:8080") == "http://localhost:8080"

    def test_strips_whitespace(self) -> None:
        assert _normalize_url("  https://ip2c.org  ") == "https://ip2c.org"

    def test_empty_string(self) -> None:
        assert _normalize_url("") == ""


class TestNormalizeCountryCodes:
    """Tests for optional-country list normalization."""

    def test_comma_separated(self) -> None:
        assert _normalize_country_codes("ch, no,GB") == ["CH", "NO", "GB"]

    def test_list(self) -> None:
        assert _normalize_country_codes(["ch", "tr"]) == ["CH", "TR"]

    def test_duplicates_and_blanks_dropped(self) -> None:
        assert _normalize_country_codes("CH,,ch, ") == ["CH"]

    def test_none(self) -> None:
        assert _normalize_country_codes(None) == []


# ===================================================================
# load_config - config file tier
# ===================================================================


class TestLoadConfigFile:
    """Test load_config reading from YAML config files."""

    def test_reads_all_fields_from_file(self, sample_config_file: Path, env_clean: None) -> None:
        config = load_config(config_path=str(sample_config_file))
        assert config["business_country_code"] == "NL"
        assert config["business_vat_number"] == "NL123456789B01"
        assert config["optional_countries"] == ["CH"]
        assert config["vies_url"] == "http://vies.test/rest-api"
        assert config["geo_url"] == "http://geo.test"
        assert config["timeout"] == 15
        assert config["retries"] == 2

    def test_defaults_when_no_file_exists(self, tmp_path: Path, env_clean: None) -> None:
        config = load_config(config_path=str(tmp_path / "nonexistent.yaml"))
        assert config["business_country_code"] == ""
        assert config["optional_countries"] == []
        assert config["vies_url"] == DEFAULTS["vies_url"]
        assert config["timeout"] == DEFAULTS["timeout"]
        assert config["retries"] == DEFAULTS["retries"]

    def test_partial_config_file(self, tmp_path: Path, env_clean: None) -> None:
        p = tmp_path / "partial.yaml"
        with p.open("w") as fh:
            yaml.safe_dump({"business_country_code": "cz"}, fh)
        config = load_config(config_path=str(p))
        assert config["business_country_code"] == "CZ"
        assert config["business_vat_number"] == ""
        assert config["geo_url"] == DEFAULTS["geo_url"]

    def test_invalid_yaml_returns_defaults(self, tmp_path: Path, env_clean: None) -> None:
        p = tmp_path / "bad.yaml"
        p.write_text("{{{{invalid yaml")
        config = load_config(config_path=str(p))
        assert config["business_country_code"] == ""

    def test_yaml_with_non_dict_returns_defaults(self, tmp_path: Path, env_clean: None) -> None:
        p = tmp_path / "list.yaml"
        p.write_text("- item1\n- item2\n")
        config = load_config(config_path=str(p))
        assert config["timeout"] == DEFAULTS["timeout"]

    def test_null_values_ignored(self, tmp_path: Path, env_clean: None) -> None:
        p = tmp_path / "nulls.yaml"
        p.write_text("business_country_code: DE\ntimeout:\n")
        config = load_config(config_path=str(p))
        assert config["business_country_code"] == "DE"
        assert config["timeout"] == DEFAULTS["timeout"]


# ===================================================================
# load_config - env var tier
# ===================================================================


class TestLoadConfigEnvVars:
    """Test that environment variables override file values."""

    def test_env_country_overrides_file(
        self, sample_config_file: Path, env_clean: None, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("VATCALC_BUSINESS_COUNTRY", "de")
        config = load_config(config_path=str(sample_config_file))
        assert config["business_country_code"] == "DE"
        # VAT number still comes from the file
        assert config["business_vat_number"] == "NL123456789B01"

    def test_env_optional_countries(
        self, sample_config_file: Path, env_clean: None, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("VATCALC_OPTIONAL_COUNTRIES", "no,tr")
        config = load_config(config_path=str(sample_config_file))
        assert config["optional_countries"] == ["NO", "TR"]

    def test_env_urls(
        self, sample_config_file: Path, env_clean: None, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("VATCALC_VIES_URL", "http://vies.mirror/")
        monkeypatch.setenv("VATCALC_GEO_URL", "geo.mirror")
        config = load_config(config_path=str(sample_config_file))
        assert config["vies_url"] == "http://vies.mirror"
        assert config["geo_url"] == "https://geo.mirror"

    def test_empty_env_var_does_not_override(
        self, sample_config_file: Path, env_clean: None, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("VATCALC_BUSINESS_VAT_NUMBER", "")
        config = load_config(config_path=str(sample_config_file))
        assert config["business_vat_number"] == "NL123456789B01"


# ===================================================================
# load_config - explicit parameters tier
# ===================================================================


class TestLoadConfigExplicit:
    """Explicit parameters override env and file."""

    def test_explicit_over_env_over_file(
        self, sample_config_file: Path, env_clean: None, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("VATCALC_BUSINESS_COUNTRY", "DE")
        monkeypatch.setenv("VATCALC_BUSINESS_VAT_NUMBER", "DE190098891")
        config = load_config(
            business_country_code="cz",
            optional_countries=["gb"],
            config_path=str(sample_config_file),
        )
        assert config["business_country_code"] == "CZ"
        assert config["business_vat_number"] == "DE190098891"
        assert config["optional_countries"] == ["GB"]
        assert config["timeout"] == 15

    def test_explicit_empty_list_clears_file_value(
        self, sample_config_file: Path, env_clean: None,
    ) -> None:
        config = load_config(optional_countries=[], config_path=str(sample_config_file))
        assert config["optional_countries"] == []


# ===================================================================
# init_config
# ===================================================================


class TestInitConfig:
    """Writing the initial config file."""

    def test_writes_file(self, tmp_path: Path, env_clean: None) -> None:
        target = tmp_path / "sub" / "config.yaml"
        path = init_config("nl", " NL123456789B01 ", ["ch"], config_path=str(target))
        assert path == target
        data = yaml.safe_load(target.read_text())
        assert data["business_country_code"] == "NL"
        assert data["business_vat_number"] == "NL123456789B01"
        assert data["optional_countries"] == ["CH"]
        assert data["timeout"] == DEFAULTS["timeout"]

    def test_round_trips_through_load(self, tmp_path: Path, env_clean: None) -> None:
        path = init_config("DE", config_path=str(tmp_path / "config.yaml"))
        config = load_config(config_path=str(path))
        assert config["business_country_code"] == "DE"
        assert validate_config(config) == (True, None)

    def test_default_path(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        assert get_default_config_path() == tmp_path / ".vatcalc" / "config.yaml"
        path = init_config("AT")
        assert path.is_file()


# ===================================================================
# validate_config
# ===================================================================


class TestValidateConfig:
    """Checks on resolved configuration."""

    def _valid(self) -> dict[str, object]:
        return {
            "business_country_code": "NL",
            "business_vat_number": "NL123456789B01",
            "optional_countries": ["CH"],
            "vies_url": "https://ec.europa.eu/taxation_customs/vies/rest-api",
            "geo_url": "https://ip2c.org",
            "timeout": 30,
            "retries": 3,
        }

    def test_valid(self) -> None:
        assert validate_config(self._valid()) == (True, None)

    def test_empty_business_country_allowed(self) -> None:
        config = self._valid()
        config["business_country_code"] = ""
        assert validate_config(config)[0] is True

    def test_bad_country_code(self) -> None:
        config = self._valid()
        config["business_country_code"] = "NLD"
        ok, msg = validate_config(config)
        assert ok is False
        assert "business_country_code" in msg  # type: ignore[operator]

    def test_greek_vat_prefix_differs_from_country(self) -> None:
        config = self._valid()
        config["business_country_code"] = "GR"
        config["business_vat_number"] = "EL123456789"
        assert validate_config(config)[0] is True

    def test_vat_number_without_prefix(self) -> None:
        config = self._valid()
        config["business_vat_number"] = "123456789"
        assert validate_config(config)[0] is False

    def test_bad_optional_country(self) -> None:
        config = self._valid()
        config["optional_countries"] = ["CH", "SWISS"]
        ok, msg = validate_config(config)
        assert ok is False
        assert "SWISS" in msg  # type: ignore[operator]

    def test_bad_url(self) -> None:
        config = self._valid()
        config["vies_url"] = "ftp://example.com"
        ok, msg = validate_config(config)
        assert ok is False
        assert "vies_url" in msg  # type: ignore[operator]

    def test_bad_timeout(self) -> None:
        config = self._valid()
        config["timeout"] = 0
        assert validate_config(config)[0] is False

    def test_bad_retries(self) -> None:
        config = self._valid()
        config["retries"] = 0
        assert validate_config(config)[0] is False
