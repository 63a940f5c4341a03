"""Tests for configuration module."""

from pathlib import Path

import pytest

from clipid.core.config import (
    ClipidConfig,
    ContextConfig,
    ExtractorConfig,
    MatcherConfig,
    load_config,
)


class TestExtractorConfig:
    """Test ExtractorConfig validation."""

    def test_default_values(self) -> None:
        """Test default analysis parameters."""
        config = ExtractorConfig()
        assert config.hop_size == 256
        assert config.window_size == 512
        assert config.n_filters == 40
        assert config.n_coefs == 13

    def test_hop_larger_than_window_rejected(self) -> None:
        with pytest.raises(ValueError):
            ExtractorConfig(hop_size=1024, window_size=512)

    def test_more_coefs_than_filters_rejected(self) -> None:
        with pytest.raises(ValueError):
            ExtractorConfig(n_filters=10, n_coefs=13)


class TestMatcherConfig:
    """Test MatcherConfig validation."""

    def test_default_values(self) -> None:
        config = MatcherConfig()
        assert config.tolerance == 0.001
        assert config.coefficients == 1

    def test_negative_tolerance_rejected(self) -> None:
        """Negative tolerances are only tolerated per request, not in config."""
        with pytest.raises(ValueError):
            MatcherConfig(tolerance=-1.0)

    def test_zero_coefficients_rejected(self) -> None:
        with pytest.raises(ValueError):
            MatcherConfig(coefficients=0)


class TestClipidConfig:
    """Test the top-level configuration."""

    def test_defaults(self) -> None:
        config = ClipidConfig()
        assert config.database.path == ":memory:"
        assert config.catalog.contexts == []
        assert "wav" in config.catalog.supported_formats

    def test_match_width_limited_by_extractor(self) -> None:
        """Test matcher.coefficients cannot exceed extractor.n_coefs."""
        with pytest.raises(ValueError):
            ClipidConfig(
                extractor=ExtractorConfig(n_coefs=4),
                matcher=MatcherConfig(coefficients=5),
            )

    def test_context_name_required(self) -> None:
        with pytest.raises(ValueError):
            ContextConfig(name="")


class TestLoadConfig:
    """Test loading configuration files."""

    def test_load_from_file(self, tmp_path: Path) -> None:
        """Test values from YAML override the defaults."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "database:\n"
            "  path: ':memory:'\n"
            "  snapshot_path: ~/snap.json\n"
            "matcher:\n"
            "  tolerance: 0.5\n"
            "  coefficients: 3\n"
            "catalog:\n"
            "  contexts:\n"
            "    - name: music\n"
            f"      directory: {tmp_path}\n"
            "    - name: prompts\n"
        )

        config = load_config(config_file)

        assert config.matcher.tolerance == 0.5
        assert config.matcher.coefficients == 3
        assert config.database.snapshot_path == Path.home() / "snap.json"
        assert [c.name for c in config.catalog.contexts] == ["music", "prompts"]
        assert config.catalog.contexts[0].directory == tmp_path
        assert config.catalog.contexts[1].directory is None

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        config = load_config(config_file)

        assert config == ClipidConfig()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_value_raises(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("extractor:\n  hop_size: -1\n")

        with pytest.raises(ValueError):
            load_config(config_file)

    def test_shipped_config_loads(self) -> None:
        """Test the repository config file is valid."""
        shipped = Path(__file__).parent.parent.parent / "config" / "config.yaml"
        config = load_config(shipped)
        assert config.extractor.n_coefs == 13
