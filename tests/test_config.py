"""Tests for checkview.config module."""

from pathlib import Path

import pytest
import yaml

from checkview.config import DEFAULT_MAX_DEPTH, TreeOptions, ViewConfig, check_value, coerce_value
from checkview.errors import ConfigError


@pytest.fixture(autouse=True)
def no_crit_env(monkeypatch):
    """Keep the caller's CHECKVIEW_CRIT out of the tests."""
    monkeypatch.delenv("CHECKVIEW_CRIT", raising=False)


class TestViewConfig:
    """Tests for ViewConfig load/save."""

    def test_defaults_when_missing(self, tmp_path: Path):
        """No file means defaults."""
        cfg = ViewConfig.load(tmp_path / "config.yaml")

        assert cfg == ViewConfig()
        assert cfg.max_depth == DEFAULT_MAX_DEPTH
        assert cfg.crit_binary == "crit"

    def test_loads_known_fields_only(self, tmp_path: Path):
        """Unknown keys in the file are ignored."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"mounts": True, "max_depth": 64, "bogus": 1}))

        cfg = ViewConfig.load(path)

        assert cfg.mounts is True
        assert cfg.max_depth == 64
        assert not hasattr(cfg, "bogus")

    def test_empty_file(self, tmp_path: Path):
        """An empty YAML file means defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert ViewConfig.load(path) == ViewConfig()

    def test_env_overrides_crit_binary(self, tmp_path: Path, monkeypatch):
        """CHECKVIEW_CRIT wins over the file."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"crit_binary": "/usr/bin/crit"}))
        monkeypatch.setenv("CHECKVIEW_CRIT", "/opt/criu/crit")

        assert ViewConfig.load(path).crit_binary == "/opt/criu/crit"

    def test_save_writes_only_non_defaults(self, tmp_path: Path):
        """Saved file holds just the changed values."""
        path = tmp_path / "nested" / "config.yaml"

        ViewConfig(stats=True).save(path)

        assert yaml.safe_load(path.read_text()) == {"stats": True}
        assert ViewConfig.load(path).stats is True

    @pytest.mark.parametrize("max_depth", [5000, 0, -1])
    def test_out_of_range_max_depth_raises(self, tmp_path: Path, max_depth):
        """max_depth in the file must stay within the supported range."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"max_depth": max_depth}))

        with pytest.raises(ConfigError, match="max_depth must be between 1 and 900") as exc_info:
            ViewConfig.load(path)
        assert exc_info.value.path == path

    @pytest.mark.parametrize("max_depth", ["deep", "64", 12.5, True, None])
    def test_non_int_max_depth_raises(self, tmp_path: Path, max_depth):
        """max_depth in the file must be an integer."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"max_depth": max_depth}))

        with pytest.raises(ConfigError, match="expected an integer for max_depth"):
            ViewConfig.load(path)

    def test_non_bool_toggle_raises(self, tmp_path: Path):
        """Toggles in the file must be YAML booleans."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"stats": "sometimes"}))

        with pytest.raises(ConfigError, match="expected a boolean for stats"):
            ViewConfig.load(path)

    def test_non_mapping_file_raises(self, tmp_path: Path):
        """A file that is not a mapping is rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("- mounts\n- stats\n")

        with pytest.raises(ConfigError, match="is not a mapping"):
            ViewConfig.load(path)

    def test_unparsable_file_raises(self, tmp_path: Path):
        """Broken YAML is reported as a ConfigError."""
        path = tmp_path / "config.yaml"
        path.write_text("mounts: [true\n")

        with pytest.raises(ConfigError, match="failed to parse"):
            ViewConfig.load(path)


class TestTreeOptions:
    """Tests for ViewConfig.tree_options()."""

    def test_flags_enable_toggles(self):
        """Command-line flags switch branches on."""
        options = ViewConfig().tree_options(mounts=True)

        assert options == TreeOptions(mounts=True)

    def test_config_defaults_apply(self):
        """Configured toggles are on without flags."""
        options = ViewConfig(ps_tree=True, max_depth=32).tree_options()

        assert options.ps_tree is True
        assert options.max_depth == 32

    def test_show_all(self):
        """--all enables every enrichment."""
        options = ViewConfig().tree_options(show_all=True)

        assert options.mounts and options.stats and options.ps_tree

    def test_explicit_max_depth_wins(self):
        """A command-line depth overrides the config."""
        assert ViewConfig(max_depth=32).tree_options(max_depth=8).max_depth == 8

    def test_needs_images(self):
        """Images are only needed for stats or the process tree."""
        assert not TreeOptions(mounts=True).needs_images
        assert TreeOptions(stats=True).needs_images
        assert TreeOptions(ps_tree=True).needs_images


class TestCoerceValue:
    """Tests for coerce_value()."""

    @pytest.mark.parametrize("raw,expected", [("true", True), ("YES", True), ("0", False), ("off", False)])
    def test_booleans(self, raw, expected):
        """Boolean fields accept common spellings."""
        assert coerce_value("mounts", raw) is expected

    def test_int(self):
        """Integer fields are parsed."""
        assert coerce_value("max_depth", "128") == 128

    def test_int_out_of_range(self):
        """Depth must stay within the supported range."""
        with pytest.raises(ValueError):
            coerce_value("max_depth", "0")
        with pytest.raises(ValueError):
            coerce_value("max_depth", "100000")

    def test_string(self):
        """String fields pass through."""
        assert coerce_value("crit_binary", "/usr/sbin/crit") == "/usr/sbin/crit"

    def test_unknown_key(self):
        """Unknown keys raise KeyError."""
        with pytest.raises(KeyError):
            coerce_value("nope", "1")

    def test_bad_boolean(self):
        """Non-boolean text is rejected."""
        with pytest.raises(ValueError):
            coerce_value("stats", "maybe")


class TestCheckValue:
    """Tests for check_value()."""

    def test_accepts_typed_values(self):
        """Values of the field's type pass through unchanged."""
        assert check_value("mounts", True) is True
        assert check_value("max_depth", 900) == 900
        assert check_value("crit_binary", "crit") == "crit"

    def test_rejects_bool_for_int(self):
        """True is not a depth."""
        with pytest.raises(ValueError):
            check_value("max_depth", True)

    def test_rejects_empty_string(self):
        """crit_binary cannot be blank."""
        with pytest.raises(ValueError):
            check_value("crit_binary", "")

    def test_unknown_key(self):
        """Unknown keys raise KeyError."""
        with pytest.raises(KeyError):
            check_value("nope", 1)
