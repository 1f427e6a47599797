"""Tests for environment variable substitution and dotenv loading."""

import os
from pathlib import Path

import pytest

from cutover.config.env_loader import (
    apply_env_file,
    get_env_var,
    load_env_file,
    substitute_env_vars,
)
from cutover.lib.errors import ConfigError


@pytest.mark.unit
class TestSubstituteEnvVars:
    """Tests for substitute_env_vars()."""

    def test_replaces_set_variable(self) -> None:
        """Set variables are substituted verbatim."""
        result = substitute_env_vars("image: ${IMAGE}", {"IMAGE": "site:1.4"})

        assert result == "image: site:1.4"

    def test_uses_default_when_unset(self) -> None:
        """${VAR:-default} falls back to the default."""
        assert substitute_env_vars("port: ${PORT:-8080}", {}) == "port: 8080"

    def test_empty_default_is_allowed(self) -> None:
        """An empty default substitutes an empty string."""
        assert substitute_env_vars("args: '${ARGS:-}'", {}) == "args: ''"

    def test_set_variable_wins_over_default(self) -> None:
        """A set variable takes precedence over its default."""
        assert substitute_env_vars("${PORT:-8080}", {"PORT": "9000"}) == "9000"

    def test_unset_without_default_raises(self) -> None:
        """Unset variables without a default raise ConfigError."""
        with pytest.raises(ConfigError) as exc_info:
            substitute_env_vars("token: ${CI_JOB_TOKEN}", {})

        assert exc_info.value.field == "CI_JOB_TOKEN"
        assert "${CI_JOB_TOKEN:-value}" in exc_info.value.message

    def test_text_without_references_is_unchanged(self) -> None:
        """Plain text passes through untouched."""
        assert substitute_env_vars("app_name: site", {}) == "app_name: site"


@pytest.mark.unit
class TestGetEnvVar:
    """Tests for get_env_var()."""

    def test_returns_value(self) -> None:
        assert get_env_var("APP_NAME", environ={"APP_NAME": "site"}) == "site"

    def test_empty_value_falls_back_to_default(self) -> None:
        """Empty strings count as unset, like ${VAR:-default} in a shell."""
        assert get_env_var("APP_NAME", "my-app", {"APP_NAME": ""}) == "my-app"

    def test_missing_returns_none(self) -> None:
        assert get_env_var("APP_NAME", environ={}) is None


@pytest.mark.unit
class TestDotenvFiles:
    """Tests for .env file helpers."""

    def test_load_env_file_reads_values(self, tmp_path: Path) -> None:
        """load_env_file parses KEY=value pairs without touching os.environ."""
        env_file = tmp_path / ".env"
        env_file.write_text("APP_NAME=site\nHOST_PORT=8080\n")

        values = load_env_file(env_file)

        assert values == {"APP_NAME": "site", "HOST_PORT": "8080"}

    def test_apply_env_file_does_not_override(
        self, tmp_path: Path, isolated_env: dict[str, str]
    ) -> None:
        """Variables already set in the environment keep their value."""
        env_file = tmp_path / ".env"
        env_file.write_text("CUTOVER_TEST_A=from-file\nCUTOVER_TEST_B=from-file\n")
        os.environ["CUTOVER_TEST_A"] = "from-env"
        os.environ.pop("CUTOVER_TEST_B", None)

        assert apply_env_file(env_file) is True
        assert os.environ["CUTOVER_TEST_A"] == "from-env"
        assert os.environ["CUTOVER_TEST_B"] == "from-file"

    def test_apply_env_file_missing_returns_false(self, tmp_path: Path) -> None:
        """A missing dotenv file is not an error."""
        assert apply_env_file(tmp_path / "missing.env") is False
