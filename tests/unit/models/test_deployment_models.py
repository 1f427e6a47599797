"""Tests for deployment configuration models."""

import pytest
from pydantic import ValidationError

from cutover.models.deployment import (
    CutoverConfig,
    DeploymentRequest,
    DeploymentSettings,
    RegistryCredentials,
    RestartPolicy,
    default_container_name,
)


def _request(**overrides: object) -> DeploymentRequest:
    data: dict[str, object] = {
        "app_name": "site",
        "image_reference": "site:1.4",
        "host_port": 8080,
        "container_port": 3000,
    }
    data.update(overrides)
    return DeploymentRequest(**data)


@pytest.mark.unit
class TestDeploymentRequest:
    """Tests for DeploymentRequest."""

    def test_container_name_defaults_from_app_name(self) -> None:
        request = _request()

        assert request.container_name == "site-latest"
        assert request.restart_policy == RestartPolicy.UNLESS_STOPPED
        assert request.health_check_path == "/"

    def test_explicit_container_name_is_kept(self) -> None:
        assert _request(container_name="site-blue").container_name == "site-blue"

    def test_health_check_path_is_made_absolute(self) -> None:
        assert _request(health_check_path="healthz").health_check_path == "/healthz"
        assert _request(health_check_path="  ").health_check_path == "/"

    def test_urls(self) -> None:
        request = _request(health_check_path="/health")

        assert request.base_url == "http://localhost:8080"
        assert request.health_check_url == "http://localhost:8080/health"

    def test_extra_arguments_from_shell_string(self) -> None:
        request = _request(extra_run_arguments="-e 'GREETING=hello world' --init")

        assert request.extra_run_arguments == ("-e", "GREETING=hello world", "--init")

    def test_extra_arguments_none_is_empty(self) -> None:
        assert _request(extra_run_arguments=None).extra_run_arguments == ()

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_port_range(self, port: int) -> None:
        with pytest.raises(ValidationError):
            _request(host_port=port)

    def test_blank_image_rejected(self) -> None:
        with pytest.raises(ValidationError, match="image_reference"):
            _request(image_reference="   ")

    def test_app_name_required(self) -> None:
        with pytest.raises(ValidationError):
            _request(app_name="")

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _request(replicas=2)

    def test_request_is_immutable(self) -> None:
        request = _request()

        with pytest.raises(ValidationError):
            request.host_port = 9090  # type: ignore[misc]


@pytest.mark.unit
class TestSupportingModels:
    """Credentials, settings and the resolved config."""

    def test_default_container_name(self) -> None:
        assert default_container_name("site", "main") == "site-main"
        assert default_container_name("site") == "site-latest"

    def test_password_requires_username(self) -> None:
        with pytest.raises(ValidationError, match="username is required"):
            RegistryCredentials(password="secret")

    def test_secrets_hidden_from_repr(self) -> None:
        creds = RegistryCredentials(username="ci", password="secret", job_token="tok")

        assert "secret" not in repr(creds)
        assert "tok" not in repr(creds)

    def test_settings_defaults(self) -> None:
        settings = DeploymentSettings()

        assert settings.max_health_checks == 6
        assert settings.health_check_interval == 10.0
        assert settings.health_check_timeout == 10.0
        assert settings.port_release_wait == 5.0
        assert settings.startup_wait == 10.0
        assert settings.diagnostic_log_lines == 50

    def test_settings_reject_zero_attempts(self) -> None:
        with pytest.raises(ValidationError):
            DeploymentSettings(max_health_checks=0)

    def test_config_defaults(self) -> None:
        config = CutoverConfig(request=_request())

        assert config.registry == RegistryCredentials()
        assert config.git.commit == "unknown"
