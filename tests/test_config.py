from pathlib import Path

import pytest

from directory_bootstrap.config import BootstrapConfig, require_env_vars
from directory_bootstrap.core.errors import ConfigurationError, MissingConfigurationError


def test_require_env_vars_reports_every_missing_name():
    with pytest.raises(MissingConfigurationError) as excinfo:
        require_env_vars(["B", "A", "C"], {"C": "set", "A": "  "})

    assert str(excinfo.value) == "Missing configuration for: A, B"


def test_from_environment_applies_defaults():
    config = BootstrapConfig.from_environment({"ADBOOT_DOMAIN_ADMIN_USER": "Administrator"})

    assert config.domain_admin_user == "Administrator"
    assert config.site_name == "Primary-Site"
    assert config.default_site_name == "Default-First-Site-Name"
    assert config.catalog_path is None
    assert config.audit_path is None
    assert config.poll_attempts == 60
    assert config.poll_interval_seconds == 10.0


def test_from_environment_reads_every_variable():
    config = BootstrapConfig.from_environment(
        {
            "ADBOOT_DOMAIN_ADMIN_USER": "admin",
            "ADBOOT_SITE_NAME": "HQ",
            "ADBOOT_DEFAULT_SITE_NAME": "Fresh",
            "ADBOOT_ORG_ROOT": "Corp",
            "ADBOOT_CATALOG_PATH": "/etc/adboot/catalog.json",
            "ADBOOT_AUDIT_PATH": "/var/log/adboot.jsonl",
            "ADBOOT_POLL_ATTEMPTS": "5",
            "ADBOOT_POLL_INTERVAL_SECONDS": "0.5",
        }
    )

    assert config.settings().site_name == "HQ"
    assert config.settings().default_site_name == "Fresh"
    assert config.settings().org_root == "Corp"
    assert config.catalog_path == Path("/etc/adboot/catalog.json")
    assert config.audit_path == Path("/var/log/adboot.jsonl")

    policy = config.retry_policy()
    assert policy.max_attempts == 5
    assert policy.interval_seconds == 0.5


def test_missing_admin_user_is_a_configuration_error():
    with pytest.raises(MissingConfigurationError):
        BootstrapConfig.from_environment({})


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("ADBOOT_POLL_ATTEMPTS", "many"),
        ("ADBOOT_POLL_ATTEMPTS", "0"),
        ("ADBOOT_POLL_INTERVAL_SECONDS", "soon"),
        ("ADBOOT_POLL_INTERVAL_SECONDS", "-1"),
    ],
)
def test_malformed_values_are_rejected(name, value):
    with pytest.raises(ConfigurationError):
        BootstrapConfig.from_environment({"ADBOOT_DOMAIN_ADMIN_USER": "admin", name: value})
