"""Unit tests for configuration loading.

These tests verify:
- Service principal settings come from the environment only
- Missing variables are all reported in one error
- Desired state precedence: explicit > file > environment > defaults
- The admin password is never accepted from the desired state file
"""

import pytest

from azprovision.config import (
    ServicePrincipalSettings,
    build_desired_state,
    load_desired_state_file,
    load_service_principal,
)
from azprovision.errors import ConfigurationError
from azprovision.models import ImageReference


class TestServicePrincipalSettings:
    """Test ServicePrincipalSettings loading and validation."""

    def test_load_from_environment(self, identity_env):
        settings = load_service_principal(identity_env)
        assert settings.client_id == identity_env["CLIENT_ID"]
        assert settings.tenant == "contoso.onmicrosoft.com"
        assert settings.subscription_id == identity_env["AZURE_SUBSCRIPTION_ID"]

    def test_values_are_stripped(self, identity_env):
        identity_env["DOMAIN"] = "  contoso.onmicrosoft.com \n"
        assert load_service_principal(identity_env).tenant == "contoso.onmicrosoft.com"

    def test_all_missing_variables_reported(self):
        with pytest.raises(ConfigurationError, match="please set/export") as exc_info:
            load_service_principal({})
        assert exc_info.value.missing == [
            "CLIENT_ID",
            "DOMAIN",
            "APPLICATION_SECRET",
            "AZURE_SUBSCRIPTION_ID",
        ]

    def test_blank_value_counts_as_missing(self, identity_env):
        identity_env["AZURE_SUBSCRIPTION_ID"] = "   "
        with pytest.raises(ConfigurationError) as exc_info:
            load_service_principal(identity_env)
        assert exc_info.value.missing == ["AZURE_SUBSCRIPTION_ID"]

    def test_repr_hides_secret(self, sp_settings):
        assert "fake-secret-value" not in repr(sp_settings)

    def test_masked_dict(self, sp_settings):
        masked = sp_settings.to_dict_masked()
        assert masked["client_secret"] == "****"
        assert masked["tenant"] == "contoso.onmicrosoft.com"

    def test_validate_passes_for_complete_settings(self, sp_settings):
        sp_settings.validate()

    def test_missing_fields(self):
        settings = ServicePrincipalSettings("id", "", "secret", "")
        assert settings.missing_fields() == ["DOMAIN", "AZURE_SUBSCRIPTION_ID"]


class TestLoadDesiredStateFile:
    """Test TOML desired state files."""

    def test_load(self, tmp_path):
        path = tmp_path / "desired.toml"
        path.write_text('location = "westeurope"\n[admin]\nusername = "ops"\n')
        data = load_desired_state_file(path)
        assert data == {"location": "westeurope", "admin": {"username": "ops"}}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_desired_state_file(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("location = \n")
        with pytest.raises(ConfigurationError, match="Failed to load"):
            load_desired_state_file(path)

    def test_password_in_file_rejected(self, tmp_path):
        path = tmp_path / "desired.toml"
        path.write_text('[admin]\nusername = "ops"\npassword = "hunter2"\n')
        with pytest.raises(ConfigurationError, match="VM_ADMIN_PASSWORD") as exc_info:
            load_desired_state_file(path)
        assert "hunter2" not in str(exc_info.value)


class TestBuildDesiredState:
    """Test desired state assembly and precedence."""

    def test_defaults_with_env_credentials(self):
        state = build_desired_state(
            environ={"VM_ADMIN_USERNAME": "notadmin", "VM_ADMIN_PASSWORD": "S3cure!pass"}
        )
        assert state.location == "eastus"
        assert state.vm_size == "Basic_A0"
        assert state.image == ImageReference()
        assert state.admin.username == "notadmin"
        assert state.admin.password == "S3cure!pass"

    def test_no_default_password(self):
        with pytest.raises(ConfigurationError, match="missing VM admin credentials") as exc_info:
            build_desired_state(admin_username="notadmin", environ={})
        assert exc_info.value.missing == ["VM_ADMIN_PASSWORD or an SSH public key"]

    def test_missing_username(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_desired_state(environ={"VM_ADMIN_PASSWORD": "x"})
        assert exc_info.value.missing == ["VM_ADMIN_USERNAME"]

    def test_ssh_key_file(self, tmp_path):
        key = tmp_path / "id_rsa.pub"
        key.write_text("ssh-rsa AAAAB3Nza test@host\n")
        state = build_desired_state(admin_username="notadmin", ssh_public_key_file=key, environ={})
        assert state.admin.ssh_public_key == "ssh-rsa AAAAB3Nza test@host"
        assert state.admin.password is None

    def test_unreadable_ssh_key_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="cannot read SSH public key"):
            build_desired_state(
                admin_username="notadmin", ssh_public_key_file=tmp_path / "missing.pub", environ={}
            )

    def test_precedence(self, tmp_path):
        path = tmp_path / "desired.toml"
        path.write_text(
            'location = "westeurope"\n'
            'vm_size = "Standard_B1s"\n'
            'image = "Canonical:UbuntuServer:18.04-LTS"\n'
            '[admin]\nusername = "fromfile"\n'
        )
        env = {"VM_ADMIN_USERNAME": "fromenv", "VM_ADMIN_PASSWORD": "envpass"}

        state = build_desired_state(location="northeurope", config_path=path, environ=env)

        assert state.location == "northeurope"
        assert state.vm_size == "Standard_B1s"
        assert state.image == ImageReference("Canonical", "UbuntuServer", "18.04-LTS", "latest")
        assert state.admin.username == "fromfile"
        assert state.admin.password == "envpass"

    def test_image_table_in_file(self, tmp_path):
        path = tmp_path / "desired.toml"
        path.write_text(
            '[image]\npublisher = "Canonical"\noffer = "UbuntuServer"\nsku = "16.04.0-LTS"\nversion = "16.04.202004290"\n'
        )
        state = build_desired_state(config_path=path, environ={"VM_ADMIN_USERNAME": "a", "VM_ADMIN_PASSWORD": "b"})
        assert state.image.version == "16.04.202004290"

    def test_explicit_image_reference(self):
        image = ImageReference(version="16.04.201906280")
        state = build_desired_state(image=image, admin_username="a", admin_password="b", environ={})
        assert state.image is image

    @pytest.mark.parametrize("image", ["UbuntuServer", "a:b:c:d:e"])
    def test_malformed_image(self, image):
        with pytest.raises(ConfigurationError, match="invalid desired state"):
            build_desired_state(image=image, admin_username="a", admin_password="b", environ={})

    def test_unknown_image_key_in_file(self, tmp_path):
        path = tmp_path / "desired.toml"
        path.write_text('[image]\npublisher = "Canonical"\ncolour = "blue"\n')
        with pytest.raises(ConfigurationError, match="invalid desired state"):
            build_desired_state(config_path=path, admin_username="a", admin_password="b", environ={})


class TestDesiredStateFileTypes:
    """Wrongly typed TOML values surface as ConfigurationError, not a crash."""

    ENV = {"VM_ADMIN_PASSWORD": "x"}

    def write(self, tmp_path, text):
        path = tmp_path / "desired.toml"
        path.write_text(text)
        return path

    def test_admin_must_be_table(self, tmp_path):
        path = self.write(tmp_path, 'admin = "ops"\n')
        with pytest.raises(ConfigurationError, match=r"\[admin\] must be a table"):
            load_desired_state_file(path)

    def test_admin_string_rejected_when_building(self, tmp_path):
        path = self.write(tmp_path, 'admin = "ops"\n')
        with pytest.raises(ConfigurationError, match=r"\[admin\] must be a table"):
            build_desired_state(config_path=path, environ=self.ENV)

    @pytest.mark.parametrize(
        "text,match",
        [
            ("location = 5\n", "location must be a string"),
            ("vm_size = 3\n", "vm_size must be a string"),
            ('[image]\npublisher = "Canonical"\nversion = 5\n', "image version must be a string"),
        ],
    )
    def test_non_string_values_rejected(self, tmp_path, text, match):
        path = self.write(tmp_path, text + '[admin]\nusername = "ops"\n')
        with pytest.raises(ConfigurationError, match=f"invalid desired state: {match}"):
            build_desired_state(config_path=path, environ=self.ENV)

    def test_non_string_username_rejected(self, tmp_path):
        path = self.write(tmp_path, "[admin]\nusername = 5\n")
        with pytest.raises(ConfigurationError, match="username must be a string"):
            build_desired_state(config_path=path, environ=self.ENV)

    def test_non_path_ssh_key_file_rejected(self, tmp_path):
        path = self.write(tmp_path, '[admin]\nusername = "ops"\nssh_public_key_file = 7\n')
        with pytest.raises(ConfigurationError, match="ssh_public_key_file must be a path"):
            build_desired_state(config_path=path, environ={})
