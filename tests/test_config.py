"""Tests for configuration management."""

import pytest
import tempfile
import os
from datetime import date
from pathlib import Path
from unittest.mock import patch

from vault_migrate.config.config import (
    Config,
    GitConfig,
    MigrationConfig,
    VaultConfig,
    parse_paths,
)


class TestParsePaths:
    """Test the vaultpath~branch mapping syntax."""

    def test_pairs(self):
        """Test several pairs separated by semicolons."""
        assert parse_paths('$/a~master;$/b/c~dev') == {
            'master': '$/a',
            'dev': '$/b/c',
        }

    def test_blank_entries_ignored(self):
        """Test trailing and empty separators."""
        assert parse_paths(' $/a~master ; ;') == {'master': '$/a'}

    def test_missing_separator(self):
        """Test that a pair without ~ is rejected."""
        with pytest.raises(ValueError):
            parse_paths('$/a')


class TestVaultConfig:
    """Test Vault server configuration."""

    def test_valid_config(self):
        """Test valid configuration creation."""
        config = VaultConfig(
            server='vault.example.com',
            user='migrator',
            password='secret',
            repository='Default',
        )

        assert config.server == 'vault.example.com'
        assert config.root_path == '$'
        assert config.command == 'vault'
        assert config.oldest_commit_date == date(1990, 1, 1)
        assert config.url == 'http://vault.example.com/VaultService'

    def test_server_scheme_stripped(self):
        """Test that a URL-style server value is reduced to the host."""
        config = VaultConfig(
            server='https://vault.example.com:8080/', user='u', repository='r'
        )
        assert config.server == 'vault.example.com:8080'

    def test_missing_repository(self):
        """Test that missing repository raises validation error."""
        with pytest.raises(ValueError):
            VaultConfig(server='vault.example.com', user='u')

    def test_immutable(self):
        """Test that configuration cannot be changed after creation."""
        config = VaultConfig(server='vault', user='u', repository='r')
        with pytest.raises(ValueError):
            config.user = 'other'


class TestGitConfig:
    """Test git configuration."""

    def test_defaults(self):
        """Test default values."""
        config = GitConfig(working_folder='/tmp/work')
        assert config.command == 'git'
        assert config.gc_interval == 200
        assert config.timeout == 3600

    def test_gc_interval_positive(self):
        """Test gc interval validation."""
        with pytest.raises(ValueError):
            GitConfig(working_folder='/tmp/work', gc_interval=0)

    def test_working_folder_expanded(self):
        """Test that ~ in the working folder is expanded."""
        config = GitConfig(working_folder='~/work')
        assert not config.working_folder.startswith('~')


class TestMigrationConfig:
    """Test migration settings."""

    def test_defaults(self):
        """Test default values."""
        config = MigrationConfig()
        assert config.paths == {}
        assert config.limit is None
        assert config.restart_limit == 20
        assert config.validate_resume_path is True
        assert config.skip_empty_commits is False
        assert config.checkout_attempts == 6
        assert config.retry_delay_seconds == 5.0

    def test_paths_string_form(self):
        """Test that paths accept the vaultpath~branch string."""
        config = MigrationConfig(paths='$/Trunk~master;$/Rel~release')
        assert config.paths == {'master': '$/Trunk', 'release': '$/Rel'}

    def test_restart_limit_may_be_zero(self):
        """Test that a zero restart limit is accepted."""
        assert MigrationConfig(restart_limit=0).restart_limit == 0

    def test_invalid_limit(self):
        """Test limit validation."""
        with pytest.raises(ValueError):
            MigrationConfig(limit=0)

    def test_unknown_field_rejected(self):
        """Test that misspelled settings are reported."""
        with pytest.raises(ValueError):
            MigrationConfig(restart_limt=5)


class TestConfig:
    """Test main configuration class."""

    def _config_dict(self):
        return {
            'vault': {
                'server': 'vault.example.com',
                'user': 'migrator',
                'password': 'secret',
                'repository': 'Default',
            },
            'git': {'working_folder': '/srv/work'},
            'migration': {'paths': {'master': '$/Trunk'}, 'limit': 10},
        }

    def test_config_from_dict(self):
        """Test configuration creation from dictionary."""
        config = Config(**self._config_dict())
        assert config.vault.repository == 'Default'
        assert config.git.working_folder == '/srv/work'
        assert config.migration.paths == {'master': '$/Trunk'}
        assert config.migration.limit == 10
        assert config.logging.level == 'INFO'

    def test_config_file_roundtrip(self):
        """Test saving and loading configuration to/from file."""
        original_config = Config(**self._config_dict())

        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = os.path.join(temp_dir, 'config.yaml')
            original_config.to_file(config_path)
            loaded_config = Config.from_file(config_path)

        assert loaded_config == original_config

    def test_config_file_not_found(self):
        """Test loading a missing file."""
        with pytest.raises(FileNotFoundError):
            Config.from_file('/nonexistent/config.yaml')

    def test_with_overrides(self):
        """Test that overrides produce a new config and ignore None values."""
        config = Config(**self._config_dict())

        updated = config.with_overrides(
            git={'working_folder': '/other'},
            migration={'limit': None, 'skip_empty_commits': True},
        )

        assert updated.git.working_folder == '/other'
        assert updated.migration.limit == 10
        assert updated.migration.skip_empty_commits is True
        assert config.git.working_folder == '/srv/work'
        assert config.migration.skip_empty_commits is False

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env = {
            'VAULT_SERVER': 'vault.example.com',
            'VAULT_USER': 'migrator',
            'VAULT_PASSWORD': 'secret',
            'VAULT_REPO': 'Default',
            'GIT_WORKING_FOLDER': '/srv/work',
            'GIT_DOMAIN_NAME': 'corp.example.com',
            'MIGRATION_PATHS': '$/Trunk~master',
            'LOG_LEVEL': 'debug',
        }
        with patch('vault_migrate.config.config.load_dotenv'):
            with patch.dict(os.environ, env, clear=True):
                config = Config.from_env()

        assert config.vault.user == 'migrator'
        assert config.git.domain_name == 'corp.example.com'
        assert config.migration.paths == {'master': '$/Trunk'}
        assert config.logging.level == 'DEBUG'

    def test_create_template(self):
        """Test that the template is a loadable configuration."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / 'template.yaml'
            Config.create_template(str(config_path))
            config = Config.from_file(str(config_path))

        assert config.vault.repository == 'Default'
        assert 'master' in config.migration.paths
