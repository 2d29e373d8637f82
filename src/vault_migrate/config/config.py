"""Configuration management for Vault Migration Tool."""

from datetime import date
from typing import Optional, Dict, Any, List
from pathlib import Path
import os

from pydantic import BaseModel, ConfigDict, Field, field_validator
import yaml
from dotenv import load_dotenv


def parse_paths(paths: str) -> Dict[str, str]:
    """Parse a ``vaultpath~branch;vaultpath~branch`` string.

    Args:
        paths: Semicolon separated pairs of Vault path and git branch

    Returns:
        Mapping of git branch name to Vault path
    """
    result = {}
    for pair in paths.split(';'):
        pair = pair.strip()
        if not pair:
            continue
        if '~' not in pair:
            raise ValueError(f'Path pair must be vaultpath~branch: {pair}')
        vault_path, branch = pair.split('~', 1)
        result[branch.strip()] = vault_path.strip()
    return result


class VaultConfig(BaseModel):
    """Configuration for the source Vault server."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    server: str = Field(..., description='Vault server host (and optional port)')
    user: str = Field(..., description='Vault user name')
    password: str = Field(default='', description='Vault password')
    repository: str = Field(..., description='Vault repository name')
    root_path: str = Field(default='$', description='Vault repository root path')
    command: str = Field(
        default='vault', description='Vault command-line client executable'
    )
    oldest_commit_date: date = Field(
        default=date(1990, 1, 1), description='Ignore history older than this date'
    )

    @field_validator('server')
    @classmethod
    def validate_server(cls, v):
        """Strip scheme and trailing slashes from the server name."""
        for prefix in ('http://', 'https://'):
            if v.startswith(prefix):
                v = v[len(prefix):]
        v = v.rstrip('/')
        if not v:
            raise ValueError('Vault server must not be empty')
        return v

    @property
    def url(self) -> str:
        """Vault service URL used for login."""
        return f'http://{self.server}/VaultService'


class GitConfig(BaseModel):
    """Git operations configuration."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    command: str = Field(default='git', description='git executable')
    working_folder: str = Field(
        ..., description='git work tree where Vault files are materialized'
    )
    domain_name: str = Field(
        default='example.com', description='Domain appended to Vault logins'
    )
    user_name: str = Field(
        default='Vault Migration Tool', description='Git committer name'
    )
    user_email: str = Field(
        default='migration@vault.local', description='Git committer email'
    )
    gc_interval: int = Field(
        default=200, description='Run git gc --auto every N commits'
    )
    timeout: int = Field(
        default=3600, description='Git operation timeout in seconds (default: 1 hour)'
    )

    @field_validator('working_folder')
    @classmethod
    def validate_working_folder(cls, v):
        """Validate working folder path."""
        if not v:
            raise ValueError('working_folder must not be empty')
        return str(Path(v).expanduser())

    @field_validator('gc_interval', 'timeout')
    @classmethod
    def validate_positive(cls, v):
        """Validate value is positive."""
        if v <= 0:
            raise ValueError('Value must be positive')
        return v


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    paths: Dict[str, str] = Field(
        default_factory=dict, description='Git branch to Vault path mapping'
    )
    limit: Optional[int] = Field(
        default=None, description='Maximum transactions to migrate per branch'
    )
    restart_limit: int = Field(
        default=20,
        description='Commits to search back for the restart point (<=0 starts at 0)',
    )
    assume_first_revision: bool = Field(
        default=False,
        description='Start from the first revision without asking when no restart point is found',
    )
    validate_resume_path: bool = Field(
        default=True,
        description='Only accept restart points recorded for the same Vault path',
    )
    skip_empty_commits: bool = Field(
        default=False, description='Do not create commits without changes'
    )
    force_full_folder_get: bool = Field(
        default=False, description='Always fetch the whole folder for each transaction'
    )
    ignore_labels: bool = Field(
        default=False, description='Do not create git tags from Vault labels'
    )
    pause: bool = Field(default=False, description='Pause before every commit')
    retry_delay_seconds: float = Field(
        default=5.0, description='Delay before retrying a failed Vault fetch'
    )
    checkout_attempts: int = Field(
        default=6, description='Attempts to switch to a branch before giving up'
    )
    preserved_names: List[str] = Field(
        default_factory=list,
        description='Top-level names kept when the working folder is wiped',
    )

    @field_validator('paths', mode='before')
    @classmethod
    def validate_paths(cls, v):
        """Accept the ``vaultpath~branch;...`` string form."""
        if isinstance(v, str):
            return parse_paths(v)
        return v

    @field_validator('limit')
    @classmethod
    def validate_limit(cls, v):
        """Validate limit is positive."""
        if v is not None and v <= 0:
            raise ValueError('Limit must be positive')
        return v

    @field_validator('retry_delay_seconds')
    @classmethod
    def validate_retry_delay(cls, v):
        """Validate retry delay is not negative."""
        if v < 0:
            raise ValueError('Retry delay must not be negative')
        return v

    @field_validator('checkout_attempts')
    @classmethod
    def validate_checkout_attempts(cls, v):
        """Validate checkout attempts is positive."""
        if v <= 0:
            raise ValueError('Checkout attempts must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format')

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for Vault Migration Tool."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    vault: VaultConfig = Field(..., description='Source Vault server')
    git: GitConfig = Field(..., description='Target git repository settings')
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        config_data = {
            'vault': {
                'server': os.getenv('VAULT_SERVER'),
                'user': os.getenv('VAULT_USER'),
                'password': os.getenv('VAULT_PASSWORD'),
                'repository': os.getenv('VAULT_REPO'),
                'command': os.getenv('VAULT_COMMAND'),
                'oldest_commit_date': os.getenv('VAULT_OLDEST_COMMIT_DATE'),
            },
            'git': {
                'command': os.getenv('GIT_COMMAND'),
                'working_folder': os.getenv('GIT_WORKING_FOLDER'),
                'domain_name': os.getenv('GIT_DOMAIN_NAME'),
                'gc_interval': os.getenv('GIT_GC_INTERVAL'),
            },
            'migration': {
                'paths': os.getenv('MIGRATION_PATHS'),
                'restart_limit': os.getenv('MIGRATION_RESTART_LIMIT'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        # Remove None values
        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.model_dump(mode='json'),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )

    def with_overrides(self, **sections: Dict[str, Any]) -> 'Config':
        """Return a copy with some fields of the given sections replaced.

        Args:
            **sections: Section name mapped to the field values to replace

        Returns:
            New configuration; this one is left untouched
        """
        data = self.model_dump()
        for section, values in sections.items():
            data[section].update(
                {k: v for k, v in values.items() if v is not None}
            )
        return Config(**data)

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'vault': {
                'server': 'vault.example.com',
                'user': 'migrator',
                'password': 'your-vault-password',
                'repository': 'Default',
                'root_path': '$',
                'command': 'vault',
                'oldest_commit_date': '2000-01-01',
            },
            'git': {
                'command': 'git',
                'working_folder': '/srv/vault-migration/work',
                'domain_name': 'example.com',
                'user_name': 'Vault Migration Tool',
                'user_email': 'migration@vault.local',
                'gc_interval': 200,
                'timeout': 3600,
            },
            'migration': {
                'paths': {
                    'master': '$/Project/Trunk',
                    'release': '$/Project/Release',
                },
                'restart_limit': 20,
                'assume_first_revision': False,
                'validate_resume_path': True,
                'skip_empty_commits': False,
                'force_full_folder_get': False,
                'ignore_labels': False,
                'pause': False,
                'retry_delay_seconds': 5,
            },
            'logging': {
                'level': 'INFO',
                'file': 'migration.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )
