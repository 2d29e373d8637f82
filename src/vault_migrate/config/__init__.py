"""Configuration management."""

from .config import Config, GitConfig, LoggingConfig, MigrationConfig, VaultConfig

__all__ = ['Config', 'GitConfig', 'LoggingConfig', 'MigrationConfig', 'VaultConfig']
