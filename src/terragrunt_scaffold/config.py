#!/usr/bin/env python3
"""
Configuration Management Module

This module handles configuration loading, validation, and management for the
Terragrunt scaffold tool.
"""

import os
import yaml
import json
import logging
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field, asdict
from pathlib import Path
from jsonschema import validate, ValidationError

from .errors import ConfigurationError
from .formatter import DEFAULT_FORMAT_COMMAND
from .releases import GITHUB_API_URL

logger = logging.getLogger(__name__)


@dataclass
class ScaffoldDefaultsConfig:
    """Default scaffold variables and template settings"""
    variables: Dict[str, Any] = field(default_factory=dict)
    var_files: List[str] = field(default_factory=list)
    default_template_dir: str = ".scaffold"


@dataclass
class ReleaseLookupConfig:
    """Configuration for latest release tag lookup"""
    enabled: bool = True
    api_url: str = GITHUB_API_URL
    timeout: int = 10
    token_env: str = "GITHUB_OAUTH_TOKEN"


@dataclass
class FetchConfig:
    """Configuration for fetching module and template sources"""
    git_command: str = "git"
    timeout: int = 300  # seconds


@dataclass
class TemplateConfig:
    """Configuration for template rendering"""
    missing_key: str = "invalid"  # invalid, error
    missing_config: str = "exit"  # exit, ignore


@dataclass
class FormattingConfig:
    """Configuration for output formatting"""
    enabled: bool = True
    command: List[str] = field(default_factory=lambda: list(DEFAULT_FORMAT_COMMAND))
    timeout: int = 120


@dataclass
class LoggingConfig:
    """Configuration for logging"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None
    console: bool = True
    max_file_size: int = 10485760  # 10MB
    backup_count: int = 5


@dataclass
class ToolConfig:
    """Main configuration class for the scaffold tool"""
    scaffold: ScaffoldDefaultsConfig = field(default_factory=ScaffoldDefaultsConfig)
    release_lookup: ReleaseLookupConfig = field(default_factory=ReleaseLookupConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    template: TemplateConfig = field(default_factory=TemplateConfig)
    formatting: FormattingConfig = field(default_factory=FormattingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigManager:
    """Configuration manager for the scaffold tool"""

    # JSON Schema for configuration validation
    CONFIG_SCHEMA = {
        "type": "object",
        "properties": {
            "scaffold": {
                "type": "object",
                "properties": {
                    "variables": {"type": "object"},
                    "var_files": {"type": "array", "items": {"type": "string"}},
                    "default_template_dir": {"type": "string", "minLength": 1}
                },
                "additionalProperties": False
            },
            "release_lookup": {
                "type": "object",
                "properties": {
                    "enabled": {"type": "boolean"},
                    "api_url": {"type": "string", "pattern": "^https?://"},
                    "timeout": {"type": "integer", "minimum": 1, "maximum": 300},
                    "token_env": {"type": "string", "minLength": 1}
                },
                "additionalProperties": False
            },
            "fetch": {
                "type": "object",
                "properties": {
                    "git_command": {"type": "string", "minLength": 1},
                    "timeout": {"type": "integer", "minimum": 1}
                },
                "additionalProperties": False
            },
            "template": {
                "type": "object",
                "properties": {
                    "missing_key": {"type": "string", "enum": ["invalid", "error"]},
                    "missing_config": {"type": "string", "enum": ["exit", "ignore"]}
                },
                "additionalProperties": False
            },
            "formatting": {
                "type": "object",
                "properties": {
                    "enabled": {"type": "boolean"},
                    "command": {"type": "array", "items": {"type": "string"}, "minItems": 1},
                    "timeout": {"type": "integer", "minimum": 1}
                },
                "additionalProperties": False
            },
            "logging": {
                "type": "object",
                "properties": {
                    "level": {
                        "type": "string",
                        "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
                    },
                    "format": {"type": "string"},
                    "file": {"type": ["string", "null"]},
                    "console": {"type": "boolean"},
                    "max_file_size": {"type": "integer", "minimum": 1024},
                    "backup_count": {"type": "integer", "minimum": 1}
                },
                "additionalProperties": False
            }
        },
        "additionalProperties": False
    }

    DEFAULT_LOCATIONS = [
        './tg-scaffold.yaml',
        './tg-scaffold.yml',
        '~/.tg-scaffold/config.yaml',
    ]

    def __init__(self):
        self.config = ToolConfig()
        self._config_sources = []

    def load_config(self,
                    config_file: Optional[str] = None,
                    cli_args: Optional[Dict[str, Any]] = None,
                    env_vars: bool = True) -> ToolConfig:
        """
        Load configuration from multiple sources with precedence:
        1. CLI arguments (highest priority)
        2. Environment variables
        3. Configuration file
        4. Default values (lowest priority)
        """
        logger.debug("Loading configuration")

        # Start with default configuration
        self.config = ToolConfig()
        self._config_sources = ["defaults"]

        # Load from configuration file
        if config_file:
            self._load_from_file(config_file)
        else:
            for location in self.DEFAULT_LOCATIONS:
                expanded_path = os.path.expanduser(location)
                if os.path.exists(expanded_path):
                    self._load_from_file(expanded_path)
                    break

        # Load from environment variables
        if env_vars:
            self._load_from_env()

        # Apply CLI arguments
        if cli_args:
            self._apply_cli_args(cli_args)

        # Validate final configuration
        self._validate_config()

        logger.debug(f"Configuration loaded from sources: {', '.join(self._config_sources)}")
        return self.config

    def _load_from_file(self, config_file: str):
        """Load configuration from YAML or JSON file"""
        config_path = Path(config_file).expanduser()
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_file}")

        try:
            with open(config_path, 'r') as f:
                if config_path.suffix.lower() in ['.yaml', '.yml']:
                    file_config = yaml.safe_load(f)
                elif config_path.suffix.lower() == '.json':
                    file_config = json.load(f)
                else:
                    raise ConfigurationError(f"Unsupported configuration file format: {config_path.suffix}")
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load configuration from {config_file}: {str(e)}")
            raise ConfigurationError(f"Failed to load configuration from {config_file}: {str(e)}") from e

        if file_config:
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"Configuration file {config_file} must contain a mapping")
            self._merge_config(file_config)
            self._config_sources.append(f"file:{config_file}")
            logger.info(f"Loaded configuration from {config_file}")

    def _load_from_env(self):
        """Load configuration from environment variables"""
        env_config = {}

        if os.getenv('TG_SCAFFOLD_LOG_LEVEL'):
            env_config.setdefault('logging', {})['level'] = os.getenv('TG_SCAFFOLD_LOG_LEVEL').upper()

        if os.getenv('TG_SCAFFOLD_LOG_FILE'):
            env_config.setdefault('logging', {})['file'] = os.getenv('TG_SCAFFOLD_LOG_FILE')

        if os.getenv('TG_SCAFFOLD_RELEASE_API_URL'):
            env_config.setdefault('release_lookup', {})['api_url'] = os.getenv('TG_SCAFFOLD_RELEASE_API_URL')

        if os.getenv('TG_SCAFFOLD_GIT_COMMAND'):
            env_config.setdefault('fetch', {})['git_command'] = os.getenv('TG_SCAFFOLD_GIT_COMMAND')

        if os.getenv('TG_SCAFFOLD_NO_FORMAT'):
            env_config.setdefault('formatting', {})['enabled'] = os.getenv('TG_SCAFFOLD_NO_FORMAT').lower() not in ('true', '1', 'yes')

        if env_config:
            self._merge_config(env_config)
            self._config_sources.append("environment")
            logger.debug("Loaded configuration from environment variables")

    def _apply_cli_args(self, cli_args: Dict[str, Any]):
        """Apply CLI arguments to configuration"""
        cli_config = {}

        if cli_args.get('no_format'):
            cli_config.setdefault('formatting', {})['enabled'] = False

        if cli_args.get('no_release_lookup'):
            cli_config.setdefault('release_lookup', {})['enabled'] = False

        # Logging arguments
        if cli_args.get('verbose'):
            cli_config.setdefault('logging', {})['level'] = 'DEBUG'
        elif cli_args.get('quiet'):
            cli_config.setdefault('logging', {})['level'] = 'WARNING'

        if cli_config:
            self._merge_config(cli_config)
            self._config_sources.append("cli_args")
            logger.debug("Applied CLI arguments to configuration")

    def _merge_config(self, new_config: Dict[str, Any]):
        """Merge new configuration into existing configuration"""
        def merge_dict(base: Dict, update: Dict):
            for key, value in update.items():
                if key in base and isinstance(base[key], dict) and isinstance(value, dict) and key != 'variables':
                    merge_dict(base[key], value)
                elif key == 'variables' and isinstance(base.get(key), dict) and isinstance(value, dict):
                    base[key] = {**base[key], **value}
                else:
                    base[key] = value

        config_dict = self._config_to_dict()
        merge_dict(config_dict, new_config)

        self._validate_dict(config_dict)
        self.config = self._dict_to_config(config_dict)

    def _config_to_dict(self) -> Dict[str, Any]:
        """Convert configuration dataclass to dictionary"""
        return asdict(self.config)

    def _dict_to_config(self, config_dict: Dict[str, Any]) -> ToolConfig:
        """Convert dictionary to configuration dataclass"""
        return ToolConfig(
            scaffold=ScaffoldDefaultsConfig(**config_dict.get('scaffold', {})),
            release_lookup=ReleaseLookupConfig(**config_dict.get('release_lookup', {})),
            fetch=FetchConfig(**config_dict.get('fetch', {})),
            template=TemplateConfig(**config_dict.get('template', {})),
            formatting=FormattingConfig(**config_dict.get('formatting', {})),
            logging=LoggingConfig(**config_dict.get('logging', {}))
        )

    def _validate_dict(self, config_dict: Dict[str, Any]):
        try:
            validate(instance=config_dict, schema=self.CONFIG_SCHEMA)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e.message}")
            raise ConfigurationError(f"Invalid configuration: {e.message}")

    def _validate_config(self):
        """Validate configuration against schema"""
        self._validate_dict(self._config_to_dict())
        logger.debug("Configuration validation passed")

    def get_release_token(self) -> Optional[str]:
        """Read the release lookup credential from the environment"""
        return os.getenv(self.config.release_lookup.token_env) or None

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration"""
        return {
            'sources': self._config_sources,
            'default_variables': sorted(self.config.scaffold.variables),
            'release_lookup': self.config.release_lookup.enabled,
            'release_api_url': self.config.release_lookup.api_url,
            'formatting': ' '.join(self.config.formatting.command) if self.config.formatting.enabled else 'disabled',
            'missing_key_policy': self.config.template.missing_key,
            'logging_level': self.config.logging.level
        }


# Default configuration template
DEFAULT_CONFIG_TEMPLATE = """
# Terragrunt Scaffold Configuration

scaffold:
  variables: {}  # Default scaffold variables, e.g. SourceUrlType: git-ssh
  var_files: []  # YAML files with scaffold variables
  default_template_dir: .scaffold  # Template folder looked up inside modules

release_lookup:
  enabled: true
  api_url: "https://api.github.com"
  timeout: 10
  token_env: GITHUB_OAUTH_TOKEN  # Environment variable holding the API token

fetch:
  git_command: git
  timeout: 300

template:
  missing_key: invalid  # invalid, error
  missing_config: exit  # exit, ignore

formatting:
  enabled: true
  command:
    - terragrunt
    - hclfmt
  timeout: 120

logging:
  level: INFO  # DEBUG, INFO, WARNING, ERROR, CRITICAL
  format: "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
  file: null  # Log file path (null for no file logging)
  console: true
  max_file_size: 10485760  # 10MB
  backup_count: 5
"""
