"""Settings and AWS credentials.

Settings are loaded from an optional YAML file:
- path given on the command line (--config)
- $HCP_VPC_CONFIG environment variable
- built-in defaults when neither is present

Example:

    terraform:
      version: 1.5.7
      exec_path: /usr/local/bin/terraform   # skip the download
      install_dir: /var/tmp
      timeouts:
        apply: 3600

Credentials come from the ``aws:`` section of a secrets YAML file, or from
the standard AWS environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_TERRAFORM_VERSION = '1.5.7'
DEFAULT_RELEASES_URL = 'https://releases.hashicorp.com/terraform'

DEFAULT_TIMEOUTS = {
    'init': 300,
    'plan': 600,
    'apply': 1800,
    'destroy': 1800,
    'output': 60,
    'download': 120,
}

# Field name -> environment variable
AWS_ENV_VARS = {
    'access_key_id': 'AWS_ACCESS_KEY_ID',
    'secret_access_key': 'AWS_SECRET_ACCESS_KEY',
    'session_token': 'AWS_SESSION_TOKEN',
    'profile': 'AWS_PROFILE',
    'region': 'AWS_REGION',
}


class ConfigError(Exception):
    """Configuration error."""


@dataclass
class Settings:
    """Terraform installation and execution settings."""
    version: str = DEFAULT_TERRAFORM_VERSION
    exec_path: Optional[Path] = None  # Use an existing binary instead of downloading
    install_dir: Optional[Path] = None  # Parent for the temporary install directory
    releases_url: str = DEFAULT_RELEASES_URL
    timeouts: dict = field(default_factory=lambda: dict(DEFAULT_TIMEOUTS))

    def __post_init__(self):
        if isinstance(self.exec_path, str):
            self.exec_path = Path(self.exec_path)
        if isinstance(self.install_dir, str):
            self.install_dir = Path(self.install_dir)

    def timeout(self, step: str) -> int:
        """Timeout in seconds for a terraform step."""
        return self.timeouts.get(step, DEFAULT_TIMEOUTS.get(step, 600))


@dataclass
class AwsCredentials:
    """AWS credentials handed to terraform as environment variables."""
    access_key_id: str = ''
    secret_access_key: str = field(default='', repr=False)
    session_token: str = field(default='', repr=False)
    profile: str = ''
    region: str = ''

    def credentials_as_map(self) -> dict[str, str]:
        """Return the non-empty fields keyed by AWS environment variable."""
        return {
            env_var: getattr(self, attr)
            for attr, env_var in AWS_ENV_VARS.items()
            if getattr(self, attr)
        }

    def validate(self) -> None:
        """Require either a profile or a complete access key pair."""
        if bool(self.access_key_id) != bool(self.secret_access_key):
            raise ConfigError(
                "Incomplete AWS credentials: access_key_id and secret_access_key "
                "must be set together"
            )
        if not self.profile and not self.access_key_id:
            raise ConfigError(
                "No AWS credentials found. Set AWS_PROFILE or "
                "AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY"
            )


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at top level of {path}")
    return data


def _parse_timeouts(raw) -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("terraform.timeouts must be a mapping of step to seconds")
    timeouts = {}
    for step, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigError(f"Invalid timeout for {step}: {value!r} (positive integer seconds)")
        timeouts[step] = value
    return timeouts


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from YAML, falling back to defaults.

    An explicit path must exist. A path from $HCP_VPC_CONFIG that does not
    exist is an error too; without either, defaults are returned.
    """
    if path is None:
        if env_path := os.environ.get('HCP_VPC_CONFIG'):
            path = Path(env_path)
        else:
            logger.debug("No settings file, using defaults")
            return Settings()

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Settings file not found: {path}")

    tf_config = _parse_yaml(path).get('terraform') or {}
    if not isinstance(tf_config, dict):
        raise ConfigError(f"'terraform' section in {path} must be a mapping")

    timeouts = dict(DEFAULT_TIMEOUTS)
    timeouts.update(_parse_timeouts(tf_config.get('timeouts')))

    settings = Settings(
        version=str(tf_config.get('version', DEFAULT_TERRAFORM_VERSION)),
        exec_path=tf_config.get('exec_path'),
        install_dir=tf_config.get('install_dir'),
        releases_url=str(tf_config.get('releases_url') or DEFAULT_RELEASES_URL).rstrip('/'),
        timeouts=timeouts,
    )
    logger.debug(f"Loaded settings from {path}: terraform {settings.version}")
    return settings


def load_aws_credentials(path: Optional[Path] = None, env: Optional[dict] = None) -> AwsCredentials:
    """Load AWS credentials from a secrets file or the environment."""
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Credentials file not found: {path}")
        aws = _parse_yaml(path).get('aws') or {}
        if not isinstance(aws, dict):
            raise ConfigError(f"'aws' section in {path} must be a mapping")
        credentials = AwsCredentials(**{
            attr: str(aws.get(attr) or '') for attr in AWS_ENV_VARS
        })
    else:
        env = os.environ if env is None else env
        credentials = AwsCredentials(**{
            attr: env.get(env_var, '') for attr, env_var in AWS_ENV_VARS.items()
        })

    credentials.validate()
    return credentials
