"""
Run configuration.

Loads settings from an optional YAML file, then applies environment
variable overrides (set by the management agent that schedules runs).
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .baselines import SAMPLE_POLICY

logger = logging.getLogger(__name__)

ENV_PREFIX = "REGISTRY_COMPLIANCE_"


class RunConfig(BaseModel):
    """Configuration for one compliance run."""

    # Policy
    policy_path: Path = Field(
        default=SAMPLE_POLICY,
        description="YAML policy document with user and machine groups"
    )

    # Mode
    remediate: bool = Field(
        default=False,
        description="Correct drift (True) or only detect it (False)"
    )

    # User scope
    user_identities: List[str] = Field(
        default_factory=list,
        description="User security identities whose hives are evaluated"
    )

    # Output
    report_path: Optional[Path] = Field(
        default=None,
        description="Write a JSON compliance report here"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)"
    )

    log_file: Optional[Path] = Field(
        default=None,
        description="Also append log records to this file"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
            raise ValueError('log_level must be DEBUG, INFO, WARNING, or ERROR')
        return v.upper()

    @field_validator('user_identities', mode='before')
    @classmethod
    def split_identities(cls, v):
        if isinstance(v, str):
            return [s.strip() for s in v.split(',') if s.strip()]
        return v

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )


def _parse_bool(value: str) -> bool:
    return value.strip().lower() not in ('false', '0', 'no', '')


def load_config(config_path: Optional[Path] = None) -> RunConfig:
    """
    Load run configuration.

    Args:
        config_path: Optional YAML file; defaults apply when omitted

    Returns:
        RunConfig instance

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist
        ValueError: If config is invalid
    """
    config_dict = {}

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        logger.info(f"Loading config from {config_path}")
        with open(config_path, 'r') as f:
            try:
                config_dict = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Config file is not valid YAML: {e}") from e

        if not isinstance(config_dict, dict):
            raise ValueError(f"Config file must be a mapping: {config_path}")

    # Environment variable overrides
    env_overrides = {
        'policy_path': os.environ.get(f'{ENV_PREFIX}POLICY'),
        'remediate': os.environ.get(f'{ENV_PREFIX}REMEDIATE'),
        'log_level': os.environ.get(f'{ENV_PREFIX}LOG_LEVEL'),
        'log_file': os.environ.get(f'{ENV_PREFIX}LOG_FILE'),
        'report_path': os.environ.get(f'{ENV_PREFIX}REPORT'),
        'user_identities': os.environ.get(f'{ENV_PREFIX}USERS'),
    }

    for key, value in env_overrides.items():
        if value is not None:
            if key == 'remediate':
                config_dict[key] = _parse_bool(value)
            elif key in ('policy_path', 'log_file', 'report_path'):
                config_dict[key] = Path(value)
            else:
                config_dict[key] = value
            logger.info(f"Environment override: {key}={config_dict[key]}")

    return RunConfig(**config_dict)
