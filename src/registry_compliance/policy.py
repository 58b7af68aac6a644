"""
Policy document loading.

Reads the declared registry state from YAML and validates it into a
PolicyDocument once, before any evaluation starts.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .models import PolicyDocument

logger = logging.getLogger(__name__)


def parse_policy(data: Dict[str, Any]) -> PolicyDocument:
    """Validate an already-parsed policy mapping."""
    if not isinstance(data, dict):
        raise ValueError("Policy document must be a mapping")
    return PolicyDocument.model_validate(data)


def load_policy(path: Union[str, Path]) -> PolicyDocument:
    """
    Load a policy document from YAML.

    Args:
        path: Policy file path

    Returns:
        Validated PolicyDocument

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is empty or fails validation
    """
    policy_path = Path(path)
    if not policy_path.exists():
        raise FileNotFoundError(f"Policy file not found: {policy_path}")

    logger.info(f"Loading policy from {policy_path}")

    with open(policy_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Policy file is not valid YAML: {policy_path}: {e}") from e

    if data is None:
        raise ValueError(f"Policy file is empty: {policy_path}")

    policy = parse_policy(data)
    logger.info(f"Loaded {len(policy.user_settings)} user and "
                f"{len(policy.machine_settings)} machine configuration groups")
    return policy
