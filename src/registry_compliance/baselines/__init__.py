"""
Bundled policy documents.

Contains:
- sample_policy.yaml: example user and machine configuration groups
"""

from pathlib import Path

BASELINES_DIR = Path(__file__).parent

SAMPLE_POLICY = BASELINES_DIR / "sample_policy.yaml"
