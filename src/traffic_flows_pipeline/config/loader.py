"""
YAML configuration file loader.

Plain ``*.yaml`` files are parsed directly; ``*.enc.yaml`` files are
decrypted with SOPS first so the InfluxDB token can live in the repo
encrypted.
"""

import subprocess
from pathlib import Path
from typing import Any

import yaml


def decrypt_sops_file(file_path: Path) -> dict[str, Any]:
    """
    Decrypt a SOPS-encrypted file and return parsed YAML.

    Raises:
        FileNotFoundError: If file doesn't exist
        RuntimeError: If SOPS is missing or decryption fails
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Encrypted config file not found: {file_path}")

    try:
        result = subprocess.run(
            ["sops", "-d", str(file_path)],
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"SOPS decryption failed: {e.stderr}") from e
    except FileNotFoundError as e:
        raise RuntimeError(
            "SOPS not installed. Install with: brew install sops (macOS) "
            "or download from https://github.com/getsops/sops/releases"
        ) from e
    return _parse_yaml(result.stdout, file_path)


def load_config_file(file_path: Path) -> dict[str, Any]:
    """
    Load a YAML configuration file, decrypting it when it is SOPS-encrypted.

    Args:
        file_path: Path to ``config.yaml`` or ``config.enc.yaml``

    Returns:
        Configuration dictionary (empty for an empty file)

    Raises:
        FileNotFoundError: If file doesn't exist
        RuntimeError: If SOPS decryption fails
        ValueError: If the file is not a YAML mapping
    """
    file_path = Path(file_path)
    if file_path.name.endswith(".enc.yaml"):
        return decrypt_sops_file(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")
    return _parse_yaml(file_path.read_text(encoding="utf-8"), file_path)


def _parse_yaml(text: str, source: Path) -> dict[str, Any]:
    try:
        config = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {source}: {e}") from e
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValueError(f"Config file {source} must contain a mapping")
    return config
