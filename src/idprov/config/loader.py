"""
Node attribute file loading.

The attributes file is YAML with a top-level ``keystone`` mapping:

    keystone:
      sql_engine: mysql
      service:
        token: s3cr3t
"""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml

from idprov.config.attributes import KeystoneAttributes
from idprov.core.errors import ConfigurationError

logger = structlog.get_logger()


def load_attributes(path: str | Path) -> KeystoneAttributes:
    """
    Load keystone node attributes from a YAML file.

    Raises:
        ConfigurationError: the file is missing, unparsable, or declares
            attributes that cannot be converged.
    """
    attributes_path = Path(path)
    if not attributes_path.exists():
        raise ConfigurationError("Attributes file not found", {"path": str(attributes_path)})

    try:
        with open(attributes_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(
            "Attributes file is not valid YAML", {"path": str(attributes_path), "error": str(e)}
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError("Attributes file must contain a mapping", {"path": str(attributes_path)})

    logger.debug("loaded_attributes", path=str(attributes_path))
    return KeystoneAttributes.from_dict(data.get("keystone") or {})


def save_attributes(attributes: KeystoneAttributes, path: str | Path) -> None:
    """Write attributes back in the layout load_attributes expects."""
    target_path = Path(path)
    target_path.parent.mkdir(parents=True, exist_ok=True)

    with open(target_path, "w") as f:
        yaml.dump({"keystone": attributes.to_dict()}, f, default_flow_style=False, sort_keys=False)

    logger.info("saved_attributes", path=str(target_path))
