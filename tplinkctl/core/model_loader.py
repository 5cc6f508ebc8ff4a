"""Loading and validation of the YAML model lookup table."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from tplinkctl.core.capabilities import BUNDLES
from tplinkctl.core.errors import ModelTableLoadError, ModelTableValidationError
from tplinkctl.core.model import ModelRule

TABLE_FILENAMES = ("models.yaml", "models.yml")
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

# Model names such as "ON" or "NO" must stay strings.
for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ModelTableValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedModels:
    rules: tuple[ModelRule, ...]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("tplinkctl.schemas").joinpath("models.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _table_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "tplinkctl", xdg_data / "tplinkctl"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ModelTableLoadError(f"Could not read model table {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ModelTableValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ModelTableValidationError(f"Model table {path} must contain a mapping at root")
    return loaded


def _build_rules(doc: dict[str, Any], source: Path | Traversable) -> tuple[ModelRule, ...]:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ModelTableValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    rules: list[ModelRule] = []
    seen: set[str] = set()
    for index, entry in enumerate(doc["models"]):
        pattern = entry["pattern"].strip()
        device_class = entry["device_class"]
        if device_class not in BUNDLES:
            known = ", ".join(sorted(BUNDLES))
            raise ModelTableValidationError(
                f"Unknown device class '{device_class}' at {source} (models.{index}). Known: {known}"
            )
        if pattern.lower() in seen:
            raise ModelTableValidationError(f"Duplicate pattern '{pattern}' in {source}")
        seen.add(pattern.lower())
        rules.append(ModelRule(pattern=pattern, device_class=device_class))
    return tuple(rules)


def _packaged_table_path() -> Traversable:
    return resources.files("tplinkctl.models").joinpath("models.yaml")


def _iter_user_table_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _table_dirs():
        if not directory.is_dir():
            continue
        paths.extend(directory / name for name in TABLE_FILENAMES if (directory / name).is_file())
    return paths


def load_models() -> LoadedModels:
    """Return the ordered rule table: user rules first, packaged rules last."""
    packaged_path = _packaged_table_path()
    packaged = _build_rules(_read_yaml(packaged_path), packaged_path)
    packaged_patterns = {rule.pattern.lower(): rule for rule in packaged}

    user_rules: list[ModelRule] = []
    warnings: list[str] = []
    for path in _iter_user_table_paths():
        for rule in _build_rules(_read_yaml(path), path):
            shadowed = packaged_patterns.get(rule.pattern.lower())
            if shadowed is not None and shadowed.device_class != rule.device_class:
                warning = (
                    f"User model rule '{rule.pattern}' overrides packaged class "
                    f"'{shadowed.device_class}' with '{rule.device_class}'"
                )
                LOGGER.warning(warning)
                warnings.append(warning)
            user_rules.append(rule)

    return LoadedModels(rules=tuple(user_rules) + packaged, warnings=tuple(warnings))
