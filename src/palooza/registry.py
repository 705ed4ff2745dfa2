"""Persona and style registries.

Registries are read-only collections built once at startup and passed to the
components that need them. ``load_catalog()`` reads the files named in the
catalog configuration; a configured path that is missing or malformed is a
``ConfigurationError``.
"""

import json
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any, Generic, TypeVar

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

from src.palooza.config import CatalogConfig
from src.palooza.errors import ConfigurationError
from src.palooza.models import ConversationStyle, Persona

logger = logging.getLogger(__name__)

T = TypeVar("T", Persona, ConversationStyle)


def _key(item: BaseModel) -> str:
    return getattr(item, "id", "") or getattr(item, "name", "")


class Registry(Generic[T]):
    """Read-only lookup-by-id collection preserving catalog order."""

    def __init__(self, items: Iterable[T] = ()) -> None:
        self._items: dict[str, T] = {}
        for item in items:
            key = _key(item)
            if key in self._items:
                logger.warning("Duplicate catalog id ignored", extra={"id": key})
                continue
            self._items[key] = item

    def get(self, item_id: str) -> T | None:
        return self._items.get(item_id)

    def list_all(self) -> list[T]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items.values())

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items


class PersonaRegistry(Registry[Persona]):
    """Persona catalog. Hidden personas resolve by id but are not listed."""

    def list_visible(self) -> list[Persona]:
        return [persona for persona in self if not persona.hidden]


class StyleRegistry(Registry[ConversationStyle]):
    """Conversation style catalog."""


def _read_entries(path: Path, key: str) -> list[dict[str, Any]]:
    """Read a list of catalog entries from a JSON or YAML file.

    The file holds either a bare list or a mapping with the list under ``key``.

    Raises:
        ConfigurationError: If the file is missing, unparsable or not a list
    """
    if not path.exists():
        raise ConfigurationError(f"Catalog file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read catalog file {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get(key)
    if not isinstance(data, list):
        raise ConfigurationError(f"Catalog file {path} must contain a list of {key}")
    return data


def load_personas(path: Path | None) -> PersonaRegistry:
    """Load the persona catalog. ``None`` yields an empty registry."""
    if path is None:
        logger.warning("No persona catalog configured")
        return PersonaRegistry()
    try:
        personas = [Persona.model_validate(entry) for entry in _read_entries(path, "personas")]
    except ValidationError as e:
        raise ConfigurationError(f"Invalid persona in {path}: {e}") from e
    logger.info("Loaded personas", extra={"path": str(path), "count": len(personas)})
    return PersonaRegistry(personas)


def load_styles(path: Path | None) -> StyleRegistry:
    """Load the style catalog. ``None`` yields an empty registry."""
    if path is None:
        logger.warning("No style catalog configured")
        return StyleRegistry()
    try:
        styles = [ConversationStyle.model_validate(entry) for entry in _read_entries(path, "styles")]
    except ValidationError as e:
        raise ConfigurationError(f"Invalid style in {path}: {e}") from e
    logger.info("Loaded styles", extra={"path": str(path), "count": len(styles)})
    return StyleRegistry(styles)


def load_catalog(config: CatalogConfig) -> tuple[PersonaRegistry, StyleRegistry]:
    """Load both registries named by the catalog configuration.

    Raises:
        ConfigurationError: If a configured file is missing or invalid
    """
    return load_personas(config.personas_path), load_styles(config.styles_path)
