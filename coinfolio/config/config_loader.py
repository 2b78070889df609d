"""
Purpose:
    - Load the TOML config file
    - Overlay environment variables (COINFOLIO_ prefix, "__" separates sections)
    - Overlay --set KEY=VALUE overrides from the CLI
    - Validate the merged tree into AppConfig

Precedence (lowest to highest): defaults < file < environment < CLI.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from coinfolio.config.configs import AppConfig
from coinfolio.errors.errors import ConfigurationError

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "COINFOLIO_"


def insert_path(tree: dict[str, Any], dotted_path: str, value: Any) -> None:
    """Populate ``tree`` with ``value`` located at ``dotted_path``."""

    segments = [segment.strip() for segment in dotted_path.split(".") if segment.strip()]
    if not segments:
        raise ValueError("Override keys must contain at least one non-empty segment")

    cursor: dict[str, Any] = tree
    for segment in segments[:-1]:
        existing = cursor.get(segment)
        if existing is None:
            next_node: dict[str, Any] = {}
            cursor[segment] = next_node
            cursor = next_node
        elif isinstance(existing, dict):
            cursor = existing
        else:
            raise ValueError(
                f"Cannot override nested path '{dotted_path}': segment '{segment}' is already a value"
            )

    leaf = segments[-1]
    if isinstance(cursor.get(leaf), dict):
        raise ValueError(f"Cannot assign value to '{dotted_path}': '{leaf}' is a section")
    cursor[leaf] = value


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def parse_overrides(pairs: list[str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for item in pairs:
        key, sep, value = item.partition("=")
        if sep == "":
            raise ValueError(f"--set requires KEY=VALUE format (got {item!r})")
        insert_path(overrides, key, value)
    return overrides


def env_overrides(environ: Mapping[str, str], prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """COINFOLIO_LOCAL__POLL_INTERVAL_S=1 -> {"local": {"poll_interval_s": "1"}}"""
    overrides: dict[str, Any] = {}
    for name, value in sorted(environ.items()):
        if not name.startswith(prefix) or name == prefix:
            continue
        dotted = name[len(prefix) :].lower().replace("__", ".")
        insert_path(overrides, dotted, value)
    return overrides


class ConfigLoader:
    """
    Config-loader; TOML file plus environment and CLI overlays.
    """

    def __init__(self, base_dir: str | Path = ".", environ: Optional[Mapping[str, str]] = None):
        self._base_dir = Path(base_dir)
        self._environ = os.environ if environ is None else environ

    def load_file(self, file_name: str | Path) -> dict[str, Any]:
        path = Path(file_name)
        if not path.is_absolute():
            path = self._base_dir / path

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("rb") as f:
            try:
                return tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigurationError(f"Invalid TOML in {path}: {exc}") from exc

    def load(
        self,
        file_name: str | Path | None = None,
        overrides: Optional[list[str]] = None,
    ) -> AppConfig:
        layers: list[tuple[str, Mapping[str, Any]]] = []
        if file_name is not None:
            layers.append(("file", self.load_file(file_name)))
        layers.append(("env", env_overrides(self._environ)))
        try:
            layers.append(("cli", parse_overrides(overrides or [])))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        tree: dict[str, Any] = {}
        for source, layer in layers:
            if layer:
                _LOGGER.debug(
                    "config_layer_applied",
                    extra={"event": "config_layer_applied", "source": source, "keys": len(layer)},
                )
            tree = deep_merge(tree, layer)

        return self.validate(tree)

    @staticmethod
    def validate(tree: Mapping[str, Any]) -> AppConfig:
        try:
            return AppConfig.model_validate(dict(tree))
        except ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise ConfigurationError(
                f"Invalid configuration: {first['msg']}",
                field=field,
                value=first.get("input"),
            ) from exc
