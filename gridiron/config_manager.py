"""Layered configuration loader and CLI for the Gridiron pipeline.

Resolution order, lowest to highest: schema defaults, ``config.toml``,
``.env`` next to the config file, then ``GRIDIRON__SECTION__KEY``
variables from the process environment. Every resolved leaf remembers the
layer that set it so ``--explain`` can answer "where did this come from".
"""
from __future__ import annotations

import argparse
import json
import os
import re
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, MutableMapping, Optional, Sequence, Tuple

import tomli_w
from dotenv import dotenv_values
from pydantic import ValidationError

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python 3.10
    import tomli as tomllib  # type: ignore[no-redef]

from gridiron.config_schema import DEFAULT_CONFIG, Config

ENV_PREFIX = "GRIDIRON"
CONFIG_FILENAME = "config.toml"
ENV_FILENAME = ".env"
BACKUP_DIRNAME = "backups"

# Tables whose keys are data (domain names, signal families); a higher layer
# replaces them wholesale instead of merging key by key.
WHOLE_TABLES = frozenset({"filtering.source_rules", "dates.weights"})
SECRET_LEAVES = frozenset({"password", "secret", "token", "api_key"})
_INT_RE = re.compile(r"-?\d+")


@dataclass(frozen=True)
class Origin:
    """Layer that produced one resolved value."""

    layer: str
    source: str
    env_var: Optional[str] = None

    def render(self) -> str:
        details = ", ".join(item for item in (self.env_var, self.source) if item)
        return f"{self.layer} ({details})" if details else self.layer


@dataclass
class LoadInfo:
    config_path: Path
    env_path: Optional[Path]
    env_prefix: str
    provenance: Dict[str, Origin] = field(default_factory=dict)

    def layers(self) -> List[str]:
        return [
            "defaults: gridiron.config_schema.DEFAULT_CONFIG",
            f"config file: {self.config_path}",
            f".env file: {self.env_path or 'not found'}",
            f"environment prefix: {self.env_prefix}__*",
        ]


class ConfigError(RuntimeError):
    """Loading, parsing or validating configuration failed."""


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def is_secret(path: str) -> bool:
    return path.rsplit(".", 1)[-1].lower() in SECRET_LEAVES


def parse_scalar(text: str) -> Any:
    """Interpret an env or CLI string the way a TOML author would have written it."""

    value = text.strip()
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("null", "none"):
        return None
    if _INT_RE.fullmatch(value):
        return int(value)
    if value[:1] in ("[", "{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    try:
        return float(value)
    except ValueError:
        return value


def _nest(path: str, value: Any) -> Dict[str, Any]:
    nested: Dict[str, Any] = {}
    cursor = nested
    *parents, leaf = path.split(".")
    for segment in parents:
        cursor = cursor.setdefault(segment, {})
    cursor[leaf] = value
    return nested


def _overlay(
    target: MutableMapping[str, Any],
    layer: Mapping[str, Any],
    origin: Origin,
    provenance: Dict[str, Origin],
    prefix: str = "",
) -> None:
    for key, value in layer.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping) and path not in WHOLE_TABLES:
            branch = target.get(key)
            if not isinstance(branch, MutableMapping):
                branch = target[key] = {}
            _overlay(branch, value, origin, provenance, path)
            continue
        target[key] = value
        provenance[path] = origin


def _read_toml(path: Path) -> Mapping[str, Any]:
    if not path.exists():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc


def _env_layers(
    variables: Mapping[str, Optional[str]], prefix: str, layer: str, source: str
) -> Iterator[Tuple[Origin, Mapping[str, Any]]]:
    marker = prefix + "__"
    for name, raw in variables.items():
        if raw is None or not name.startswith(marker):
            continue
        segments = [part.lower() for part in name[len(marker):].split("__") if part]
        if not segments:
            raise ConfigError(f"Environment override '{name}' names no key")
        yield Origin(layer, source, name), _nest(".".join(segments), parse_scalar(raw))


def _find_env_file(config_path: Path) -> Optional[Path]:
    for candidate in (config_path.parent / ENV_FILENAME, _project_root() / ENV_FILENAME):
        if candidate.exists():
            return candidate
    return None


def _validation_error(error: ValidationError, provenance: Mapping[str, Origin]) -> ConfigError:
    lines = []
    for record in error.errors():
        location = ".".join(str(part) for part in record.get("loc", ())) or "<root>"
        message = record.get("msg", "invalid value")
        received = record.get("input")
        if received is not None and not is_secret(location):
            message = f"{message} (received={received!r})"
        origin = provenance.get(location)
        if origin is not None:
            message = f"{message} [{origin.render()}]"
        lines.append(f"{location}: {message}")
    return ConfigError("Configuration validation failed:\n - " + "\n - ".join(lines))


def load_config(
    path: Optional[Path] = None,
    *,
    env_prefix: str = ENV_PREFIX,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Resolve every layer into a validated :class:`Config`."""

    config_path = path or _project_root() / CONFIG_FILENAME
    env_path = _find_env_file(config_path)

    layers: List[Tuple[Origin, Mapping[str, Any]]] = [
        (Origin("defaults", "gridiron.config_schema.DEFAULT_CONFIG"), DEFAULT_CONFIG.model_dump(mode="python")),
        (Origin("file", str(config_path)), _read_toml(config_path)),
    ]
    if env_path is not None:
        layers.extend(_env_layers(dotenv_values(env_path), env_prefix, "env-file", str(env_path)))
    layers.extend(_env_layers(os.environ if environ is None else environ, env_prefix, "env", "process"))

    resolved: Dict[str, Any] = {}
    provenance: Dict[str, Origin] = {}
    for origin, layer in layers:
        _overlay(resolved, layer, origin, provenance)

    try:
        config = Config.model_validate(resolved)
    except ValidationError as exc:
        raise _validation_error(exc, provenance) from exc
    config._metadata = LoadInfo(config_path, env_path, env_prefix, provenance)
    return config


def _toml_ready(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _toml_ready(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_toml_ready(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    # TOML has no null; blank strings load back as unset
    return "" if value is None else value


def save_config(config: Config, path: Optional[Path] = None) -> Path:
    """Write ``config`` atomically; an existing file is first copied to ``backups/``."""

    info: Optional[LoadInfo] = getattr(config, "_metadata", None)
    target = path or (info.config_path if info else _project_root() / CONFIG_FILENAME)
    target.parent.mkdir(parents=True, exist_ok=True)
    document = tomli_w.dumps(_toml_ready(config.model_dump(mode="python")))

    fd, staged = tempfile.mkstemp(prefix=".gridiron-config-", dir=target.parent)
    staged_path = Path(staged)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(document)
        if target.exists():
            backups = target.parent / BACKUP_DIRNAME
            backups.mkdir(exist_ok=True)
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
            shutil.copy2(target, backups / f"{target.name}.{stamp}.bak")
        os.replace(staged_path, target)
    except OSError as exc:
        staged_path.unlink(missing_ok=True)
        raise ConfigError(f"Failed to persist configuration: {exc}") from exc
    return target


def lookup(data: Mapping[str, Any], path: str) -> Any:
    node: Any = data
    for segment in path.split("."):
        if not isinstance(node, Mapping) or segment not in node:
            raise ConfigError(f"Unknown configuration key: {path}")
        node = node[segment]
    return node


def explain(config: Config, key: str) -> str:
    info: Optional[LoadInfo] = getattr(config, "_metadata", None)
    if info is None:
        raise ConfigError("Configuration was not loaded through load_config()")
    value = lookup(config.model_dump(mode="json"), key)
    shown = "***masked***" if is_secret(key) else json.dumps(value, ensure_ascii=False)
    origin = info.provenance.get(key)
    return f"{key} = {shown}\nsource: {origin.render() if origin else 'unknown'}"


def apply_updates(config: Config, updates: Mapping[str, str]) -> Config:
    """Return a validated copy of ``config`` with dotted-key ``updates`` applied."""

    info: Optional[LoadInfo] = getattr(config, "_metadata", None)
    provenance = info.provenance if info else {}
    data = config.model_dump(mode="python")
    for key, raw in updates.items():
        section, _, leaf = key.rpartition(".")
        table = lookup(data, section) if section else None
        if not isinstance(table, MutableMapping):
            raise ConfigError(f"Unknown configuration key: {key}")
        table[leaf] = parse_scalar(raw)
        provenance[key] = Origin("cli", "runtime")
    try:
        updated = Config.model_validate(data)
    except ValidationError as exc:
        raise _validation_error(exc, provenance) from exc
    updated._metadata = info
    return updated


def _parse_assignments(items: Sequence[str]) -> Dict[str, str]:
    updates: Dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ConfigError(f"Expected KEY=VALUE, got '{item}'")
        updates[key.strip()] = value
    return updates


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Inspect and edit Gridiron configuration")
    parser.add_argument("--config", type=Path, help="TOML file to read and write")
    parser.add_argument("--env-prefix", default=ENV_PREFIX)
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--validate", action="store_true", help="Load and validate, then exit")
    action.add_argument("--dump-defaults", action="store_true", help="Print the built-in defaults as TOML")
    action.add_argument("--show-sources", action="store_true", help="List the layers in resolution order")
    action.add_argument("--explain", metavar="KEY", help="Show a value and the layer that set it")
    action.add_argument("--set", nargs="+", metavar="KEY=VALUE", help="Validate and save updates")
    args = parser.parse_args(argv)

    try:
        if args.dump_defaults:
            sys.stdout.write(tomli_w.dumps(_toml_ready(DEFAULT_CONFIG.model_dump(mode="python"))))
            return 0
        config = load_config(args.config, env_prefix=args.env_prefix)
        if args.show_sources:
            for layer in config._metadata.layers():
                print(f"- {layer}")
        elif args.explain:
            print(explain(config, args.explain))
        elif args.set:
            saved = save_config(apply_updates(config, _parse_assignments(args.set)), args.config)
            print(f"Saved configuration to {saved}")
        else:
            print("Configuration OK")
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
