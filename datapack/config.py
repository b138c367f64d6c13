"""
Config system - Layered packing configuration.

Merge precedence (later overrides earlier):

1. ``PackConfig`` defaults
2. Config file (``datapack.yaml`` / ``datapack.yml`` / ``datapack.json``)
3. ``.env`` file (``DATAPACK_*`` keys only)
4. ``DATAPACK_*`` environment variables
5. Explicit overrides (CLI flags)
"""

from dataclasses import MISSING, asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, get_args, get_origin
import json
import os
import types

from .faults import ConfigInvalidFault

DEFAULT_CONFIG_FILES = ("datapack.yaml", "datapack.yml", "datapack.json")


@dataclass
class PackConfig:
    """Options of a packing run, as accepted by ``datapack_modules``."""

    module_names: List[str] = field(default_factory=list)
    search_path: Optional[List[str]] = None
    include_parents: bool = True
    preamble: Optional[str] = None
    postamble: Optional[str] = None
    put_hook_at_the_end: bool = False
    output: Optional[str] = None
    overwrite: bool = False
    stripper: bool = False
    stripper_maintain_linum: bool = False
    stripper_ws: bool = True
    stripper_comment: bool = True
    stripper_doc: bool = True
    stripper_log: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def pack_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``datapack_modules`` (without the inputs)."""
        data = self.to_dict()
        data.pop("module_names")
        return data


class ConfigLoader:
    """
    Loads and merges packing configuration from multiple sources.
    """

    def __init__(self, env_prefix: str = "DATAPACK_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}
        self.sources: List[str] = []

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = "DATAPACK_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration with proper merge strategy.

        Args:
            paths: Config files; auto-detected in the working directory
                when omitted.
            env_prefix: Prefix for environment variables
            env_file: Path to a .env file
            overrides: Manual overrides (highest precedence). ``None``
                values are ignored so unset CLI flags keep lower layers.
            environ: Environment mapping, ``os.environ`` by default.

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        if paths is None:
            paths = [name for name in DEFAULT_CONFIG_FILES if Path(name).exists()][:1]
        for path in paths:
            loader._load_file(Path(path))

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env(os.environ if environ is None else environ)

        if overrides:
            loader._merge_dict(
                loader.config_data, {k: v for k, v in overrides.items() if v is not None}
            )

        return loader

    def _load_file(self, path: Path):
        if not path.exists():
            raise ConfigInvalidFault(str(path), "config file does not exist")
        if path.suffix == ".json":
            with open(path) as f:
                data = json.load(f)
        elif path.suffix in (".yaml", ".yml"):
            import yaml
            with open(path) as f:
                data = yaml.safe_load(f)
        else:
            raise ConfigInvalidFault(str(path), f"unsupported config format '{path.suffix}'")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigInvalidFault(str(path), "top level must be a mapping")
        self._merge_dict(self.config_data, data)
        self.sources.append(str(path))

    def _load_env_file(self, path: str):
        """Load DATAPACK_* keys from a .env file."""
        from dotenv import dotenv_values

        env_path = Path(path)
        if not env_path.exists():
            return
        for key, value in dotenv_values(env_path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_key(key, value)
        self.sources.append(str(env_path))

    def _load_from_env(self, environ: Dict[str, str]):
        for key, value in environ.items():
            if key.startswith(self.env_prefix):
                self._set_key(key, value)

    def _set_key(self, key: str, value: str):
        """DATAPACK_STRIPPER_WS=0 -> stripper_ws = False."""
        name = key[len(self.env_prefix):].lower()
        self.config_data[name] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        # Boolean
        if value.lower() in ("true", "yes", "1"):
            return True
        if value.lower() in ("false", "no", "0"):
            return False

        # Number
        try:
            return int(value)
        except ValueError:
            pass

        # JSON
        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.config_data.get(key, default)

    def to_dict(self) -> dict:
        """Export all config as dictionary."""
        return self.config_data.copy()

    def pack_config(self) -> PackConfig:
        """Instantiate and validate a :class:`PackConfig`."""
        kwargs = {}
        for field_info in fields(PackConfig):
            name = field_info.name
            if name in self.config_data:
                value = self.config_data[name]
                if name in ("module_names", "search_path") and isinstance(value, str):
                    value = [part for part in value.split(os.pathsep if name == "search_path" else ",") if part]
                if field_info.type == Optional[str] and type(value) is int:
                    value = str(value)
                if not self._check_type(value, field_info.type):
                    raise ConfigInvalidFault(
                        name, f"expected {field_info.type}, got {type(value).__name__}"
                    )
                kwargs[name] = value
            elif field_info.default is not MISSING:
                kwargs[name] = field_info.default
            else:
                kwargs[name] = field_info.default_factory()
        return PackConfig(**kwargs)

    def _check_type(self, value: Any, expected_type: Any) -> bool:
        """Basic type checking."""
        origin = get_origin(expected_type)
        if origin is types.UnionType or str(origin) == "typing.Union":
            if value is None:
                return True
            return self._check_type(value, get_args(expected_type)[0])
        if origin is list:
            (item_type,) = get_args(expected_type)
            return isinstance(value, list) and all(isinstance(v, item_type) for v in value)
        if expected_type is bool:
            return isinstance(value, bool)
        return isinstance(value, expected_type)
