"""Simple YAML configuration loader for FluentCoach."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    'provider': {
        'api_base': 'https://api.groq.com/openai/v1',
        'transcription_model': 'distil-whisper-large-v3-en',
        'analysis_model': 'llama-3.3-70b-versatile',
        'temperature': 0.3,
        'timeout_seconds': 30,
    },
    'credentials': {
        'key_prefix': 'gsk_',
        'env_var': 'GROQ_API_KEY',
    },
    'audio': {
        'sample_rate': 16000,
        'chunk_size': 1024,
        'channels': 1,
        'fft_size': 256,
        'refresh_hz': 30,
    },
    'storage': {
        'data_directory': 'data',
    },
    'history': {
        'capacity': 20,
        'persist_conversation': False,
    },
    'speech': {
        'enabled': True,
        'rate_factor': 0.95,
        'driver': None,
    },
    'pipeline': {
        'route': 'direct',
        'proxy_url': 'http://127.0.0.1:8080',
    },
    'server': {
        'host': '127.0.0.1',
        'port': 8080,
    },
    'logging': {
        'level': 'INFO',
        'file_path': 'data/logs/fluentcoach.log',
        'console_output': True,
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into ``base`` recursively, returning ``base``."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base



class FluentCoachConfig:
    """Settings for FluentCoach: built-in defaults overlaid with an optional YAML file."""

    # Settings holding filesystem paths; relative values are anchored to the config file
    PATH_KEYS = ('storage.data_directory', 'logging.file_path')

    def __init__(self, config_path: Optional[str] = None):
        """Build the settings tree.

        Args:
            config_path: YAML file to overlay on the defaults. Without one, relative
                        paths are anchored to the current working directory.

        Raises:
            FileNotFoundError: If ``config_path`` is given but does not exist
            ValueError: If the file is not a YAML mapping
        """
        self.config_file: Optional[Path] = Path(config_path) if config_path else None
        if self.config_file is not None and not self.config_file.is_file():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        self.config = copy.deepcopy(DEFAULT_CONFIG)
        if self.config_file is not None:
            _deep_merge(self.config, self._read_overrides(self.config_file))
            logger.info(f"Loaded configuration overrides from {self.config_file}")
        self._anchor_paths()

    @staticmethod
    def _read_overrides(path: Path) -> Dict[str, Any]:
        try:
            overrides = yaml.safe_load(path.read_text(encoding='utf-8'))
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}")
        except OSError as e:
            raise ValueError(f"Cannot read {path}: {e}")

        if overrides is None:
            return {}
        if not isinstance(overrides, dict):
            raise ValueError(f"{path} must contain a mapping at the top level")
        return overrides

    def _anchor_paths(self) -> None:
        base_dir = self.config_file.parent if self.config_file is not None else Path.cwd()
        for key_path in self.PATH_KEYS:
            value = self.get(key_path)
            if value and not os.path.isabs(value):
                self.set(key_path, str(base_dir / value))

    def get(self, key_path: str, default: Any = None) -> Any:
        """Look up a dotted setting such as ``'provider.api_base'``; ``default`` if any part is missing."""
        node: Any = self.config
        for part in key_path.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key_path: str, value: Any) -> None:
        """Override a dotted setting, creating intermediate sections as needed."""
        *parents, leaf = key_path.split('.')
        node = self.config
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value
        logger.debug(f"Setting '{key_path}' overridden")

    def get_data_directory(self) -> str:
        """Absolute directory holding preferences, history and logs."""
        return str(Path(self.get('storage.data_directory', 'data')).absolute())

    def get_timeout_seconds(self) -> float:
        """Get the bounded timeout applied to every provider call."""
        return float(self.get('provider.timeout_seconds', 30))

    def uses_proxy(self) -> bool:
        """Whether provider calls go through the local proxy instead of straight to the provider."""
        route = self.get('pipeline.route', 'direct')
        if route not in ('direct', 'proxy'):
            raise ValueError(f"pipeline.route must be 'direct' or 'proxy', not {route!r}")
        return route == 'proxy'
