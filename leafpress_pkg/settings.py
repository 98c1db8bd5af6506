#!/usr/bin/env python3
"""
Settings loader for Leafpress static site builder.
Supports configuration from config.yml, config.yaml, or config.json files.
"""

import copy
import os
import json
import yaml
from typing import Dict, Any, Optional


URL_OVERRIDE_ENV = 'LEAFPRESS_URL_OVERRIDE'


class Settings:
    """Load and manage Leafpress configuration settings."""

    # Default configuration
    DEFAULT_SETTINGS = {
        'url': '',
        'theme': None,
        'fallback_theme': 'default',
        'pipeline': {
            'steps': None,
            'exec_language': 'ruby',
            'formatter': {
                'language': 'ruby',
                'command': None,
            },
        },
        'content': 'content',
        'output': 'public',
        'themes': 'themes',
        'data': 'data',
        'layouts': 'layouts',
        'includes': 'includes',
        'assets': 'assets',
        'helpers': 'helpers',
        'normalize_quotes': True,
        'minify': False,
        'collection_indexes': True,
        'log_dir': None,
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['config.yml', 'config.yaml', 'config.json']

    # Settings holding directories, resolved against the project directory
    PATH_SETTINGS = ['content', 'output', 'themes', 'data', 'layouts', 'includes', 'assets', 'helpers', 'log_dir']

    def __init__(self, config_dir: str = None):
        """
        Initialize settings loader.

        Args:
            config_dir: Directory to look for config files. Defaults to current directory.
        """
        self.config_dir = config_dir or os.getcwd()
        self.settings = copy.deepcopy(self.DEFAULT_SETTINGS)
        self.config_file_path = None

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from configuration file if it exists.

        Returns:
            Dictionary of configuration settings
        """
        config_file = self._find_config_file()

        if config_file:
            self.config_file_path = config_file
            loaded_settings = self._load_config_file(config_file)
            if loaded_settings:
                if not isinstance(loaded_settings, dict):
                    raise ValueError(f"Configuration file {config_file} must contain a mapping")
                self.settings = self._merge(self.settings, loaded_settings)

        override = os.environ.get(URL_OVERRIDE_ENV, '').strip()
        if override:
            self.settings['url'] = override

        return copy.deepcopy(self.settings)

    def _find_config_file(self) -> Optional[str]:
        """
        Find the first available configuration file.

        Returns:
            Path to config file or None if not found
        """
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary of configuration settings
        """
        try:
            file_ext = os.path.splitext(config_path)[1].lower()

            with open(config_path, 'r', encoding='utf-8') as f:
                if file_ext in ['.yml', '.yaml']:
                    return yaml.safe_load(f) or {}
                elif file_ext == '.json':
                    return json.load(f) or {}
                else:
                    raise ValueError(f"Unsupported config file format: {file_ext}")
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        except PermissionError:
            raise PermissionError(f"Permission denied reading configuration file: {config_path}")
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file {config_path}: {e}")

    @staticmethod
    def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``overrides`` into ``base``; nested mappings merge key by key."""
        merged = copy.deepcopy(base)
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = Settings._merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge configuration settings with keyword/command-line arguments.
        Arguments take precedence over config file settings.

        Args:
            args_dict: Dictionary of arguments

        Returns:
            Merged configuration dictionary
        """
        overrides = {key: value for key, value in args_dict.items() if value is not None}
        self.settings = self._merge(self.settings, overrides)
        return copy.deepcopy(self.settings)

    def resolve_paths(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Make directory settings absolute, relative to the config directory."""
        resolved = dict(settings)
        for key in self.PATH_SETTINGS:
            value = resolved.get(key)
            if value and not os.path.isabs(value):
                resolved[key] = os.path.join(self.config_dir, value)
        return resolved
