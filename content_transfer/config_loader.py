"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict
from urllib.parse import urlparse

import yaml

from .exceptions import ConfigurationError

STORE_TYPES = ('memory', 'rest')
KNOWN_SECTIONS = ('source', 'destination', 'export', 'import', 'transforms', 'logging')


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Read a YAML configuration file and expand environment references.

        Args:
            config_path: Path of the YAML file

        Returns:
            Configuration dictionary, empty for an empty file

        Raises:
            ConfigurationError: If the file is missing, unreadable or not a mapping
        """
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                config_data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Failed to parse {config_path}: {e}") from e

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ConfigurationError("Configuration file must contain a dictionary")

        return cls._substitute_env_vars_recursive(config_data)

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Check store sections, export flags, import policies and the log level.

        Args:
            config: Merged configuration

        Raises:
            ConfigurationError: If validation fails
        """
        from .importers.decisions import parse_policies

        unknown = [section for section in config if section not in KNOWN_SECTIONS]
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration sections: {unknown}. Valid sections: {list(KNOWN_SECTIONS)}"
            )

        for section in ('source', 'destination'):
            store_config = config.get(section)
            if not store_config:
                continue
            store_type = store_config.get('type', 'memory')
            if store_type not in STORE_TYPES:
                raise ConfigurationError(f"{section}.type must be one of: {list(STORE_TYPES)}")
            if store_type == 'rest':
                cls._validate_store_credentials(config, section)

                timeout = get_nested(config, f'{section}.request_timeout', 30)
                if not isinstance(timeout, (int, float)) or timeout <= 0:
                    raise ConfigurationError(f"{section}.request_timeout must be a positive number")

                max_retries = get_nested(config, f'{section}.max_retries', 3)
                if not isinstance(max_retries, int) or max_retries < 0:
                    raise ConfigurationError(f"{section}.max_retries must be a non-negative integer")

        for key in ('include_owners', 'include_relations', 'include_embeds', 'include_parents', 'sparse'):
            value = get_nested(config, f'export.{key}', False)
            if not isinstance(value, bool):
                raise ConfigurationError(f"export.{key} must be a boolean")

        excluded = get_nested(config, 'export.excluded_nodes', [])
        if excluded is not None and not isinstance(excluded, list):
            raise ConfigurationError("export.excluded_nodes must be a list of node UUIDs")

        interactive = get_nested(config, 'import.interactive', False)
        if not isinstance(interactive, bool):
            raise ConfigurationError("import.interactive must be a boolean")

        policies = get_nested(config, 'import.policies', {})
        if policies is not None and not isinstance(policies, dict):
            raise ConfigurationError("import.policies must map decision points to decisions")
        parse_policies(policies)

        transforms = config.get('transforms')
        if transforms is not None and not isinstance(transforms, dict):
            raise ConfigurationError("transforms must map record categories to transform settings")

        level = get_nested(config, 'logging.level', 'WARNING')
        if str(level).upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ConfigurationError(f"logging.level '{level}' is not a valid log level")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Overlay command line options on the file configuration.

        Args:
            config: Configuration loaded from file
            args: Parsed arguments, missing attributes are ignored

        Returns:
            New configuration dictionary, the input is left unchanged
        """
        merged = copy.deepcopy(config)

        for section in ('export', 'import', 'logging'):
            if not isinstance(merged.get(section), dict):
                merged[section] = {}

        if getattr(args, 'interactive', None) is not None:
            merged['import']['interactive'] = args.interactive

        if getattr(args, 'start_node', None):
            merged['import']['start_node'] = args.start_node

        if getattr(args, 'file_storage', None):
            merged['import']['file_storage'] = args.file_storage
            merged['export']['file_storage'] = args.file_storage
            merged['export'].setdefault('embed_file_data', False)

        if getattr(args, 'embed_files', None) is not None:
            merged['export']['embed_file_data'] = args.embed_files

        if getattr(args, 'temp_directory', None):
            merged['import']['temp_directory'] = args.temp_directory

        if getattr(args, 'include_owners', False):
            merged['export']['include_owners'] = True
        if getattr(args, 'include_relations', False):
            merged['export']['include_relations'] = True
        if getattr(args, 'include_embeds', False):
            merged['export']['include_embeds'] = True
        if getattr(args, 'include_parents', False):
            merged['export']['include_parents'] = True

        verbose = getattr(args, 'verbose', 0) or 0
        if verbose >= 2:
            merged['logging']['level'] = 'DEBUG'
        elif verbose == 1:
            merged['logging']['level'] = 'INFO'

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        return merged

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Expand `${VAR}` and `${VAR:-fallback}` in every string of a loaded document."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        if isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        if isinstance(data, str):
            return cls.ENV_VAR_PATTERN.sub(cls._expand, data)
        return data

    @staticmethod
    def _expand(match: re.Match) -> str:
        name, fallback = match.group(1), match.group(2)
        if name in os.environ:
            return os.environ[name]
        # Unset without a fallback stays visible so validation can name it
        return fallback if fallback is not None else match.group(0)

    @classmethod
    def _validate_store_credentials(cls, config: Dict[str, Any], section: str) -> None:
        """A REST store needs an http(s) base URL and a token, both fully substituted."""
        for key in ('base_url', 'api_token'):
            value = get_nested(config, f'{section}.{key}')
            if value in (None, ''):
                raise ConfigurationError(f"Missing required configuration: {section}.{key}")
            unset = cls.ENV_VAR_PATTERN.search(value) if isinstance(value, str) else None
            if unset:
                raise ConfigurationError(
                    f"{section}.{key} refers to the unset environment variable {unset.group(1)}"
                )

        url = urlparse(get_nested(config, f'{section}.base_url'))
        if url.scheme not in ('http', 'https') or not url.netloc:
            raise ConfigurationError(f"{section}.base_url must be an http(s) URL with a host")


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Look up a dotted path such as `import.policies` in nested dictionaries."""
    value = config
    for key in path.split('.'):
        if not isinstance(value, dict) or key not in value:
            return default
        value = value[key]
    return value


__all__ = ['ConfigLoader', 'get_nested', 'STORE_TYPES']
