import configparser
import os
from typing import Dict, Any, Optional
import logging

import yaml

from ..errors import ConfigError
from ..importer import DEFAULT_PROGRESS_INTERVAL
from ..schemas.catalog import DEFAULT_TABLE

DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

JOURNAL_MODES = {'DELETE', 'TRUNCATE', 'PERSIST', 'MEMORY', 'WAL', 'OFF'}
SYNCHRONOUS_MODES = {'OFF', 'NORMAL', 'FULL', 'EXTRA'}

SAMPLE_CONFIG = """\
# AuditLiner configuration

[input]
# path = /var/log/hadoop/hdfs-audit.log
encoding = utf-8

[output.sqlite]
# database = audit.db
table = audit
timeout = 30
# journal_mode = WAL
# synchronous = OFF
# Commit every N records, 0 commits once at the end of the import
commit_interval = 0
progress_interval = 1000000

[logging]
level = INFO
format = %(asctime)s - %(name)s - %(levelname)s - %(message)s
# file = auditliner.log
"""


def load_config(path: str) -> Dict[str, Any]:
    """
    Load AuditLiner configuration from an INI or YAML file.

    Args:
        path: Path to configuration file, YAML when it ends in .yaml or .yml

    Returns:
        Configuration dictionary
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    if path.endswith(('.yaml', '.yml')):
        cfg_dict = _read_yaml(path)
    else:
        cfg_dict = _read_ini(path)

    # Process and validate configuration
    return _process_config(cfg_dict)


def default_config() -> Dict[str, Any]:
    """Get the processed configuration used when no file is given."""
    return _process_config({})


def _read_ini(path: str) -> Dict[str, Dict[str, str]]:
    config = configparser.ConfigParser(interpolation=None)
    try:
        config.read(path, encoding='utf-8')
    except configparser.Error as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e

    return {section: dict(config[section]) for section in config.sections()}


def _read_yaml(path: str) -> Dict[str, Dict[str, Any]]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
        raise ConfigError(f"Config file {path} must map section names to mappings")

    return data


def _get_str(section: Dict[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    value = section.get(key)
    if value is None or str(value).strip() == '':
        return default
    return str(value).strip()


def _get_int(section: Dict[str, Any], key: str, default: int) -> int:
    value = _get_str(section, key)
    if value is None:
        return default
    try:
        number = int(value)
    except ValueError:
        raise ConfigError(f"Invalid integer for {key}: {value}")
    if number < 0:
        raise ConfigError(f"{key} must not be negative: {number}")
    return number


def _get_float(section: Dict[str, Any], key: str, default: float) -> float:
    value = _get_str(section, key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"Invalid number for {key}: {value}")


def _get_choice(section: Dict[str, Any], key: str, choices) -> Optional[str]:
    value = _get_str(section, key)
    if value is None:
        return None
    value = value.upper()
    if value not in choices:
        raise ConfigError(f"Invalid {key}: {value} (expected one of {', '.join(sorted(choices))})")
    return value


def _process_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Process and validate configuration values.

    Args:
        config: Raw configuration dictionary

    Returns:
        Processed configuration
    """
    processed = {}

    input_section = config.get('input', {})
    processed['input'] = {
        'path': _get_str(input_section, 'path'),
        'encoding': _get_str(input_section, 'encoding', 'utf-8'),
    }

    sqlite_section = config.get('output.sqlite', {})
    processed['sqlite'] = {
        'database': _get_str(sqlite_section, 'database'),
        'table': _get_str(sqlite_section, 'table', DEFAULT_TABLE),
        'timeout': _get_float(sqlite_section, 'timeout', 30.0),
        'journal_mode': _get_choice(sqlite_section, 'journal_mode', JOURNAL_MODES),
        'synchronous': _get_choice(sqlite_section, 'synchronous', SYNCHRONOUS_MODES),
        'commit_interval': _get_int(sqlite_section, 'commit_interval', 0),
        'progress_interval': _get_int(sqlite_section, 'progress_interval', DEFAULT_PROGRESS_INTERVAL),
    }

    logging_section = config.get('logging', {})
    processed['logging'] = {
        'level': _get_str(logging_section, 'level', 'INFO').upper(),
        'format': _get_str(logging_section, 'format', DEFAULT_LOG_FORMAT),
        'file': _get_str(logging_section, 'file'),
    }
    if not isinstance(logging.getLevelName(processed['logging']['level']), int):
        raise ConfigError(f"Invalid logging level: {processed['logging']['level']}")

    return processed


def create_sample_config(output_path: str):
    """
    Create a sample INI configuration file.

    Args:
        output_path: Path to create sample file
    """
    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(SAMPLE_CONFIG)

    print(f"Sample configuration created at: {output_path}")


def setup_logging(config: Dict[str, Any]):
    """
    Setup logging based on configuration.

    Args:
        config: Configuration dictionary
    """
    logging_config = config.get('logging', {})

    level = getattr(logging, logging_config.get('level', 'INFO').upper())
    format_str = logging_config.get('format', DEFAULT_LOG_FORMAT)

    logging.basicConfig(
        level=level,
        format=format_str,
        filename=logging_config.get('file')
    )
