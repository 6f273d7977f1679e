"""
Configuration file support for the countnorm CLI.

Supports YAML and JSON config files with CLI argument override.

Example pipeline.yaml:

    input: data/counts.txt
    output: results/run1
    format: featurecounts
    metadata: data/samples.csv
    stabilization:
      method: rlog
      blind: false
      fit_type: parametric
    clustering:
      linkage: complete
"""

import json
from argparse import Namespace
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

VALID_STABILIZERS = ['vst', 'rlog']
VALID_FIT_TYPES = ['parametric', 'local', 'mean']
VALID_LINKAGES = ['average', 'complete']
VALID_FORMATS = ['featurecounts', 'htseq', 'generic']


@dataclass
class StabilizationConfig:
    """Variance stabilization configuration."""
    method: str = "vst"
    blind: bool = True
    fit_type: str = "parametric"


@dataclass
class ClusteringConfig:
    """Sample clustering configuration."""
    linkage: str = "average"


@dataclass
class ConfigSchema:
    """
    Complete configuration schema for ``countnorm run``.

    Mirrors the CLI argument structure for consistency.
    """
    input: Optional[Path] = None
    output: Optional[Path] = None
    metadata: Optional[Path] = None
    format: str = "featurecounts"
    pseudocount: float = 1.0
    min_total: int = 1
    stabilization: StabilizationConfig = field(default_factory=StabilizationConfig)
    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    try:
        with open(config_path, 'r') as f:
            if suffix in ('.yaml', '.yml'):
                config = yaml.safe_load(f)
            elif suffix == '.json':
                config = json.load(f)
            else:
                raise ValueError(
                    f"Unsupported config format: {suffix}. "
                    f"Use .yaml, .yml, or .json"
                )
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}")

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    return config


def _explicit_args(cli_args: Optional[List[str]]) -> set:
    """Destination names of options given on the command line."""
    short_to_long = {
        'i': 'input',
        'o': 'output',
        'm': 'metadata',
        'c': 'config',
    }
    explicit = set()
    for arg in cli_args or []:
        if arg.startswith('--'):
            name = arg[2:].split('=', 1)[0].replace('-', '_')
            # --no-blind / --blind both set 'blind'
            if name.startswith('no_'):
                name = name[3:]
            explicit.add(name)
        elif arg.startswith('-') and len(arg) == 2 and arg[1] in short_to_long:
            explicit.add(short_to_long[arg[1]])
    return explicit


def merge_config_with_args(config: Dict[str, Any], args: Namespace, cli_args: Optional[List[str]] = None) -> Namespace:
    """
    Merge config file values with CLI arguments.

    Priority (highest to lowest):
    1. Explicitly provided CLI arguments
    2. Config file values
    3. CLI argument defaults

    Parameters:
        config: Configuration dictionary from load_config()
        args: Parsed CLI arguments (argparse.Namespace)
        cli_args: Raw CLI arguments list (for detecting explicit values)
                  If None, assumes all args are defaults

    Returns:
        Updated Namespace with merged values
    """
    explicit = _explicit_args(cli_args)
    merged = Namespace(**vars(args))

    def merge(arg_name: str, config_value: Any) -> None:
        if arg_name in explicit or config_value is None:
            return
        setattr(merged, arg_name, config_value)

    for key in ('input', 'output', 'metadata'):
        if key in config and config[key] is not None:
            merge(key, Path(config[key]))

    for key in ('format', 'pseudocount', 'min_total'):
        if key in config:
            merge(key, config[key])

    stabilization = config.get('stabilization') or {}
    if 'method' in stabilization:
        merge('stabilizer', stabilization['method'])
    if 'blind' in stabilization:
        merge('blind', bool(stabilization['blind']))
    if 'fit_type' in stabilization:
        merge('fit_type', stabilization['fit_type'])

    clustering = config.get('clustering') or {}
    if 'linkage' in clustering:
        merge('linkage', clustering['linkage'])

    return merged


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration structure and values.

    Raises:
        ValueError: If configuration is invalid
    """
    def check_choice(value: Any, valid: List[str], what: str) -> None:
        if value not in valid:
            raise ValueError(
                f"Invalid {what} '{value}'. "
                f"Choose from: {', '.join(valid)}"
            )

    if 'format' in config:
        check_choice(config['format'], VALID_FORMATS, 'count table format')

    stabilization = config.get('stabilization') or {}
    if not isinstance(stabilization, dict):
        raise ValueError("'stabilization' must be a mapping")
    if 'method' in stabilization:
        check_choice(stabilization['method'], VALID_STABILIZERS, 'stabilization method')
    if 'fit_type' in stabilization:
        check_choice(stabilization['fit_type'], VALID_FIT_TYPES, 'dispersion fit type')
    if 'blind' in stabilization and not isinstance(stabilization['blind'], bool):
        raise ValueError(f"'blind' must be true or false, got: {stabilization['blind']}")

    clustering = config.get('clustering') or {}
    if not isinstance(clustering, dict):
        raise ValueError("'clustering' must be a mapping")
    if 'linkage' in clustering:
        check_choice(clustering['linkage'], VALID_LINKAGES, 'linkage method')

    if 'pseudocount' in config:
        pseudocount = config['pseudocount']
        if not isinstance(pseudocount, (int, float)) or pseudocount <= 0:
            raise ValueError(f"pseudocount must be positive number, got: {pseudocount}")

    if 'min_total' in config:
        min_total = config['min_total']
        if not isinstance(min_total, int) or min_total < 1:
            raise ValueError(f"min_total must be a positive integer, got: {min_total}")
