"""
Pipeline configuration.

Every tunable of the processing core lives in one explicit value that is
handed to the pipeline at construction: missing-value tokens, the
normalization method, EM settings of the two-component fitter, and the
reproducibility filter's alpha and limits-of-agreement multiplier.

Supports YAML and JSON config files:

    id_column: id
    normalization:
      method: 2-component
    mixture:
      mode: unimodal
      max_iter: 1000
    reproducibility:
      alpha: 0.05
      z_multiplier: 3.290527
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List

import yaml

from proteorepro.core.errors import ConfigurationError
from proteorepro.core.matrix import MISSING_VALUE_TOKENS
from proteorepro.quality.agreement import BLAND_ALTMAN_Z

__all__ = [
    'NormalizationConfig',
    'MixtureConfig',
    'ReproducibilityConfig',
    'PipelineConfig',
    'load_config',
]


_CONVERTERS = {'int': int, 'float': float, 'str': str}


def _coerce(key: str, type_name: str, value: Any) -> Any:
    """Convert a raw config value to the field's declared type."""
    if type_name == 'bool':
        if not isinstance(value, bool):
            raise ConfigurationError(
                f"Configuration value '{key}' must be true or false, got {value!r}"
            )
        return value
    message = f"Configuration value '{key}' must be {type_name}, got {value!r}"
    if isinstance(value, bool) or value is None:
        raise ConfigurationError(message)
    try:
        return _CONVERTERS[type_name](value)
    except (TypeError, ValueError):
        raise ConfigurationError(message)


@dataclass
class NormalizationConfig:
    """Normalization configuration."""
    method: str = "Median"


@dataclass
class MixtureConfig:
    """Two-component EM configuration."""
    mode: str = "unimodal"
    max_iter: int = 1000
    tol: float = 1e-8
    min_observations: int = 10
    min_component_size: float = 2.0
    grid_size: int = 512


@dataclass
class ReproducibilityConfig:
    """Reproducibility filter configuration."""
    enabled: bool = True
    alpha: float = 0.05
    z_multiplier: float = BLAND_ALTMAN_Z
    min_observations: int = 2


@dataclass
class PipelineConfig:
    """
    Complete configuration for one normalization + filtering run.

    Mirrors the CLI argument structure for consistency.
    """
    id_column: str = "id"
    na_values: List[str] = field(default_factory=lambda: list(MISSING_VALUE_TOKENS))
    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)
    mixture: MixtureConfig = field(default_factory=MixtureConfig)
    reproducibility: ReproducibilityConfig = field(default_factory=ReproducibilityConfig)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> PipelineConfig:
        """
        Build a configuration from a plain mapping (e.g. a parsed YAML file).

        Raises:
            ConfigurationError: Unknown section or key, unknown normalization
                method or mixture mode, alpha outside (0, 1)
        """
        sections = {
            'normalization': NormalizationConfig,
            'mixture': MixtureConfig,
            'reproducibility': ReproducibilityConfig,
        }
        top_level = {'id_column', 'na_values', *sections}

        unknown = set(config) - top_level
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {}
        if 'id_column' in config:
            kwargs['id_column'] = str(config['id_column'])
        if 'na_values' in config:
            if not isinstance(config['na_values'], (list, tuple)):
                raise ConfigurationError("Configuration value 'na_values' must be a list")
            kwargs['na_values'] = [str(v) for v in config['na_values']]

        for name, section_cls in sections.items():
            values = config.get(name) or {}
            if not isinstance(values, dict):
                raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
            allowed = {f.name for f in fields(section_cls)}
            bad = set(values) - allowed
            if bad:
                raise ConfigurationError(
                    f"Unknown keys in configuration section '{name}': {sorted(bad)}"
                )
            types = {f.name: f.type for f in fields(section_cls)}
            kwargs[name] = section_cls(**{
                key: _coerce(f"{name}.{key}", types[key], value) for key, value in values.items()
            })

        result = cls(**kwargs)
        result.validate()
        return result

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If any value is out of range
        """
        from proteorepro.stats.mixture import MixtureMode
        from proteorepro.stats.normalization import NormalizationMethod

        try:
            NormalizationMethod(self.normalization.method)
        except ValueError:
            valid = [m.value for m in NormalizationMethod]
            raise ConfigurationError(
                f"Unknown normalization method '{self.normalization.method}'. Valid: {valid}"
            )
        MixtureMode.resolve(self.mixture.mode)

        if not 0.0 < self.reproducibility.alpha < 1.0:
            raise ConfigurationError(
                f"alpha must be in (0, 1), got {self.reproducibility.alpha}"
            )
        if self.reproducibility.z_multiplier <= 0:
            raise ConfigurationError(
                f"z_multiplier must be positive, got {self.reproducibility.z_multiplier}"
            )
        if self.mixture.max_iter < 1:
            raise ConfigurationError(f"max_iter must be >= 1, got {self.mixture.max_iter}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigurationError: If file format is unsupported or invalid

    Examples:
        >>> config = PipelineConfig.from_dict(load_config(Path("run.yaml")))
        >>> config.normalization.method
        'Median'
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
                raise ConfigurationError(
                    f"Unsupported config format: {suffix}. "
                    f"Use .yaml, .yml, or .json"
                )
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file: {e}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in config file: {e}")

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ConfigurationError("Config file must contain a dictionary/mapping at top level")

    return config
