import copy
from typing import Any, Dict, Optional

import yaml
from loguru import logger

from genovo.modules.errors import ConfigError

DEFAULT_CONFIG: Dict[str, Any] = {
    'references': {
        'genome': None,
        'mutation_probabilities': None,
        'genomic_regions': None,
        'observed_mutations': None,
    },
    'model': {
        'splice_flank': 2,
        'codon_table': 1,
        'start_codons': ['ATG'],
        'probability_scaling': 1.0,
        'strand_symmetric': True,
    },
    'sampling': {
        'iterations': 1000,
        'seed': 0,
        'sample_unknown': True,
    },
    'workers': 1,
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    '''Load the run configuration.

    Values from the YAML file override the defaults; keys that are not in
    DEFAULT_CONFIG are rejected.

    Args:
        config_path (Optional[str]): YAML file, or None for the defaults

    Returns:
        Dict[str, Any]: Complete, validated configuration

    Raises:
        ConfigError: for unreadable files, unknown keys and invalid values
    '''
    config = copy.deepcopy(DEFAULT_CONFIG)
    if config_path is None:
        return config

    try:
        with open(config_path) as f:
            user_config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config file {config_path}: {e}") from e
    if not isinstance(user_config, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    _merge(config, user_config, '')
    validate_config(config)
    logger.debug(f"Loaded configuration from {config_path}")
    return config


def _merge(base: Dict[str, Any], override: Dict[str, Any], prefix: str) -> None:
    for key, value in override.items():
        name = f"{prefix}{key}"
        if key not in base:
            raise ConfigError(f"Unknown configuration key '{name}'")
        if isinstance(base[key], dict):
            if not isinstance(value, dict):
                raise ConfigError(f"Configuration section '{name}' must be a mapping")
            _merge(base[key], value, f"{name}.")
        else:
            base[key] = value


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> None:
    model = config['model']
    sampling = config['sampling']

    if not _is_int(model['splice_flank']) or model['splice_flank'] < 0:
        raise ConfigError("model.splice_flank must be a non-negative integer")
    if not (_is_int(model['codon_table']) or isinstance(model['codon_table'], str)):
        raise ConfigError("model.codon_table must be an NCBI table id or a path to a JSON codon table")
    starts = model['start_codons']
    if starts is not None and (
        not isinstance(starts, list)
        or any(not isinstance(c, str) or len(c) != 3 or set(c.upper()) - set('ACGT') for c in starts)
    ):
        raise ConfigError("model.start_codons must be a list of codons")
    scaling = model['probability_scaling']
    if isinstance(scaling, bool) or not isinstance(scaling, (int, float)) or scaling < 0:
        raise ConfigError("model.probability_scaling must be a non-negative number")
    if not isinstance(model['strand_symmetric'], bool):
        raise ConfigError("model.strand_symmetric must be true or false")

    if not _is_int(sampling['iterations']) or sampling['iterations'] < 0:
        raise ConfigError("sampling.iterations must be a non-negative integer")
    if not _is_int(sampling['seed']) or sampling['seed'] < 0:
        raise ConfigError("sampling.seed must be a non-negative integer")
    if not isinstance(sampling['sample_unknown'], bool):
        raise ConfigError("sampling.sample_unknown must be true or false")

    if not _is_int(config['workers']) or config['workers'] < 1:
        raise ConfigError("workers must be a positive integer")
