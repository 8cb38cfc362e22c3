"""
Configuration for the stepper.

Settings resolve environment variable → hard-coded default. Every setting the
application reads is listed in ``_KNOWN_SETTINGS`` together with its env-var
name, so the settings endpoint can report where each value came from.
"""

import os
from typing import Any, Dict

# Keys that can be configured, with their env-var name and hard-coded fallback.
_KNOWN_SETTINGS: Dict[str, Dict[str, Any]] = {
    'autoplay_interval_ms': {
        'env': 'ALGOSTEPPER_AUTOPLAY_INTERVAL_MS',
        'default': '800',
        'label': 'Default auto-play interval (ms)',
    },
    'autoplay_min_ms': {
        'env': 'ALGOSTEPPER_AUTOPLAY_MIN_MS',
        'default': '100',
        'label': 'Fastest allowed auto-play interval (ms)',
    },
    'autoplay_max_ms': {
        'env': 'ALGOSTEPPER_AUTOPLAY_MAX_MS',
        'default': '2000',
        'label': 'Slowest allowed auto-play interval (ms)',
    },
    'host': {
        'env': 'ALGOSTEPPER_HOST',
        'default': '0.0.0.0',
        'label': 'Web interface bind address',
    },
    'port': {
        'env': 'ALGOSTEPPER_PORT',
        'default': '5002',
        'label': 'Web interface port',
    },
    'log_level': {
        'env': 'ALGOSTEPPER_LOG_LEVEL',
        'default': 'INFO',
        'label': 'Logging level',
    },
    'request_timeout': {
        'env': 'ALGOSTEPPER_REQUEST_TIMEOUT',
        'default': '10',
        'label': 'Seconds a web request waits on the stepper loop',
    },
}


def resolve_setting(key: str) -> str:
    """Two-tier resolution: env → default.

    Raises:
        KeyError: if ``key`` is not a known setting.
    """
    meta = _KNOWN_SETTINGS[key]
    env_val = os.environ.get(meta['env'], '').strip()
    if env_val:
        return env_val
    return meta['default']


def resolve_int(key: str) -> int:
    """Resolve an integer setting, falling back to the default on a bad env value."""
    value = resolve_setting(key)
    try:
        return int(value)
    except ValueError:
        return int(_KNOWN_SETTINGS[key]['default'])


def resolve_float(key: str) -> float:
    value = resolve_setting(key)
    try:
        return float(value)
    except ValueError:
        return float(_KNOWN_SETTINGS[key]['default'])


def describe_settings() -> Dict[str, Dict[str, Any]]:
    """Return all known settings with their effective values and sources."""
    result = {}
    for key, meta in _KNOWN_SETTINGS.items():
        env_val = os.environ.get(meta['env'], '').strip() or None
        result[key] = {
            'value': env_val or meta['default'],
            'source': 'environment' if env_val else 'default',
            'env': meta['env'],
            'env_value': env_val,
            'default': meta['default'],
            'label': meta['label'],
        }
    return result
