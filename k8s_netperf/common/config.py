"""Scenario file loading.

Two layouts are accepted. The flat layout maps scenario names to their
settings::

    TCPStream:
      profile: "TCP_STREAM"
      duration: 10
      samples: 3
      messagesize: 1024

The list layout wraps the same entries in a ``tests`` list so that scenario
order is explicit::

    tests:
      - TCPStream:
          profile: "TCP_STREAM"
          ...
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

import yaml
from pydantic import ValidationError

from k8s_netperf.common.errors import ConfigurationError
from k8s_netperf.common.models import ScenarioConfig

logger = logging.getLogger(__name__)

# File keys that differ from model field names
KEY_ALIASES = {
    "messagesize": "message_size",
    "message_size": "message_size",
}


def _normalize_keys(name: str, raw: Dict[str, Any]) -> Dict[str, Any]:
    data: Dict[str, Any] = {"name": name}
    for key, value in raw.items():
        data[KEY_ALIASES.get(key.lower(), key.lower())] = value
    return data


def _entries(document: Any) -> Iterable[Tuple[str, Any]]:
    if isinstance(document, dict) and isinstance(document.get("tests"), list):
        for item in document["tests"]:
            if not isinstance(item, dict):
                raise ConfigurationError(f"entries under 'tests' must be mappings, got {item!r}")
            yield from item.items()
    elif isinstance(document, dict):
        yield from document.items()
    else:
        raise ConfigurationError("scenario file must contain a mapping of scenarios")


def build_scenario(name: str, raw: Any) -> ScenarioConfig:
    """Validate one scenario entry.

    Args:
        name: Scenario name
        raw: Mapping read from the file

    Returns:
        The validated scenario

    Raises:
        ConfigurationError: If the entry violates a constraint
    """
    if not isinstance(raw, dict):
        raise ConfigurationError(f"scenario '{name}' must be a mapping")
    try:
        return ScenarioConfig(**_normalize_keys(name, raw))
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'scenario'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"invalid scenario '{name}': {problems}") from e


def parse_scenarios(text: str) -> List[ScenarioConfig]:
    """Parse scenario YAML text into validated scenarios, in file order."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"cannot parse scenario file: {e}") from e
    if not document:
        raise ConfigurationError("scenario file is empty")

    scenarios = [build_scenario(str(name), raw) for name, raw in _entries(document)]
    for scenario in scenarios:
        logger.debug(f"Loaded scenario {scenario.name}: {scenario.profile}")
    return scenarios


def load_scenarios(path: Path) -> List[ScenarioConfig]:
    """Read and validate a scenario file."""
    try:
        text = Path(path).read_text()
    except OSError as e:
        raise ConfigurationError(f"cannot read scenario file {path}: {e}") from e
    scenarios = parse_scenarios(text)
    logger.info(f"Loaded {len(scenarios)} scenarios from {path}")
    return scenarios
