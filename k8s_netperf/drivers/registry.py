"""Driver lookup by name."""

import logging
from typing import Optional

from k8s_netperf.common.models import ScenarioConfig
from k8s_netperf.common.settings import RunSettings
from k8s_netperf.drivers.base import Driver
from k8s_netperf.drivers.ibwritebw import IbWriteBwDriver
from k8s_netperf.drivers.iperf import IperfDriver
from k8s_netperf.drivers.netperf import NetperfDriver
from k8s_netperf.drivers.uperf import UperfDriver

logger = logging.getLogger(__name__)

DRIVERS = {
    "netperf": NetperfDriver,
    "iperf3": IperfDriver,
    "uperf": UperfDriver,
    "ib_write_bw": IbWriteBwDriver,
}


def new_driver(name: str, scenario: ScenarioConfig, settings: Optional[RunSettings] = None) -> Driver:
    """Build the driver registered under ``name``.

    Unknown names fall back to netperf.

    Raises:
        ConfigurationError: If the driver's own parameters are invalid
    """
    driver_cls = DRIVERS.get(name)
    if driver_cls is None:
        logger.warning(f"Unknown driver '{name}', using netperf")
        driver_cls = NetperfDriver
    return driver_cls(scenario, settings)
