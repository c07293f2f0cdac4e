"""Execution loop: run drivers, retry failed samples, fold samples into results."""

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from k8s_netperf.common.errors import DriverExecutionError, ParseError, RetryBudgetExhaustedError
from k8s_netperf.common.models import Result, Sample, ScenarioConfig, ScenarioResults
from k8s_netperf.drivers import Driver, new_driver
from k8s_netperf.engine.context import ExecutionContext
from k8s_netperf.engine.resolver import ResolvedEndpoint, resolve
from k8s_netperf.engine.topology import TopologyState

# Retries per sample after the first attempt; run and parse failures share it
MAX_RETRIES = 3


def run_sample(
    ctx: ExecutionContext,
    driver: Driver,
    scenario: ScenarioConfig,
    endpoint: ResolvedEndpoint,
) -> Sample:
    """Collect one sample, retrying run or parse failures.

    Raises:
        RetryBudgetExhaustedError: If every attempt failed
    """
    attempts = MAX_RETRIES + 1
    last_error: Optional[Exception] = None
    for attempt in range(attempts):
        if last_error is not None:
            ctx.logger.warning(
                f"Retrying {driver.name} for {scenario.name} ({attempt}/{MAX_RETRIES}): {last_error}"
            )
        try:
            raw = driver.run(ctx, scenario, endpoint.client_pods, endpoint.server_address)
            if raw is None:
                return Sample(driver=driver.name)
            return driver.parse_results(raw, scenario)
        except (DriverExecutionError, ParseError) as e:
            last_error = e

    ctx.logger.error(f"{driver.name} failed {attempts} times for {scenario.name}, aborting run")
    raise RetryBudgetExhaustedError(driver.name, scenario.name, attempts, last_error)


def new_result(ctx: ExecutionContext, scenario: ScenarioConfig, driver: Driver) -> Result:
    topology = ctx.topology
    return Result(
        scenario=scenario,
        driver=driver.name,
        metric=scenario.metric,
        host_network=topology.host_network,
        same_node=topology.node_local,
        service=scenario.service,
        across_az=topology.across_az,
        bridge=bool(topology.bridge_network),
        vm=topology.vm,
        external_server=bool(topology.external_server),
        client_node_info=topology.client_node_info,
        server_node_info=topology.server_node_info,
    )


def run_scenario(ctx: ExecutionContext, scenario: ScenarioConfig, driver_name: str) -> Result:
    """Run every sample of a scenario with one driver in the context's network mode.

    Returns:
        The populated result, or an empty one when the driver does not
        support the scenario's profile

    Raises:
        ConfigurationError: If the driver cannot be built
        TopologyError: If no endpoint can be resolved
        RetryBudgetExhaustedError: If a sample keeps failing
    """
    driver = new_driver(driver_name, scenario, ctx.settings)
    result = new_result(ctx, scenario, driver)
    if not driver.is_test_supported():
        ctx.logger.warning(f"{driver.name} does not support {scenario.profile}, skipping {scenario.name}")
        return result

    endpoint = resolve(ctx.topology, scenario, driver.name)
    if ctx.topology.udn or ctx.topology.cudn:
        result.udn_info = endpoint.annotation

    mode = "host network" if ctx.topology.host_network else "pod network"
    ctx.logger.info(
        f"Running {scenario.name} ({scenario.profile}, {scenario.message_size}B, "
        f"{scenario.samples} samples) with {driver.name} over {mode} to {endpoint.server_address}"
    )
    result.start_time = datetime.now(timezone.utc)
    for i in range(scenario.samples):
        sample = run_sample(ctx, driver, scenario, endpoint)
        ctx.logger.debug(f"{scenario.name} sample {i + 1}/{scenario.samples}: {sample.throughput} {sample.metric}")
        result.add_sample(sample)
    result.end_time = datetime.now(timezone.utc)
    return result


def host_network_applicable(ctx: ExecutionContext, scenario: ScenarioConfig) -> bool:
    """Host-network runs need a second node and direct pod addressing."""
    topology = ctx.topology
    return (
        ctx.settings.hostnet
        and not topology.node_local
        and not scenario.service
        and not topology.external_server
    )


def network_modes(ctx: ExecutionContext, scenario: ScenarioConfig) -> List[TopologyState]:
    """Topology snapshots to run a scenario in, host network first."""
    modes = []
    if host_network_applicable(ctx, scenario):
        modes.append(ctx.topology.with_host_network(True))
    modes.append(ctx.topology.with_host_network(False))
    return modes


def validate_drivers(
    ctx: ExecutionContext,
    scenarios: Sequence[ScenarioConfig],
    drivers: Sequence[str],
) -> None:
    """Build each driver once so bad driver settings fail before any remote execution.

    Raises:
        ConfigurationError: If a driver's own parameters are invalid
    """
    for scenario in scenarios[:1]:
        for driver_name in drivers:
            new_driver(driver_name, scenario, ctx.settings)


def run_all(
    ctx: ExecutionContext,
    scenarios: Sequence[ScenarioConfig],
    drivers: Optional[Sequence[str]] = None,
) -> ScenarioResults:
    """Run scenarios in order: per driver, within network mode, within scenario.

    A fatal error in any sample aborts the whole run.
    """
    drivers = list(drivers or ctx.settings.drivers)
    validate_drivers(ctx, scenarios, drivers)
    results = ScenarioResults()
    for scenario in scenarios:
        for topology in network_modes(ctx, scenario):
            mode_ctx = ctx.for_topology(topology)
            for driver_name in drivers:
                results.results.append(run_scenario(mode_ctx, scenario, driver_name))
    populated = len(results.populated())
    ctx.logger.info(f"Collected {populated} results ({len(results.results) - populated} skipped)")
    return results
