"""Exception hierarchy for benchmark runs.

Fatal errors propagate to the CLI, which logs the cause and exits non-zero.
Recoverable conditions are handled close to where they occur and only logged.
"""


class NetperfError(Exception):
    """Base class for all k8s-netperf errors."""


class ConfigurationError(NetperfError):
    """Invalid scenario file, run settings or driver parameters."""


class UnsupportedTestError(ConfigurationError):
    """A driver was asked to run a profile it cannot execute."""


class TopologyError(NetperfError):
    """The system under test does not provide what a scenario requires."""


class AddressExtractionError(TopologyError):
    """A server address could not be read from pod network annotations."""


class ReadinessTimeoutError(TopologyError):
    """Pods did not become ready before the wait deadline or cancellation."""


class DriverError(NetperfError):
    """Base class for failures raised while driving a benchmark tool."""

    def __init__(self, driver: str, message: str):
        self.driver = driver
        super().__init__(f"{driver}: {message}")


class DriverExecutionError(DriverError):
    """Remote execution of a benchmark tool failed."""


class ParseError(DriverError):
    """Benchmark tool output could not be turned into a sample."""


class FatalRunError(NetperfError):
    """The run cannot continue and must be aborted."""


class RetryBudgetExhaustedError(FatalRunError):
    """A sample kept failing after every retry was spent."""

    def __init__(self, driver: str, scenario: str, attempts: int, last_error: Exception):
        self.driver = driver
        self.scenario = scenario
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{driver} failed {attempts} times for scenario '{scenario}': {last_error}"
        )


class RegressionComputationError(NetperfError):
    """The host-vs-pod throughput comparison could not be computed."""


class ArchiveError(NetperfError):
    """Results could not be written or indexed."""


class MetricsError(NetperfError):
    """The metrics backend could not be queried."""
