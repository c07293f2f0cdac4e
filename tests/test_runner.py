"""
Execution loop: sample collection, bounded retry and run ordering.
"""
import pytest

from k8s_netperf.common.errors import (
    ConfigurationError,
    DriverExecutionError,
    RetryBudgetExhaustedError,
)
from k8s_netperf.engine import runner
from k8s_netperf.engine.runner import MAX_RETRIES, run_all, run_scenario


@pytest.mark.engine
class TestRunScenario:
    """Single scenario execution"""

    def test_collects_every_sample(self, ctx, executor, tcp_stream, outputs):
        executor.default = outputs["netperf_stream"]
        result = run_scenario(ctx, tcp_stream, "netperf")

        assert len(result.throughput_summary) == tcp_stream.samples
        assert len(result.latency_summary) == tcp_stream.samples
        assert result.throughput_summary == [pytest.approx(9394.53)] * 3
        assert result.metric == "10^6bits/s"
        assert result.driver == "netperf"
        assert result.start_time is not None and result.end_time >= result.start_time
        assert not result.is_empty

    def test_records_topology_flags(self, ctx, executor, tcp_stream, outputs):
        executor.default = outputs["netperf_stream"]
        result = run_scenario(ctx, tcp_stream, "netperf")
        assert result.same_node is False
        assert result.host_network is False
        assert result.service is False
        assert result.client_node_info.node_name == "worker-1"

    def test_unsupported_profile_gives_empty_result(self, ctx, executor, scenario_factory):
        scenario = scenario_factory(profile="TCP_RR")
        result = run_scenario(ctx, scenario, "iperf3")
        assert result.is_empty
        assert result.start_time is None
        assert executor.calls == []

    def test_parse_failure_is_retried(self, ctx, executor, scenario_factory, outputs):
        scenario = scenario_factory(samples=1)
        executor.responses = ["garbage", outputs["netperf_stream"]]
        result = run_scenario(ctx, scenario, "netperf")
        assert len(executor.calls) == 2
        assert len(result.throughput_summary) == 1

    def test_execution_failure_is_retried(self, ctx, executor, scenario_factory, outputs):
        scenario = scenario_factory(samples=1)
        executor.responses = [DriverExecutionError("super-netperf", "exit 1"), outputs["netperf_stream"]]
        result = run_scenario(ctx, scenario, "netperf")
        assert result.throughput_summary == [pytest.approx(9394.53)]

    def test_run_and_parse_failures_share_budget(self, ctx, executor, scenario_factory):
        scenario = scenario_factory(samples=1)
        executor.responses = [
            DriverExecutionError("super-netperf", "exit 1"),
            "garbage",
            DriverExecutionError("super-netperf", "exit 1"),
            "garbage",
        ]
        with pytest.raises(RetryBudgetExhaustedError) as exc:
            run_scenario(ctx, scenario, "netperf")
        assert exc.value.attempts == MAX_RETRIES + 1
        assert len(executor.calls) == MAX_RETRIES + 1

    def test_retry_budget_is_per_sample(self, ctx, executor, scenario_factory, outputs):
        scenario = scenario_factory(samples=2)
        good = outputs["netperf_stream"]
        executor.responses = ["bad", "bad", "bad", good, "bad", "bad", "bad", good]
        result = run_scenario(ctx, scenario, "netperf")
        assert len(result.throughput_summary) == 2

    def test_driver_config_error_is_not_retried(self, ctx, executor, scenario_factory):
        with pytest.raises(ConfigurationError):
            run_scenario(ctx, scenario_factory(profile="UDP_STREAM"), "ib_write_bw")
        assert executor.calls == []

    def test_skipped_driver_records_empty_samples(self, ctx, executor, scenario_factory):
        ctx.settings.ib_device = "mlx5_0:3"
        ctx.topology.vm = True
        result = run_scenario(ctx, scenario_factory(profile="UDP_STREAM", samples=2), "ib_write_bw")
        assert result.throughput_summary == [0.0, 0.0]
        assert executor.calls == []


@pytest.mark.engine
class TestRunAll:
    """Whole run ordering"""

    def test_order_is_scenario_then_mode_then_driver(self, ctx, executor, scenario_factory, outputs):
        ctx.settings.hostnet = True
        executor.by_command = {"super-netperf": outputs["netperf_stream"], "cat": outputs["iperf_tcp"]}
        first = scenario_factory(name="first", samples=1)
        second = scenario_factory(name="second", samples=1, profile="TCP_RR")

        results = run_all(ctx, [first, second], drivers=["netperf", "iperf3"])

        observed = [(r.scenario.name, r.host_network, r.driver) for r in results.results]
        assert observed == [
            ("first", True, "netperf"),
            ("first", True, "iperf3"),
            ("first", False, "netperf"),
            ("first", False, "iperf3"),
            ("second", True, "netperf"),
            ("second", True, "iperf3"),
            ("second", False, "netperf"),
            ("second", False, "iperf3"),
        ]
        # iperf3 cannot run TCP_RR
        assert [r.is_empty for r in results.results[4:]] == [False, True, False, True]

    def test_host_network_skipped_for_services(self, ctx, executor, scenario_factory, outputs):
        ctx.settings.hostnet = True
        executor.default = outputs["netperf_stream"]
        results = run_all(ctx, [scenario_factory(service=True, samples=1)])
        assert [r.host_network for r in results.results] == [False]

    def test_host_network_skipped_when_node_local(self, ctx, executor, tcp_stream, outputs):
        ctx.settings.hostnet = True
        ctx.topology.node_local = True
        executor.default = outputs["netperf_stream"]
        results = run_all(ctx, [tcp_stream])
        assert [r.host_network for r in results.results] == [False]

    def test_uses_settings_drivers_by_default(self, ctx, executor, tcp_stream, outputs):
        ctx.settings.drivers = ["netperf"]
        executor.default = outputs["netperf_stream"]
        results = run_all(ctx, [tcp_stream])
        assert [r.driver for r in results.results] == ["netperf"]

    def test_one_exhausted_sample_stops_the_run(self, ctx, executor, scenario_factory, monkeypatch):
        calls = []
        original = runner.run_scenario

        def tracking(run_ctx, scenario, driver_name):
            calls.append(scenario.name)
            return original(run_ctx, scenario, driver_name)

        monkeypatch.setattr(runner, "run_scenario", tracking)
        executor.default = "garbage"
        scenarios = [scenario_factory(name="broken", samples=1), scenario_factory(name="never", samples=1)]

        with pytest.raises(RetryBudgetExhaustedError):
            run_all(ctx, scenarios)
        assert calls == ["broken"]

    def test_bad_driver_settings_fail_before_any_execution(self, ctx, executor, tcp_stream, outputs):
        executor.default = outputs["netperf_stream"]
        ctx.settings.ib_device = None
        with pytest.raises(ConfigurationError, match="ib_write_bw"):
            run_all(ctx, [tcp_stream], drivers=["netperf", "ib_write_bw"])
        assert executor.calls == []
