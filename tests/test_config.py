"""
Scenario file and run settings validation.
"""
import pytest
from pydantic import ValidationError

from k8s_netperf.common.config import load_scenarios, parse_scenarios
from k8s_netperf.common.errors import ConfigurationError
from k8s_netperf.common.models import ScenarioConfig
from k8s_netperf.common.settings import RunSettings

FLAT_CONFIG = """
TCPStream:
  parallelism: 1
  profile: "TCP_STREAM"
  duration: 10
  samples: 3
  messagesize: 1024
UDPRR:
  profile: "udp_rr"
  duration: 5
  samples: 1
  messagesize: 64
TCPRRBurst:
  profile: "TCP_RR"
  duration: 5
  samples: 1
  messagesize: 64
  burst: 4
  service: true
"""

LIST_CONFIG = """
tests:
  - TCPStream:
      profile: "TCP_STREAM"
      duration: 10
      samples: 1
      messagesize: 8192
  - TCPCRR:
      profile: "TCP_CRR"
      duration: 10
      samples: 1
      messagesize: 1024
"""


@pytest.mark.config
class TestScenarioConfig:
    """Scenario model invariants"""

    def test_profile_is_normalized(self):
        scenario = ScenarioConfig(name="x", profile="tcp_stream", duration=1, samples=1, message_size=1)
        assert scenario.profile == "TCP_STREAM"
        assert scenario.is_stream
        assert scenario.protocol == "tcp"
        assert scenario.metric == "Mb/s"

    def test_rr_profile_properties(self, scenario_factory):
        scenario = scenario_factory(profile="SCTP_RR")
        assert not scenario.is_stream
        assert scenario.is_request_response
        assert scenario.protocol == "sctp"
        assert scenario.metric == "OP/s"

    def test_defaults(self, tcp_stream):
        assert tcp_stream.parallelism == 1
        assert tcp_stream.burst == 0
        assert tcp_stream.service is False

    @pytest.mark.parametrize("field", ["duration", "samples", "message_size", "parallelism"])
    def test_rejects_non_positive(self, scenario_factory, field):
        with pytest.raises(ValidationError):
            scenario_factory(**{field: 0})

    def test_rejects_unknown_profile(self, scenario_factory):
        with pytest.raises(ValidationError):
            scenario_factory(profile="HTTP_STREAM")

    def test_service_requires_single_stream(self, scenario_factory):
        with pytest.raises(ValidationError, match="parallelism must be 1"):
            scenario_factory(service=True, parallelism=2)

    def test_is_immutable(self, tcp_stream):
        with pytest.raises(ValidationError):
            tcp_stream.duration = 20


@pytest.mark.config
class TestScenarioFile:
    """Scenario file parsing"""

    def test_flat_layout(self):
        scenarios = parse_scenarios(FLAT_CONFIG)
        assert [s.name for s in scenarios] == ["TCPStream", "UDPRR", "TCPRRBurst"]
        assert scenarios[0].message_size == 1024
        assert scenarios[1].profile == "UDP_RR"
        assert scenarios[2].burst == 4
        assert scenarios[2].service is True

    def test_list_layout(self):
        scenarios = parse_scenarios(LIST_CONFIG)
        assert [s.profile for s in scenarios] == ["TCP_STREAM", "TCP_CRR"]
        assert scenarios[0].message_size == 8192

    def test_invalid_entry_names_constraint(self):
        text = "Bad:\n  profile: TCP_STREAM\n  duration: 0\n  samples: 1\n  messagesize: 1\n"
        with pytest.raises(ConfigurationError, match="Bad.*duration"):
            parse_scenarios(text)

    def test_service_with_parallelism_is_rejected(self):
        text = (
            "Svc:\n  profile: TCP_STREAM\n  duration: 1\n  samples: 1\n"
            "  messagesize: 1\n  parallelism: 4\n  service: true\n"
        )
        with pytest.raises(ConfigurationError, match="parallelism must be 1"):
            parse_scenarios(text)

    def test_empty_file(self):
        with pytest.raises(ConfigurationError, match="empty"):
            parse_scenarios("")

    def test_malformed_yaml(self):
        with pytest.raises(ConfigurationError):
            parse_scenarios("TCPStream: [unclosed")

    def test_load_from_disk(self, tmp_path):
        path = tmp_path / "netperf.yml"
        path.write_text(FLAT_CONFIG)
        assert len(load_scenarios(path)) == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="cannot read"):
            load_scenarios(tmp_path / "missing.yml")


@pytest.mark.config
class TestRunSettings:
    """Environment and flag settings"""

    def test_defaults(self, settings):
        assert settings.namespace == "netperf"
        assert settings.drivers == ["netperf"]
        assert settings.tcp_tolerance == 10.0

    def test_drivers_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("K8S_NETPERF_DRIVERS", '["netperf", "uperf"]')
        assert RunSettings().drivers == ["netperf", "uperf"]

    def test_network_options_are_exclusive(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ValidationError, match="mutually exclusive"):
            RunSettings(udn="layer2", bridge="br-ex")

    def test_udn_layer_is_checked(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ValidationError):
            RunSettings(udn="layer4")
