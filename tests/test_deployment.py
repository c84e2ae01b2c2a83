"""Tests for deployment files."""
import pytest

from dpchain.chain.engine import DeploymentSession
from dpchain.chain.errors import ConfigError
from dpchain.config.deployment import (
    OptionSpec,
    is_deployment_file,
    load_deployment,
    parse_deployment,
)

DEPLOYMENT_YAML = """\
hostName: dp-dev-01
domain: SANDBOX
rollbackOnError: true
operations:
  - name: set-file
    srcFile: build/transform.xsl
    destFile: local:///transform.xsl
  - name: do-import
    options:
      - name: input-file
        srcFile: build/export.zip
      - name: source-type
        value: ZIP
  - name: get-status
    class: ActiveUsers
    waitFor: admin
    waitTime: 10
  - SaveConfig
"""


@pytest.fixture
def deployment_file(tmp_path):
    path = tmp_path / "deploy.yaml"
    path.write_text(DEPLOYMENT_YAML)
    return path


class TestParseDeployment:
    """Tests for parse_deployment."""

    def test_globals_and_operations(self, deployment_file):
        deployment = load_deployment(deployment_file)
        assert deployment.global_options == {
            "hostName": "dp-dev-01",
            "domain": "SANDBOX",
            "rollbackOnError": True,
        }
        assert [op.name for op in deployment.operations] == [
            "set-file", "do-import", "get-status", "SaveConfig",
        ]

    def test_inline_options(self, deployment_file):
        set_file = load_deployment(deployment_file).operations[0]
        assert set_file.options == [
            OptionSpec("srcFile", "build/transform.xsl"),
            OptionSpec("destFile", "local:///transform.xsl"),
        ]

    def test_option_list_with_source_file(self, deployment_file):
        do_import = load_deployment(deployment_file).operations[1]
        assert do_import.options == [
            OptionSpec("input-file", None, "build/export.zip"),
            OptionSpec("source-type", "ZIP"),
        ]

    def test_option_mapping_values(self):
        deployment = parse_deployment({
            "operations": [{"name": "do-export", "options": {"all-files": True, "object@class": ["A", "B"]}}]
        })
        assert deployment.operations[0].options == [
            OptionSpec("all-files", "true"),
            OptionSpec("object@class", "A"),
            OptionSpec("object@class", "B"),
        ]

    def test_scalars_stringified(self, deployment_file):
        get_status = load_deployment(deployment_file).operations[2]
        assert OptionSpec("waitTime", "10") in get_status.options

    def test_operation_without_name(self):
        with pytest.raises(ConfigError):
            parse_deployment({"operations": [{"class": "x"}]})

    def test_top_level_not_mapping(self):
        with pytest.raises(ConfigError):
            parse_deployment(["SaveConfig"])

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("operations: [unclosed\n")
        with pytest.raises(ConfigError):
            load_deployment(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_deployment(tmp_path / "missing.yaml")

    def test_is_deployment_file(self, deployment_file, tmp_path):
        assert is_deployment_file(str(deployment_file))
        assert not is_deployment_file(str(tmp_path / "missing.yaml"))
        assert not is_deployment_file("hostName=dp1")


class TestApplyDeployment:
    """Tests for DeploymentSession.apply_deployment."""

    def test_apply(self, deployment_file):
        session = DeploymentSession()
        session.apply_deployment(load_deployment(deployment_file))

        assert session.config.host == "dp-dev-01"
        assert session.config.domain == "SANDBOX"
        assert session.chain.names == [
            "SaveCheckpoint", "set-file", "do-import", "get-status", "SaveConfig",
        ]
        set_file, do_import, get_status = session.chain[1], session.chain[2], session.chain[3]
        assert set_file.src_file == "build/transform.xsl"
        assert do_import.get_option("input-file").source_file == "build/export.zip"
        assert get_status.wait_for == "admin"
        assert get_status.wait_time_seconds == 10

    def test_operation_domain(self):
        session = DeploymentSession()
        session.apply_deployment(parse_deployment({
            "operations": [{"name": "SaveConfig", "domain": "OTHER"}]
        }))
        assert session.chain[0].domain == "OTHER"

    def test_bad_operation_option(self):
        session = DeploymentSession()
        with pytest.raises(ConfigError):
            session.apply_deployment(parse_deployment({
                "operations": [{"name": "get-status", "waitFor": "up", "waitTime": "soon"}]
            }))
