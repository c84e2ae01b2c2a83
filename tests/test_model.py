"""Tests for the operation and chain model."""
import base64

import pytest

from dpchain.binding.dialects import AMP_MGMT_30_URL, SOMA_MGMT_CURRENT_URL, Dialect
from dpchain.chain.errors import ConfigError, GenerationError
from dpchain.chain.model import (
    Classification,
    ExecuteResult,
    Operation,
    OperationChain,
    Option,
    Severity,
    parse_bool,
)


class TestSeverity:
    """Tests for Severity ordering and parsing."""

    def test_ordering(self):
        """Severities are ordered INFO < WARN < ERROR < FATAL."""
        assert Severity.INFO < Severity.WARN < Severity.ERROR < Severity.FATAL

    def test_parse_accepts_warning(self):
        """WARNING is accepted as WARN, case-insensitively."""
        assert Severity.parse("warning") is Severity.WARN
        assert Severity.parse("Fatal") is Severity.FATAL

    def test_parse_invalid(self):
        """Unknown names raise ValueError."""
        with pytest.raises(ValueError):
            Severity.parse("LOUD")


class TestParseBool:
    """Tests for option boolean parsing."""

    def test_values(self):
        assert parse_bool("true") is True
        assert parse_bool("TRUE") is True
        assert parse_bool("false") is False
        assert parse_bool("yes") is False
        assert parse_bool(True) is True

    def test_default_for_none(self):
        assert parse_bool(None, default=True) is True


class TestFunctionalOptions:
    """Functional options configure the operation, not the document."""

    def test_wait_options(self):
        """waitFor/waitTime/pollIntMillis are consumed."""
        op = Operation("get-status")
        assert op.add_option("waitFor", "up") is None
        op.add_option("waitTime", "5")
        op.add_option("pollIntMillis", "500")
        assert op.wait_for == "up"
        assert op.wait_time_seconds == 5
        assert op.poll_interval_millis == 500
        assert op.is_polling
        assert op.options == []

    @pytest.mark.parametrize("name", ["waitTime", "pollIntMillis"])
    @pytest.mark.parametrize("value", ["abc", "2.5", None])
    def test_wait_numbers_validated(self, name, value):
        with pytest.raises(ConfigError):
            Operation("get-status").add_option(name, value)

    @pytest.mark.parametrize("name", ["waitFor", "waitForXPath"])
    @pytest.mark.parametrize("value", ["", "  ", None])
    def test_empty_wait_condition_rejected(self, name, value):
        """An empty condition would match every response."""
        op = Operation("get-status")
        with pytest.raises(ConfigError):
            op.add_option(name, value)
        assert not op.is_polling

    def test_filters_accumulate(self):
        """Repeated filter options are OR-ed together."""
        op = Operation("get-status")
        op.add_option("filter", "a")
        op.add_option("filter", "b")
        op.add_option("filterOut", "c")
        assert op.filter == "a|b"
        assert op.filter_out == "c"

    def test_fail_on_error_flag(self):
        op = Operation("SaveConfig")
        op.add_option("failOnError", "false")
        assert op.fail_flag is False

    def test_document_option_kept(self):
        """Unknown names become document options."""
        op = Operation("SaveCheckpoint")
        option = op.add_option("ChkName", "CP1")
        assert option == Option("ChkName", "CP1")
        assert op.options == [option]

    def test_last_value_wins(self):
        """get_option_value returns the most recently added value."""
        op = Operation("SaveCheckpoint")
        op.add_option("ChkName", "first")
        op.add_option("ChkName", "second")
        assert op.get_option_value("ChkName") == "second"
        assert op.get_option_value("missing") is None

    def test_directories_normalised(self):
        op = Operation("set-file")
        op.add_option("srcDir", "build\\site")
        op.add_option("destDir", "local:///site/")
        assert op.src_dir == "build/site/"
        assert op.dest_dir == "local:///site/"


class TestFileOptions:
    """srcFile / destFile mapping per operation."""

    def test_set_file_source_and_name(self):
        op = Operation("set-file")
        op.add_option("srcFile", "a.xsl")
        op.add_option("destFile", "local:///a.xsl")
        assert op.options[0] == Option("set-file", source_file="a.xsl")
        assert op.options[1] == Option("set-file@name", "local:///a.xsl")
        assert op.dest_file is None

    def test_get_file_name_and_destination(self):
        op = Operation("get-file")
        op.add_option("srcFile", "local:///a.xsl")
        op.add_option("destFile", "out/a.xsl")
        assert op.options == [Option("get-file@name", "local:///a.xsl")]
        assert op.dest_file == "out/a.xsl"

    def test_do_import_input_file(self):
        op = Operation("do-import")
        op.add_option("srcFile", "export.zip")
        assert op.options == [Option("input-file", source_file="export.zip")]

    def test_resolve_value_reads_base64(self, tmp_path):
        """Source files are read and base64 encoded at resolve time."""
        path = tmp_path / "a.txt"
        path.write_bytes(b"hello")
        option = Option("set-file", source_file=str(path))
        assert option.resolve_value() == base64.b64encode(b"hello").decode()

    def test_resolve_value_missing_file(self, tmp_path):
        option = Option("set-file", source_file=str(tmp_path / "missing"))
        with pytest.raises(GenerationError):
            option.resolve_value()


class TestDomainAndEndpoint:
    """Tests for domain and endpoint handling."""

    def test_set_domain_records_option_once(self):
        op = Operation("SaveConfig")
        op.set_domain("SANDBOX")
        op.set_domain("SANDBOX")
        assert op.domain == "SANDBOX"
        assert [o.name for o in op.options] == ["domain"]

    def test_effective_domain(self):
        op = Operation("SaveConfig")
        assert op.effective_domain("default") == "default"
        op.set_domain("OTHER")
        assert op.effective_domain("default") == "OTHER"

    def test_endpoint_alias(self):
        op = Operation("GetDomainListRequest")
        op.add_option("endPoint", "amp")
        assert op.dialect is Dialect.AMP
        assert op.endpoint == AMP_MGMT_30_URL

    def test_bind_endpoint_once(self):
        """Binding after an explicit endpoint keeps the explicit one."""
        op = Operation("SaveConfig")
        op.add_option("endPoint", "/custom/path")
        op.bind_endpoint(Dialect.SOMA, SOMA_MGMT_CURRENT_URL)
        assert op.endpoint == "/custom/path"


class TestOperationChain:
    """Tests for chain mutation during a walk."""

    def _chain(self, *names):
        ops = [Operation(name) for name in names]
        return OperationChain(ops), ops

    def test_walk_in_order(self):
        chain, ops = self._chain("a", "b", "c")
        assert list(chain.walk()) == ops

    def test_remove_current_during_walk(self):
        """Removing the current operation does not skip the next one."""
        chain, (a, b, c) = self._chain("a", "b", "c")
        seen = []
        for op in chain.walk():
            seen.append(op)
            if op is a:
                chain.remove(a)
        assert seen == [a, b, c]
        assert len(chain) == 2

    def test_insert_front_during_walk(self):
        """Inserting before the cursor does not revisit operations."""
        chain, (a, b, c) = self._chain("a", "b", "c")
        extra = Operation("extra")
        seen = []
        for op in chain.walk():
            seen.append(op)
            if op is b:
                chain.insert(0, extra)
        assert seen == [a, b, c]
        assert chain[0] is extra

    def test_remove_absent(self):
        chain, _ = self._chain("a")
        assert chain.remove(Operation("a")) is False

    def test_identity_membership(self):
        """Membership is by identity, not equal fields."""
        chain, (a,) = self._chain("a")
        assert a in chain
        assert Operation("a") not in chain


class TestResults:
    """Tests for Classification and ExecuteResult."""

    def test_classification_success(self):
        assert Classification(Severity.INFO, "OK").success
        assert not Classification(Severity.WARN, "careful").success

    def test_execute_result_to_dict(self):
        result = ExecuteResult(success=True, exit_code=0, operations_posted=["SaveConfig"])
        data = result.to_dict()
        assert data["success"] is True
        assert data["exit_code"] == 0
        assert data["operations_posted"] == ["SaveConfig"]
        assert data["rolled_back"] is False
