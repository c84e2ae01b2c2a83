"""Tests for chain execution through a deployment session."""
import base64

import pytest

from dpchain.binding.dialects import SOMA_NS
from dpchain.chain.cancel import CancelToken
from dpchain.chain.errors import ConfigError
from dpchain.protocol.xmlutil import http_error_response

from fakes import (
    FakeTransport,
    error_response,
    file_response,
    request_of,
    soma_response,
    warn_response,
)


class TestExecution:
    """Tests for the normal posting order."""

    @pytest.mark.asyncio
    async def test_posts_in_order(self, make_session):
        transport = FakeTransport()
        session = make_session(transport=transport)
        session.create_operation("SaveConfig")
        session.create_operation("GetDomainListRequest")

        result = await session.run()

        assert result.success
        assert result.exit_code == 0
        assert transport.names == ["SaveConfig", "GetDomainListRequest"]
        assert result.operations_posted == ["SaveConfig", "GetDomainListRequest"]
        assert transport.posts[0].endpoint == "/service/mgmt/current"
        assert transport.posts[1].endpoint == "/service/mgmt/amp/3.0"

    @pytest.mark.asyncio
    async def test_prepared_operation_added(self, make_session):
        transport = FakeTransport()
        session = make_session(transport=transport)
        operation = session.new_operation("SaveConfig")
        assert session.chain.names == []

        session.add_operation(operation)
        await session.run()

        assert transport.names == ["SaveConfig"]

    @pytest.mark.asyncio
    async def test_empty_chain(self, make_session):
        session = make_session()
        result = await session.run()
        assert result.exit_code == 1
        assert result.error == "No operations to execute"

    @pytest.mark.asyncio
    async def test_execute_raises(self, make_session):
        """execute() propagates; only run() maps errors to exit codes."""
        session = make_session()
        with pytest.raises(ConfigError):
            await session.execute()

    @pytest.mark.asyncio
    async def test_domain_precedence(self, make_session):
        transport = FakeTransport()
        session = make_session(transport=transport, domain="SANDBOX")
        session.create_operation("SaveConfig")
        session.create_operation("SaveConfig").set_domain("OTHER")

        await session.run()

        domains = [request_of(post.payload).get("domain") for post in transport.posts]
        assert domains == ["SANDBOX", "OTHER"]

    @pytest.mark.asyncio
    async def test_endpoint_override(self, make_session):
        transport = FakeTransport()
        session = make_session(transport=transport)
        session.create_operation("SaveConfig").add_option("endPoint", "2004")

        await session.run()

        assert transport.posts[0].endpoint == "/service/mgmt/2004"


class TestPayloadLifetime:
    """Tests for prebuilt and memory-safe payloads."""

    @pytest.mark.asyncio
    async def test_prebuilt_before_first_post(self, make_session):
        """Ordinary payloads all exist before anything is posted."""
        seen = []
        session = make_session(transport=FakeTransport(on_post=lambda post: seen.append(second.payload)))
        session.create_operation("SaveConfig")
        second = session.create_operation("GetDomainListRequest")

        await session.run()

        assert seen[0] is not None

    @pytest.mark.asyncio
    async def test_mem_safe_window(self, make_session, tmp_path):
        """Memory-safe payloads exist only while their own post is in flight."""
        source = tmp_path / "big.bin"
        source.write_bytes(b"payload")
        seen = []
        session = make_session(transport=FakeTransport(on_post=lambda post: seen.append(upload.payload)))
        session.create_operation("SaveConfig")
        upload = session.create_operation("set-file")
        upload.add_option("srcFile", str(source))
        upload.add_option("destFile", "local:///big.bin")
        upload.add_option("memSafe", "true")

        result = await session.run()

        assert result.exit_code == 0
        assert seen[0] is None
        assert seen[1] is not None
        assert base64.b64encode(b"payload").decode() in seen[1]
        assert upload.payload is None


class TestErrorHandling:
    """Tests for severity handling without a checkpoint."""

    @pytest.mark.asyncio
    async def test_fatal_aborts(self, make_session):
        transport = FakeTransport({"SaveConfig": error_response("disk full")})
        session = make_session(transport=transport)
        session.create_operation("SaveConfig")
        session.create_operation("GetDomainListRequest")

        result = await session.run()

        assert result.exit_code == 1
        assert result.success is False
        assert transport.names == ["SaveConfig"]
        assert "disk full" in result.error

    @pytest.mark.asyncio
    async def test_not_fail_fast_continues(self, make_session):
        transport = FakeTransport({"SaveConfig": error_response("disk full")})
        session = make_session(transport=transport, fail_on_error=False)
        session.create_operation("SaveConfig")
        session.create_operation("GetDomainListRequest")

        result = await session.run()

        assert result.exit_code == 0
        assert transport.names == ["SaveConfig", "GetDomainListRequest"]
        assert any("disk full" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_operation_fail_flag(self, make_session):
        """failOnError=false on one operation only downgrades that operation."""
        transport = FakeTransport({"SaveConfig": error_response("disk full")})
        session = make_session(transport=transport)
        session.create_operation("SaveConfig").add_option("failOnError", "false")
        session.create_operation("GetDomainListRequest")

        result = await session.run()

        assert result.exit_code == 0
        assert transport.names == ["SaveConfig", "GetDomainListRequest"]

    @pytest.mark.asyncio
    async def test_warning_continues(self, make_session):
        transport = FakeTransport({"SaveConfig": warn_response()})
        session = make_session(transport=transport)
        session.create_operation("SaveConfig")
        session.create_operation("GetDomainListRequest")

        result = await session.run()

        assert result.exit_code == 0
        assert len(transport.posts) == 2
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_abort_threshold(self, make_session):
        """ERROR responses only warn when the threshold is FATAL."""
        import_error = soma_response(
            '<dp:import><cfg-result class="XMLFirewallService" name="fw" status="error"/></dp:import>'
        )
        transport = FakeTransport({"SaveConfig": import_error})
        session = make_session(transport=transport)
        session.set_global_option("abortThreshold", "FATAL")
        session.create_operation("SaveConfig")
        session.create_operation("GetDomainListRequest")

        result = await session.run()

        assert result.exit_code == 0
        assert len(transport.posts) == 2

    @pytest.mark.asyncio
    async def test_transport_failure_is_fatal(self, make_session):
        transport = FakeTransport(default=http_error_response("Failed to connect to https://dp-test:5550"))
        session = make_session(transport=transport)
        session.create_operation("SaveConfig")

        result = await session.run()

        assert result.exit_code == 1
        assert "Failed to connect" in result.error

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, make_session):
        token = CancelToken()
        token.cancel("SIGINT")
        transport = FakeTransport()
        session = make_session(transport=transport, cancel_token=token)
        session.create_operation("SaveConfig")

        result = await session.run()

        assert result.exit_code == 1
        assert transport.posts == []


class TestOperationRemoval:
    """Tests for operations no schema can build."""

    @pytest.mark.asyncio
    async def test_removed_when_not_fail_fast(self, make_session):
        transport = FakeTransport()
        session = make_session(transport=transport, fail_on_error=False)
        session.create_operation("SaveConfig")
        session.create_operation("NoSuchOperation")
        session.create_operation("GetDomainListRequest")

        result = await session.run()

        assert result.exit_code == 0
        assert result.operations_removed == ["NoSuchOperation"]
        assert transport.names == ["SaveConfig", "GetDomainListRequest"]
        assert session.chain.names == ["SaveConfig", "GetDomainListRequest"]

    @pytest.mark.asyncio
    async def test_fail_fast_stops_before_posting(self, make_session):
        transport = FakeTransport()
        session = make_session(transport=transport)
        session.create_operation("SaveConfig")
        session.create_operation("NoSuchOperation")

        result = await session.run()

        assert result.exit_code == 1
        assert transport.posts == []
        assert "No such operation 'NoSuchOperation'" in result.error

    @pytest.mark.asyncio
    async def test_bad_option_removed(self, make_session):
        transport = FakeTransport()
        session = make_session(transport=transport, fail_on_error=False)
        session.create_operation("SaveConfig").add_option("NotAField", "x")
        session.create_operation("GetDomainListRequest")

        result = await session.run()

        assert result.operations_removed == ["SaveConfig"]
        assert transport.names == ["GetDomainListRequest"]


class TestDownloads:
    """Tests for saving get-file output."""

    @pytest.mark.asyncio
    async def test_get_file_saved(self, make_session, tmp_path):
        dest = tmp_path / "out.xsl"
        content = base64.b64encode(b"<xsl/>").decode()
        transport = FakeTransport({"get-file": file_response(content)})
        session = make_session(transport=transport)
        op = session.create_operation("get-file")
        op.add_option("srcFile", "local:///out.xsl")
        op.add_option("destFile", str(dest))

        result = await session.run()

        assert result.exit_code == 0
        assert dest.read_bytes() == b"<xsl/>"
        request = request_of(transport.posts[0].payload)
        assert request.find(f"{{{SOMA_NS}}}get-file").get("name") == "local:///out.xsl"
