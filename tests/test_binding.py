"""Tests for schema binding and dialect resolution."""
import xml.etree.ElementTree as ET

import pytest

from dpchain.binding import dialects
from dpchain.binding.dialects import AMP_NS, SOAP_ENV_NS, SOMA_NS, Dialect
from dpchain.binding.xsd import SchemaBinding
from dpchain.chain.errors import GenerationError, SchemaLoadError, SchemaNotFound

from fakes import request_of


def build(binding, name, **values):
    binding.new_document()
    binding.set_target_node(name)
    binding.set_envelope()
    for field_name, value in values.items():
        binding.set_value(field_name, value)
    return binding.serialize()


class TestDialects:
    """Tests for firmware levels and endpoint resolution."""

    def test_firmware_level(self):
        assert dialects.firmware_level("7.6.0.3") == 7
        assert dialects.firmware_level("2018.4.1") == 2018
        assert dialects.firmware_level("2004") == 2004
        assert dialects.firmware_level("") == 5

    def test_endpoint_for_schema(self):
        assert dialects.endpoint_for_schema("x/xml-mgmt.xsd") == (
            Dialect.SOMA, dialects.SOMA_MGMT_CURRENT_URL,
        )
        assert dialects.endpoint_for_schema("x/xml-mgmt-2004.xsd") == (
            Dialect.SOMA, dialects.SOMA_MGMT_2004_URL,
        )
        assert dialects.endpoint_for_schema("app-mgmt-protocol.xsd") == (
            Dialect.AMP, dialects.AMP_MGMT_DEFAULT_URL,
        )

    def test_endpoint_aliases(self):
        assert dialects.resolve_endpoint_alias("2004") == (Dialect.SOMA, dialects.SOMA_MGMT_2004_URL)
        assert dialects.resolve_endpoint_alias("current") == (
            Dialect.SOMA, dialects.SOMA_MGMT_CURRENT_URL,
        )
        assert dialects.resolve_endpoint_alias("/service/mgmt/amp/1.0") == (
            Dialect.AMP, "/service/mgmt/amp/1.0",
        )

    def test_schema_directory_fallback(self, tmp_path):
        """Missing firmware directories fall back to default/."""
        assert dialects.schema_directory("7.6", tmp_path) == tmp_path / "default"
        (tmp_path / "7.6").mkdir()
        assert dialects.schema_directory("7.6", tmp_path) == tmp_path / "7.6"


class TestSchemaModel:
    """Tests for what a loaded schema declares."""

    def test_supports(self, soma, amp):
        assert soma.supports("SaveCheckpoint")
        assert soma.supports("do-import")
        assert not soma.supports("GetDomainListRequest")
        assert amp.supports("GetDomainListRequest")

    def test_dialect_and_endpoint(self, soma, amp):
        assert soma.bind("SaveConfig") == (Dialect.SOMA, dialects.SOMA_MGMT_CURRENT_URL)
        assert amp.bind("StopDomainRequest") == (Dialect.AMP, dialects.AMP_MGMT_30_URL)

    def test_bind_unknown(self, soma):
        with pytest.raises(SchemaNotFound):
            soma.bind("NoSuchOperation")

    def test_missing_schema_file(self, tmp_path):
        with pytest.raises(SchemaLoadError):
            SchemaBinding(tmp_path / "xml-mgmt.xsd")

    def test_describe(self, soma):
        info = soma.describe("do-import")
        assert info["path"] == ["request", "do-import"]
        assert "source-type" in info["attributes"]
        assert info["inherited_attributes"] == ["domain"]
        assert {"input-file", "object", "file"} <= set(info["elements"])
        assert info["endpoint"] == dialects.SOMA_MGMT_CURRENT_URL


class TestDocumentBuilding:
    """Tests for building request documents."""

    def test_soma_action(self, soma):
        """do-action children are unqualified; the request carries the domain."""
        payload = build(soma, "SaveCheckpoint", ChkName="CP1", domain="SANDBOX")
        envelope = ET.fromstring(payload)
        assert envelope.tag == f"{{{SOAP_ENV_NS}}}Envelope"

        request = request_of(payload)
        assert request.tag == f"{{{SOMA_NS}}}request"
        assert request.get("domain") == "SANDBOX"
        action = request.find(f"{{{SOMA_NS}}}do-action")
        checkpoint = action.find("SaveCheckpoint")
        assert checkpoint.find("ChkName").text == "CP1"

    def test_repeated_value_overwrites(self, soma):
        payload = build(soma, "SaveCheckpoint", ChkName="first")
        soma.set_value("ChkName", "second")
        payload = soma.serialize()
        action = request_of(payload).find(f"{{{SOMA_NS}}}do-action")
        names = action.find("SaveCheckpoint").findall("ChkName")
        assert [n.text for n in names] == ["second"]

    def test_set_file_text_and_name(self, soma):
        payload = build(soma, "set-file", **{"set-file": "aGVsbG8=", "set-file@name": "local:///a.txt"})
        element = request_of(payload).find(f"{{{SOMA_NS}}}set-file")
        assert element.text == "aGVsbG8="
        assert element.get("name") == "local:///a.txt"

    def test_repeatable_elements_append(self, soma):
        """Each value for a repeatable element adds a new element."""
        build(soma, "do-import", **{"input-file": "UEsD"})
        soma.set_value("file", None)
        soma.set_value("file", None)
        soma.set_value("source-type", "ZIP")
        element = request_of(soma.serialize()).find(f"{{{SOMA_NS}}}do-import")
        assert element.get("source-type") == "ZIP"
        assert element.find("input-file").text == "UEsD"
        assert len(element.findall("file")) == 2

    def test_descendant_attribute(self, soma):
        build(soma, "do-export", **{"object@class": "XMLFirewallService", "object@name": "fw"})
        export = request_of(soma.serialize()).find(f"{{{SOMA_NS}}}do-export")
        objects = export.findall("object")
        assert len(objects) == 1
        assert objects[0].get("class") == "XMLFirewallService"
        assert objects[0].get("name") == "fw"

    def test_amp_qualified_domain(self, amp):
        payload = build(amp, "StopDomainRequest", Domain="SANDBOX")
        request = request_of(payload)
        assert request.tag == f"{{{AMP_NS}}}StopDomainRequest"
        assert request.find(f"{{{AMP_NS}}}Domain").text == "SANDBOX"

    def test_complex_content_extension(self, amp):
        """Extension types accept both base and own fields."""
        build(amp, "GetDomainExportRequest")
        assert amp.accepts("Domain")
        assert amp.accepts("SecureBackup")
        assert not amp.accepts("domain")

    def test_unknown_field(self, soma):
        build(soma, "SaveConfig")
        assert not soma.accepts("ChkName")
        with pytest.raises(GenerationError):
            soma.set_value("ChkName", "CP1")

    def test_unknown_target(self, soma):
        soma.new_document()
        with pytest.raises(SchemaNotFound):
            soma.set_target_node("NoSuchOperation")

    def test_value_without_target(self, soma):
        soma.new_document()
        with pytest.raises(GenerationError):
            soma.set_value("domain", "SANDBOX")
