"""
Fault types (datapack/faults.py).
"""

import pytest

from datapack.faults import (
    ConfigInvalidFault,
    DuplicateResourceNameFault,
    EmptyInputFault,
    Fault,
    FaultDomain,
    InvalidResourceNameFault,
    MalformedArchiveFault,
    OutputAlreadyExistsFault,
    PackFault,
    ResourceEncodingFault,
    ResourceNotFoundFault,
    Severity,
    TransformerFailureFault,
)


class TestFault:

    def test_requires_code_message_domain(self):
        with pytest.raises(TypeError):
            Fault(code="X", message="missing domain")

    def test_str_and_repr(self):
        fault = Fault(code="X", message="boom", domain=FaultDomain.IO)
        assert str(fault) == "[X] boom"
        assert repr(fault) == "Fault(code='X', domain=io, severity=error)"

    def test_domain_default_severity(self):
        assert Fault(code="X", message="m", domain=FaultDomain.PACK).severity == Severity.FATAL
        assert Fault(code="X", message="m", domain=FaultDomain.ARCHIVE).severity == Severity.ERROR

    def test_explicit_severity(self):
        fault = Fault(code="X", message="m", domain=FaultDomain.IO, severity=Severity.WARN)
        assert fault.severity == Severity.WARN

    def test_to_dict(self):
        fault = ResourceNotFoundFault("a.b")
        assert fault.to_dict() == {
            "code": "RESOURCE_NOT_FOUND",
            "message": "Can't find module 'a.b'",
            "domain": "pack",
            "severity": "fatal",
            "metadata": {"name": "a.b"},
        }

    def test_domain_equality(self):
        assert FaultDomain.PACK == FaultDomain("pack")
        assert FaultDomain.PACK == "pack"
        assert FaultDomain.PACK != FaultDomain.IO


class TestCatalog:

    @pytest.mark.parametrize("fault, code, domain", [
        (ResourceNotFoundFault("m"), "RESOURCE_NOT_FOUND", FaultDomain.PACK),
        (DuplicateResourceNameFault("m.py"), "DUPLICATE_RESOURCE_NAME", FaultDomain.PACK),
        (InvalidResourceNameFault("", "empty"), "INVALID_RESOURCE_NAME", FaultDomain.PACK),
        (EmptyInputFault(), "EMPTY_INPUT", FaultDomain.PACK),
        (TransformerFailureFault("m.py", "bad"), "TRANSFORMER_FAILURE", FaultDomain.PACK),
        (ResourceEncodingFault("m.py", "bad byte"), "RESOURCE_ENCODING", FaultDomain.PACK),
        (MalformedArchiveFault("truncated"), "MALFORMED_ARCHIVE", FaultDomain.ARCHIVE),
        (OutputAlreadyExistsFault("/tmp/x"), "OUTPUT_EXISTS", FaultDomain.IO),
        (ConfigInvalidFault("k", "bad"), "CONFIG_INVALID", FaultDomain.CONFIG),
    ])
    def test_codes(self, fault, code, domain):
        assert isinstance(fault, Fault)
        assert fault.code == code
        assert fault.domain == domain

    def test_pack_faults_share_base(self):
        assert isinstance(EmptyInputFault(), PackFault)
        assert not isinstance(MalformedArchiveFault("x"), PackFault)

    def test_metadata_merged(self):
        fault = ResourceNotFoundFault("m", metadata={"search_path": ["/a"]})
        assert fault.metadata == {"name": "m", "search_path": ["/a"]}

    def test_malformed_source(self):
        fault = MalformedArchiveFault("truncated", source="app.py")
        assert fault.message == "Malformed datapack archive in app.py: truncated"
        assert fault.reason == "truncated"
