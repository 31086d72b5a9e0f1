import pytest

from doclink.config.settings import Settings
from doclink.connection.example_transport import ExampleTransport
from doclink.connection.factory import TransportFactory


class TestTransportFactory:
    def test_creates_example_transport(self) -> None:
        transport = TransportFactory.create(Settings(transport_provider="example"))
        assert isinstance(transport, ExampleTransport)

    def test_provider_is_case_insensitive(self) -> None:
        transport = TransportFactory.create(Settings(transport_provider="Example"))
        assert isinstance(transport, ExampleTransport)

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown transport provider 'carrier-pigeon'"):
            TransportFactory.create(Settings(transport_provider="carrier-pigeon"))
