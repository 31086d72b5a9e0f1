from doclink.config.settings import Settings
from doclink.connection.example_transport import ExampleTransport
from doclink.connection.transport import BaseTransport


class TransportFactory:
    """Creates the configured transport."""

    TRANSPORTS: dict[str, type[BaseTransport]] = {
        "example": ExampleTransport,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseTransport:
        provider = settings.transport_provider.lower()
        transport_cls = cls.TRANSPORTS.get(provider)
        if transport_cls is None:
            raise ValueError(
                f"Unknown transport provider '{provider}'. Choose from: {list(cls.TRANSPORTS)}"
            )
        return transport_cls()
