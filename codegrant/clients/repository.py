"""
Client configuration repository interface and implementation.

Defines the port (interface) for looking up registered OAuth2 clients.
The in-memory implementation is populated once at startup and is
read-only afterwards, so it needs no locking.
"""

import logging
from collections.abc import Iterable, Iterator
from types import MappingProxyType
from typing import Protocol

from codegrant.core.domain import ClientConfiguration


logger = logging.getLogger(__name__)


class ClientConfigurationRepository(Protocol):
    """
    Protocol defining the client configuration repository interface.

    Queried by both the redirect stage and the grant stage.
    """

    def find_by_id(self, configuration_id: str) -> ClientConfiguration | None:
        """
        Get a client configuration by its registration identifier.

        Args:
            configuration_id: Registration identifier (e.g. google)

        Returns:
            ClientConfiguration if registered, None otherwise
        """
        ...

    def ids(self) -> list[str]:
        """List registration identifiers in registration order."""
        ...

    def __iter__(self) -> Iterator[ClientConfiguration]: ...


class InMemoryClientConfigurationRepository(ClientConfigurationRepository):
    """
    In-memory implementation of ClientConfigurationRepository.

    Construction fails fast: an empty or ambiguous registry is a startup
    fault, never a request-time one.
    """

    def __init__(self, configurations: Iterable[ClientConfiguration]):
        registrations: dict[str, ClientConfiguration] = {}
        for configuration in configurations:
            if configuration.id in registrations:
                raise ValueError(
                    f"Duplicate client configuration id: {configuration.id}"
                )
            registrations[configuration.id] = configuration

        if not registrations:
            raise ValueError("At least one client configuration must be registered")

        self._configurations = MappingProxyType(registrations)
        logger.info(
            f"Registered {len(registrations)} OAuth2 client configuration(s)",
            extra={"configuration_ids": list(registrations)},
        )

    def find_by_id(self, configuration_id: str) -> ClientConfiguration | None:
        return self._configurations.get(configuration_id)

    def ids(self) -> list[str]:
        return list(self._configurations)

    def __iter__(self) -> Iterator[ClientConfiguration]:
        return iter(self._configurations.values())

    def __len__(self) -> int:
        return len(self._configurations)
