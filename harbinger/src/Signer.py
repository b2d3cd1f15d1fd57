"""Signer: Abstract base class for signing oracle messages."""

from abc import ABC, abstractmethod


class Signer(ABC):
    """Abstract base class for signer implementations.

    A signer delegates to an external key custodian and never holds key
    material itself.
    """

    @abstractmethod
    async def sign(self, data: bytes) -> str:
        """Sign the given bytes.

        :param data: Bytes to sign (packed Michelson data).
        :returns: The signature encoded in base58check format.
        :raises SigningError: If the custodian is unreachable or refuses.
        """
        pass

    @abstractmethod
    def get_public_key(self) -> str:
        """Return the public key used to verify signed messages.

        :returns: The public key encoded in base58check format.
        """
        pass
