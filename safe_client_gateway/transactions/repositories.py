"""
Collaborators the verification and queue services depend on. Implementations
live in :mod:`safe_client_gateway.transactions.clients`
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from eth_typing import ChecksumAddress

from .entities import Delegate, MultisigTransaction, Page, Safe


class SafeRepository(ABC):
    @abstractmethod
    async def get_safe(self, chain_id: str, address: ChecksumAddress) -> Safe:
        raise NotImplementedError

    @abstractmethod
    async def get_transaction_queue(
        self,
        chain_id: str,
        safe: Safe,
        limit: int,
        offset: int,
        trusted: Optional[bool] = None,
    ) -> Page[MultisigTransaction]:
        """
        :return: Not executed transactions with ``nonce >= safe.nonce``, sorted by
            nonce and submission date
        """
        raise NotImplementedError


class DelegatesRepository(ABC):
    @abstractmethod
    async def get_delegates(
        self,
        chain_id: str,
        safe_address: Optional[ChecksumAddress] = None,
        delegate: Optional[ChecksumAddress] = None,
    ) -> list[Delegate]:
        raise NotImplementedError


class ContractsRepository(ABC):
    @abstractmethod
    async def is_trusted_for_delegate_call(
        self, chain_id: str, contract_address: ChecksumAddress
    ) -> bool:
        raise NotImplementedError


class ConfigurationService:
    """
    Read only accessor for the Django settings, so services don't depend on
    ``django.conf.settings`` directly
    """

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(settings, key, default)

    def get_or_throw(self, key: str) -> Any:
        try:
            return getattr(settings, key)
        except AttributeError as exc:
            raise ImproperlyConfigured(f"Setting {key} is not configured") from exc
