"""Transports that carry commitments between a chain and its counterpart."""

from .base import CommitmentReceiver, Connector, CrossDomainMessenger
from .mock import MockConnector
from .native import InMemoryCrossDomainMessenger, NativeMessengerConnector, Web3CrossDomainMessenger

__all__ = [
    "CommitmentReceiver",
    "Connector",
    "CrossDomainMessenger",
    "MockConnector",
    "NativeMessengerConnector",
    "InMemoryCrossDomainMessenger",
    "Web3CrossDomainMessenger",
]
