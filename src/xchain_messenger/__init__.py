"""
Cross-chain messenger package.

Hub-and-spoke message bundling, commitment transport and proof-based
execution, plus the relayer service that drives it.
"""

from .config import NetworkConfig, RelayerConfig
from .dispatcher import Dispatcher
from .event_processor import EventProcessor
from .executor import Executor
from .fee_distributor import FeeDistributor
from .models import Bundle, BundleProof, Message
from .network import HubSpokeNetwork
from .relayer import MessageRelayer
from .transporter import Transporter

__all__ = [
    "NetworkConfig",
    "RelayerConfig",
    "Dispatcher",
    "Transporter",
    "Executor",
    "FeeDistributor",
    "HubSpokeNetwork",
    "MessageRelayer",
    "EventProcessor",
    "Message",
    "Bundle",
    "BundleProof",
]
__version__ = "0.1.0"
