"""
Destination contracts driven by ABI-encoded calldata.

A MessageReceiver decodes incoming calldata with its contract ABI and
dispatches to the Python method of the same name. It is how executed
messages reach application code on the destination chain.
"""

import logging
import re
from typing import TYPE_CHECKING, Any

from web3 import Web3

from .utils.contract_utility import ContractUtility

if TYPE_CHECKING:
    from .chain import Chain
    from .executor import Executor

logger = logging.getLogger(__name__)


def _snake_case(name: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


class MessageReceiver:
    """Base for contracts that accept ABI-encoded calls."""

    CONTRACT_NAME = "MessageReceiver"

    address: str
    chain: "Chain"

    def __init__(self, executor: str, contract_util: ContractUtility | None = None) -> None:
        """
        Args:
            executor: Address of the Executor on this chain
            contract_util: ABI source; an ABI-only utility by default
        """
        self.executor = Web3.to_checksum_address(executor)
        self.contract_util = contract_util or ContractUtility()

    def handle_call(self, caller: str, data: bytes) -> Any:
        fn_name, params = self.contract_util.decode_call(self.CONTRACT_NAME, data)
        handler = getattr(self, _snake_case(fn_name), None)
        if handler is None:
            raise NotImplementedError(f"{type(self).__name__} does not implement {fn_name}")
        return handler(caller, **{name.lstrip('_'): value for name, value in params.items()})

    def _executor(self) -> "Executor":
        return self.chain.get_contract(self.executor)


class MockMessageReceiver(MessageReceiver):
    """Records the last call and the cross-chain context it ran in."""

    def __init__(self, executor: str, contract_util: ContractUtility | None = None) -> None:
        super().__init__(executor, contract_util)
        self.result: int | None = None
        self.msg_sender: str | None = None
        self.x_domain_sender: str | None = None
        self.x_domain_chain_id: int | None = None

    def set_result(self, caller: str, result: int) -> None:
        executor = self._executor()
        x_domain_sender = executor.get_cross_chain_sender()
        x_domain_chain_id = executor.get_cross_chain_chain_id()

        self.result = result
        self.msg_sender = caller
        self.x_domain_sender = x_domain_sender
        self.x_domain_chain_id = x_domain_chain_id
        logger.info(
            f"Result set to {result} by {self.x_domain_sender} "
            f"from chain {self.x_domain_chain_id}"
        )

    def revert_with_reason(self, caller: str, reason: str) -> None:
        raise RuntimeError(reason)
