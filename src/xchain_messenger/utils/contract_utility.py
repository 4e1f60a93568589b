import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.middleware import SignAndSendRawMiddlewareBuilder


class ContractUtility:
    """
    Utility for contract interaction and ABI loading.

    Can be used in two modes:
    1. Full mode: Initialize with an RPC URL and secret for contract interaction
    2. ABI-only mode: Initialize with empty strings to load ABIs and encode calldata
    """

    def __init__(self, rpc_url: str = "", secret: str = ""):
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: RPC endpoint to connect to (optional for ABI-only mode)
            secret: Private key for transactions (optional for ABI-only mode)
        """
        if rpc_url and secret:
            self.rpc_url = rpc_url
            self.w3 = self.setup_web3_middleware(secret)
        else:
            # ABI-only mode - no network connection needed
            self.rpc_url = None
            self.w3 = None
        self._abi_cache: dict[str, list] = {}

    def setup_web3_middleware(self, secret: str) -> Web3:
        if not all([secret]):
            raise Warning(
                "Missing required environment variables. Please set PRIVATE_KEY."
            )

        account: LocalAccount = Account.from_key(secret)
        provider = (
            Web3.LegacyWebSocketProvider(self.rpc_url)
            if self.rpc_url.startswith(("ws:", "wss:"))
            else Web3.HTTPProvider(self.rpc_url)
        )
        w3 = Web3(provider)
        w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
        w3.eth.default_account = account.address
        return w3

    def get_contract_abi(self, contract_name: str) -> list:
        """Fetches ABI of the given contract from the package abi folder"""
        if contract_name in self._abi_cache:
            return self._abi_cache[contract_name]

        contract_path = (
            Path(__file__).parent.parent
            / "abi"
            / f"{contract_name}.json"
        ).resolve()

        with contract_path.open() as file:
            contract_data = json.load(file)

        self._abi_cache[contract_name] = contract_data["abi"]
        return contract_data["abi"]

    def get_contract(self, contract_name: str, address: str | None = None) -> Contract:
        """Contract object bound to the connected web3, or an offline one for encoding."""
        w3 = self.w3 or Web3()
        abi = self.get_contract_abi(contract_name)
        if address is None:
            return w3.eth.contract(abi=abi)
        return w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def encode_call(self, contract_name: str, function_name: str, args: Sequence[Any] = ()) -> HexBytes:
        """ABI-encode a function call (selector + arguments)."""
        contract = self.get_contract(contract_name)
        return HexBytes(contract.encode_abi(function_name, args=list(args)))

    def decode_call(self, contract_name: str, data: bytes) -> tuple[str, dict[str, Any]]:
        """
        Decode calldata against a contract ABI.

        Returns:
            Tuple of (function name, decoded arguments)

        Raises:
            ValueError: If the calldata is shorter than a selector; web3 raises
                its own validation error when the selector is unknown
        """
        if len(data) < 4:
            raise ValueError(f"Calldata too short: {len(data)} bytes")
        contract = self.get_contract(contract_name)
        func, params = contract.decode_function_input(HexBytes(data))
        return func.fn_name, dict(params)
