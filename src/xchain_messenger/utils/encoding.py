"""
Encoding utilities for the cross-chain messenger.

This module provides identifier derivation (ABI encoding + keccak256), the
RLP codec for commitments sent through Connectors, and address helpers.
"""

import logging
from typing import Union

import rlp
from eth_abi import encode
from hexbytes import HexBytes
from rlp.exceptions import RLPException
from rlp.sedes import Binary, CountableList, List, big_endian_int, binary
from web3 import Web3

from ..models import CommitmentPayload, Message

logger = logging.getLogger(__name__)

MESSAGE_ID_TYPES = ["bytes32", "uint256", "uint256", "address", "uint256", "address", "bytes"]

hash32 = Binary.fixed_length(32)
address20 = Binary.fixed_length(20)

MESSAGE_SEDES = List([big_endian_int, address20, big_endian_int, address20, binary])
COMMITMENT_SEDES = List([
    big_endian_int,  # from_chain_id
    big_endian_int,  # to_chain_id
    hash32,  # bundle_id
    hash32,  # bundle_root
    big_endian_int,  # bundle_fees
    big_endian_int,  # total_leaves
    big_endian_int,  # commit_time
    CountableList(MESSAGE_SEDES, max_length=1),
])
RELAY_RECEIPT_SEDES = List([
    hash32,  # bundle_id
    address20,  # relayer
])


class MessageEncoder:
    """Utilities for encoding messenger data structures."""

    @staticmethod
    def to_bytes_safe(value: Union[HexBytes, bytes, str]) -> bytes:
        """
        Safely convert value to bytes, handling HexBytes, bytes, and hex strings.

        Args:
            value: Value to convert (HexBytes, bytes, or hex string)

        Returns:
            Bytes representation
        """
        if isinstance(value, HexBytes):
            return bytes(value)
        elif isinstance(value, bytes):
            return value
        else:
            return Web3.to_bytes(hexstr=value)

    @staticmethod
    def to_bytes32(value: Union[HexBytes, bytes, str]) -> bytes:
        """Convert to exactly 32 bytes, raising ValueError otherwise."""
        raw = MessageEncoder.to_bytes_safe(value)
        if len(raw) != 32:
            raise ValueError(f"Expected 32 bytes, got {len(raw)}")
        return raw

    @staticmethod
    def normalize_address(address: str) -> str:
        """Validate and checksum an address."""
        if not Web3.is_address(address):
            raise ValueError(f"Invalid address: {address}")
        return Web3.to_checksum_address(address)

    @staticmethod
    def contract_address(deployer: str, nonce: int) -> str:
        """
        Derive a CREATE-style contract address.

        Args:
            deployer: Address deploying the contract
            nonce: Deployment nonce of the deployer

        Returns:
            Checksummed address keccak256(rlp([deployer, nonce]))[12:]
        """
        encoded = rlp.encode([Web3.to_bytes(hexstr=deployer), nonce])
        return Web3.to_checksum_address(Web3.keccak(encoded)[12:])

    @staticmethod
    def get_message_id(
        bundle_id: bytes,
        tree_index: int,
        from_chain_id: int,
        sender: str,
        to_chain_id: int,
        to: str,
        data: bytes,
    ) -> HexBytes:
        """
        Derive the id of a message from its contents and bundle position.

        Returns:
            keccak256(abi.encode(bundleId, treeIndex, fromChainId, from,
            toChainId, to, data))
        """
        encoded = encode(
            MESSAGE_ID_TYPES,
            [
                MessageEncoder.to_bytes32(bundle_id),
                tree_index,
                from_chain_id,
                Web3.to_checksum_address(sender),
                to_chain_id,
                Web3.to_checksum_address(to),
                bytes(data),
            ],
        )
        return Web3.keccak(encoded)

    @staticmethod
    def get_bundle_id(from_chain_id: int, to_chain_id: int, bundle_nonce: int) -> HexBytes:
        """Derive the id of the bundle opened for a route at `bundle_nonce`."""
        return Web3.keccak(
            encode(["uint256", "uint256", "uint256"], [from_chain_id, to_chain_id, bundle_nonce])
        )

    @staticmethod
    def get_bundle_hash(bundle_id: bytes, bundle_root: bytes) -> HexBytes:
        """Derive the commitment hash binding a bundle id to its root."""
        return Web3.keccak(
            encode(
                ["bytes32", "bytes32"],
                [MessageEncoder.to_bytes32(bundle_id), MessageEncoder.to_bytes32(bundle_root)],
            )
        )

    @staticmethod
    def encode_commitment(payload: CommitmentPayload) -> bytes:
        """
        RLP-encode a commitment for transport through a Connector.

        Args:
            payload: Commitment to encode

        Returns:
            RLP bytes
        """
        messages = []
        if payload.message is not None:
            message = payload.message
            messages.append([
                message.from_chain_id,
                Web3.to_bytes(hexstr=message.sender),
                message.to_chain_id,
                Web3.to_bytes(hexstr=message.to),
                bytes(message.data),
            ])

        return rlp.encode(
            [
                payload.from_chain_id,
                payload.to_chain_id,
                MessageEncoder.to_bytes32(payload.bundle_id),
                MessageEncoder.to_bytes32(payload.bundle_root),
                payload.bundle_fees,
                payload.total_leaves,
                payload.commit_time,
                messages,
            ],
            sedes=COMMITMENT_SEDES,
        )

    @staticmethod
    def decode_commitment(data: bytes) -> CommitmentPayload:
        """
        Decode a commitment produced by `encode_commitment`.

        Raises:
            ValueError: If the payload is not a valid commitment encoding
        """
        try:
            (
                from_chain_id,
                to_chain_id,
                bundle_id,
                bundle_root,
                bundle_fees,
                total_leaves,
                commit_time,
                messages,
            ) = rlp.decode(bytes(data), sedes=COMMITMENT_SEDES)
        except RLPException as e:
            raise ValueError(f"Malformed commitment payload: {e}") from e

        message = None
        if messages:
            msg_from, msg_sender, msg_to_chain, msg_to, msg_data = messages[0]
            message = Message(
                from_chain_id=msg_from,
                sender=Web3.to_checksum_address(msg_sender),
                to_chain_id=msg_to_chain,
                to=Web3.to_checksum_address(msg_to),
                data=bytes(msg_data),
            )

        return CommitmentPayload(
            from_chain_id=from_chain_id,
            to_chain_id=to_chain_id,
            bundle_id=HexBytes(bundle_id),
            bundle_root=HexBytes(bundle_root),
            bundle_fees=bundle_fees,
            total_leaves=total_leaves,
            commit_time=commit_time,
            message=message,
        )

    @staticmethod
    def encode_relay_receipt(bundle_id: bytes, relayer: str) -> bytes:
        """RLP-encode the acknowledgement a spoke sends back for a hub commitment."""
        return rlp.encode(
            [MessageEncoder.to_bytes32(bundle_id), Web3.to_bytes(hexstr=relayer)],
            sedes=RELAY_RECEIPT_SEDES,
        )

    @staticmethod
    def is_relay_receipt(data: bytes) -> bool:
        """Tell relay receipts apart from commitments by their field count."""
        try:
            decoded = rlp.decode(bytes(data))
        except RLPException:
            return False
        return isinstance(decoded, list) and len(decoded) == 2

    @staticmethod
    def decode_relay_receipt(data: bytes) -> tuple[HexBytes, str]:
        """
        Decode a receipt produced by `encode_relay_receipt`.

        Returns:
            (bundle_id, relayer)

        Raises:
            ValueError: If the payload is not a valid receipt encoding
        """
        try:
            bundle_id, relayer = rlp.decode(bytes(data), sedes=RELAY_RECEIPT_SEDES)
        except RLPException as e:
            raise ValueError(f"Malformed relay receipt: {e}") from e
        return HexBytes(bundle_id), Web3.to_checksum_address(relayer)
