"""Encoding, Merkle, contract and event polling helpers."""
