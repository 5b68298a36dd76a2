"""EIP-712 hashing of Safe transactions.

The Safe contract signs over ``keccak256(0x19 || 0x01 || domainSeparator ||
safeTxStructHash)`` where the domain is ``(chainId, verifyingContract)``.
"""

from __future__ import annotations

from eth_abi import encode
from web3 import Web3

from safe_quorum.safe.contracts import DOMAIN_SEPARATOR_TYPEHASH, SAFE_TX_TYPEHASH
from safe_quorum.safe.models import SafeTransactionData


def domain_separator(chain_id: int, safe_address: str) -> bytes:
    return Web3.keccak(
        encode(
            ["bytes32", "uint256", "address"],
            [DOMAIN_SEPARATOR_TYPEHASH, chain_id, Web3.to_checksum_address(safe_address)],
        )
    )


def safe_tx_struct_hash(tx: SafeTransactionData) -> bytes:
    return Web3.keccak(
        encode(
            [
                "bytes32",
                "address",
                "uint256",
                "bytes32",
                "uint8",
                "uint256",
                "uint256",
                "uint256",
                "address",
                "address",
                "uint256",
            ],
            [
                SAFE_TX_TYPEHASH,
                Web3.to_checksum_address(tx.to),
                tx.value,
                Web3.keccak(hexstr=tx.data),
                tx.operation,
                tx.safe_tx_gas,
                tx.base_gas,
                tx.gas_price,
                Web3.to_checksum_address(tx.gas_token),
                Web3.to_checksum_address(tx.refund_receiver),
                tx.nonce,
            ],
        )
    )


def safe_tx_hash(chain_id: int, safe_address: str, tx: SafeTransactionData) -> str:
    """Return the canonical Safe transaction hash as a ``0x``-prefixed hex string."""
    digest = Web3.keccak(
        b"\x19\x01" + domain_separator(chain_id, safe_address) + safe_tx_struct_hash(tx)
    )
    return digest.to_0x_hex()
