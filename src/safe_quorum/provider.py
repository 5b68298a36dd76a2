"""Web3 provider for the chain a Safe lives on."""

from __future__ import annotations

import logging
from decimal import Decimal

from web3 import Web3
from web3.exceptions import TransactionNotFound
from web3.middleware import ExtraDataToPOAMiddleware

from safe_quorum.chains import Chain, get_chain

logger = logging.getLogger("safe_quorum.provider")


class Web3Provider:
    """Wraps a single Web3 connection plus the chain metadata it targets."""

    def __init__(self, chain_name: str, rpc_url: str | None = None) -> None:
        self.chain: Chain = get_chain(chain_name)
        self.rpc_url = rpc_url or self.chain.rpc_url
        self._w3: Web3 | None = None

    @property
    def web3(self) -> Web3:
        """Return a (cached) Web3 instance for the configured chain.

        Injects POA middleware for chains other than Ethereum mainnet and Sepolia.
        """
        if self._w3 is not None:
            return self._w3

        w3 = Web3(Web3.HTTPProvider(self.rpc_url))

        # Base, Arbitrum, Polygon and Gnosis carry extra data in block headers
        if self.chain.chain_id not in (1, 11155111):
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        self._w3 = w3
        return w3

    def get_native_balance(self, address: str) -> Decimal:
        """Get the native token balance in human-readable units (e.g. ETH)."""
        checksum = Web3.to_checksum_address(address)
        balance_wei = self.web3.eth.get_balance(checksum)
        return Decimal(str(Web3.from_wei(balance_wei, "ether")))

    def get_code(self, address: str) -> bytes:
        return bytes(self.web3.eth.get_code(Web3.to_checksum_address(address)))

    def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        """Return the receipt for *tx_hash*, or ``None`` while it is unmined."""
        try:
            return dict(self.web3.eth.get_transaction_receipt(tx_hash))
        except TransactionNotFound:
            return None

    def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> dict:
        """Block until *tx_hash* is mined.

        Raises ``web3.exceptions.TimeExhausted`` after *timeout* seconds.
        """
        receipt = self.web3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=timeout, poll_latency=0.5
        )
        return dict(receipt)

    def _apply_fees(self, tx: dict) -> None:
        """Fill in fee fields and gas, EIP-1559 first with a legacy fallback."""
        w3 = self.web3
        try:
            latest = w3.eth.get_block("latest")
            base_fee = latest.get("baseFeePerGas")
            if base_fee is not None:
                max_priority = Web3.to_wei(1.5, "gwei")
                tx["maxFeePerGas"] = base_fee * 2 + max_priority
                tx["maxPriorityFeePerGas"] = max_priority
                if "gas" not in tx:
                    tx["gas"] = w3.eth.estimate_gas(tx)
            else:
                raise ValueError("No baseFeePerGas")
        except Exception:
            tx.pop("maxFeePerGas", None)
            tx.pop("maxPriorityFeePerGas", None)
            tx["gasPrice"] = w3.eth.gas_price
            if "gas" not in tx:
                tx["gas"] = w3.eth.estimate_gas(tx)

    def sign_and_send(self, tx: dict, private_key: bytes) -> str:
        """Complete nonce, chain id and fees for *tx*, sign it and broadcast it.

        Returns the transaction hash as a ``0x``-prefixed hex string.
        """
        w3 = self.web3
        from_account = w3.eth.account.from_key(private_key)
        tx = dict(tx)
        tx["from"] = from_account.address
        tx.setdefault("nonce", w3.eth.get_transaction_count(from_account.address))
        tx.setdefault("chainId", self.chain.chain_id)
        self._apply_fees(tx)

        signed = w3.eth.account.sign_transaction(tx, private_key)
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.debug(f"Broadcast tx {tx_hash.to_0x_hex()} from {from_account.address}")
        return tx_hash.to_0x_hex()

    def send_transaction(
        self,
        private_key: bytes,
        to_address: str,
        amount_ether: str | Decimal,
    ) -> str:
        """Build, sign, and send a native-token transfer.

        Returns the transaction hash as a hex string.
        """
        tx: dict = {
            "to": Web3.to_checksum_address(to_address),
            "value": Web3.to_wei(Decimal(str(amount_ether)), "ether"),
        }
        return self.sign_and_send(tx, private_key)
