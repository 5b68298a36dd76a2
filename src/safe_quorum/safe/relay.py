"""Client for the Safe Transaction Service.

The service holds proposed multisig transactions and their confirmations
off-chain until someone executes them. Uses the REST API directly via httpx.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from web3 import Web3

from safe_quorum.safe.models import (
    SafeMultisigTransaction,
    SafeTransactionData,
)

logger = logging.getLogger("safe_quorum.safe.relay")


class TransactionRelay(Protocol):
    """The relay operations the workflow depends on."""

    async def propose_transaction(
        self,
        safe_address: str,
        tx: SafeTransactionData,
        safe_tx_hash: str,
        sender_address: str,
        sender_signature: str,
        origin: str | None = None,
    ) -> None: ...

    async def get_pending_transactions(
        self, safe_address: str, current_nonce: int | None = None
    ) -> list[SafeMultisigTransaction]: ...

    async def confirm_transaction(self, safe_tx_hash: str, signature: str) -> str: ...

    async def get_transaction(self, safe_tx_hash: str) -> SafeMultisigTransaction: ...


class SafeTransactionService:
    """Async client for one Safe Transaction Service deployment.

    Non-2xx responses raise :class:`httpx.HTTPStatusError`.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> SafeTransactionService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: dict | None = None) -> dict:
        resp = await self._client.get(f"{self.base_url}{path}", params=params)
        resp.raise_for_status()
        return resp.json()

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        resp = await self._client.post(f"{self.base_url}{path}", json=payload)
        if resp.status_code >= 400:
            logger.error(f"Safe Transaction Service error {resp.status_code} on {path}: {resp.text}")
        resp.raise_for_status()
        return resp

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get_safe_info(self, safe_address: str) -> dict:
        """Return the service's view of a Safe (nonce, threshold, owners, ...)."""
        address = Web3.to_checksum_address(safe_address)
        return await self._get(f"/api/v1/safes/{address}/")

    async def propose_transaction(
        self,
        safe_address: str,
        tx: SafeTransactionData,
        safe_tx_hash: str,
        sender_address: str,
        sender_signature: str,
        origin: str | None = None,
    ) -> None:
        """Store a new multisig transaction with the proposer's signature."""
        address = Web3.to_checksum_address(safe_address)
        payload = {
            "to": tx.to,
            "value": str(tx.value),
            "data": None if tx.data == "0x" else tx.data,
            "operation": tx.operation,
            "safeTxGas": str(tx.safe_tx_gas),
            "baseGas": str(tx.base_gas),
            "gasPrice": str(tx.gas_price),
            "gasToken": tx.gas_token,
            "refundReceiver": tx.refund_receiver,
            "nonce": tx.nonce,
            "contractTransactionHash": safe_tx_hash,
            "sender": Web3.to_checksum_address(sender_address),
            "signature": sender_signature,
            "origin": origin,
        }
        await self._post(f"/api/v1/safes/{address}/multisig-transactions/", payload)
        logger.info(f"Proposed {safe_tx_hash} for Safe {address}")

    async def get_pending_transactions(
        self, safe_address: str, current_nonce: int | None = None
    ) -> list[SafeMultisigTransaction]:
        """List unexecuted transactions with a nonce at or above the Safe's current one.

        The order is the service's order. When *current_nonce* is not given
        it is read from :meth:`get_safe_info`.
        """
        address = Web3.to_checksum_address(safe_address)
        if current_nonce is None:
            info = await self.get_safe_info(address)
            current_nonce = int(info["nonce"])
        data = await self._get(
            f"/api/v1/safes/{address}/multisig-transactions/",
            params={"executed": "false", "nonce__gte": current_nonce},
        )
        return [SafeMultisigTransaction.model_validate(item) for item in data.get("results", [])]

    async def confirm_transaction(self, safe_tx_hash: str, signature: str) -> str:
        """Add a confirmation to a stored transaction. Returns the stored signature."""
        resp = await self._post(
            f"/api/v1/multisig-transactions/{safe_tx_hash}/confirmations/",
            {"signature": signature},
        )
        body = resp.json() if resp.content else {}
        return body.get("signature", signature)

    async def get_transaction(self, safe_tx_hash: str) -> SafeMultisigTransaction:
        """Fetch a stored transaction together with all of its confirmations."""
        data = await self._get(f"/api/v1/multisig-transactions/{safe_tx_hash}/")
        return SafeMultisigTransaction.model_validate(data)
