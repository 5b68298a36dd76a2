"""Deploy new Safes or connect to existing ones."""

from __future__ import annotations

import logging
import time

from web3 import Web3

from safe_quorum.owners import OwnerIdentity
from safe_quorum.provider import Web3Provider
from safe_quorum.safe.account import SafeAccount
from safe_quorum.safe.contracts import (
    COMPATIBILITY_FALLBACK_HANDLER,
    PROXY_FACTORY_ABI,
    SAFE_ABI,
    SAFE_L2_SINGLETON,
    SAFE_PROXY_FACTORY,
    ZERO_ADDRESS,
)

logger = logging.getLogger("safe_quorum.safe.factory")


def default_threshold(owner_count: int) -> int:
    """One fewer than the number of owners, but never below one."""
    return max(1, owner_count - 1)


class SafeFactory:
    """Creates :class:`SafeAccount` handles, deploying a proxy when asked to.

    Deployment goes through the canonical v1.3.0 proxy factory and is paid
    for by *deployer*, who also becomes the signer of the returned handle.
    """

    def __init__(
        self,
        provider: Web3Provider,
        deployer: OwnerIdentity,
        *,
        singleton: str = SAFE_L2_SINGLETON,
        proxy_factory: str = SAFE_PROXY_FACTORY,
        fallback_handler: str = COMPATIBILITY_FALLBACK_HANDLER,
    ) -> None:
        self.provider = provider
        self.deployer = deployer
        self.singleton = Web3.to_checksum_address(singleton)
        self.proxy_factory = Web3.to_checksum_address(proxy_factory)
        self.fallback_handler = Web3.to_checksum_address(fallback_handler)

    def connect(self, address: str, owner: OwnerIdentity) -> SafeAccount:
        return SafeAccount.connect(self.provider, address, owner)

    def encode_setup(self, owners: list[str], threshold: int) -> bytes:
        """ABI-encode the ``setup`` initializer for a new proxy."""
        if not 1 <= threshold <= len(owners):
            raise ValueError(f"Threshold {threshold} is invalid for {len(owners)} owners")
        singleton = self.provider.web3.eth.contract(abi=SAFE_ABI)
        return Web3.to_bytes(
            hexstr=singleton.encode_abi(
                "setup",
                args=[
                    [Web3.to_checksum_address(o) for o in owners],
                    threshold,
                    ZERO_ADDRESS,
                    b"",
                    self.fallback_handler,
                    ZERO_ADDRESS,
                    0,
                    ZERO_ADDRESS,
                ],
            )
        )

    def deploy_safe(
        self,
        owners: list[str],
        threshold: int,
        salt_nonce: int | None = None,
    ) -> SafeAccount:
        """Deploy a Safe proxy for *owners* and wait for it to be mined.

        This is an irreversible on-chain write. Failures propagate.
        """
        if salt_nonce is None:
            salt_nonce = time.time_ns()
        initializer = self.encode_setup(owners, threshold)

        factory = self.provider.web3.eth.contract(address=self.proxy_factory, abi=PROXY_FACTORY_ABI)
        calldata = factory.encode_abi(
            "createProxyWithNonce", args=[self.singleton, initializer, salt_nonce]
        )
        params = {"from": self.deployer.address, "to": self.proxy_factory, "data": calldata}
        tx_hash = self.provider.sign_and_send(params, self.deployer.private_key)
        logger.info(f"Safe deployment sent: {tx_hash} ({threshold}-of-{len(owners)})")

        receipt = self.provider.wait_for_receipt(tx_hash)
        if receipt.get("status") != 1:
            raise RuntimeError(f"Safe deployment reverted: {tx_hash}")
        events = factory.events.ProxyCreation().process_receipt(receipt)
        if not events:
            raise RuntimeError(f"No ProxyCreation event in deployment receipt {tx_hash}")
        address = events[0]["args"]["proxy"]
        logger.info(f"Safe deployed at {address}")
        return SafeAccount(self.provider, address, self.deployer)
