"""Chain definitions for supported EVM networks."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Chain:
    """An EVM-compatible network with a Safe Transaction Service deployment."""

    name: str
    chain_id: int
    rpc_url: str
    native_symbol: str
    explorer_url: str
    tx_service_url: str
    safe_app_prefix: str

    def tx_link(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"

    def address_link(self, address: str) -> str:
        return f"{self.explorer_url}/address/{address}"

    def safe_app_link(self, safe_address: str) -> str:
        """Link to the Safe web app for *safe_address*."""
        return f"https://app.safe.global/home?safe={self.safe_app_prefix}:{safe_address}"


CHAINS: dict[str, Chain] = {
    "ethereum": Chain(
        name="ethereum",
        chain_id=1,
        rpc_url="https://eth.llamarpc.com",
        native_symbol="ETH",
        explorer_url="https://etherscan.io",
        tx_service_url="https://safe-transaction-mainnet.safe.global",
        safe_app_prefix="eth",
    ),
    "sepolia": Chain(
        name="sepolia",
        chain_id=11155111,
        rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
        native_symbol="ETH",
        explorer_url="https://sepolia.etherscan.io",
        tx_service_url="https://safe-transaction-sepolia.safe.global",
        safe_app_prefix="sep",
    ),
    "base": Chain(
        name="base",
        chain_id=8453,
        rpc_url="https://mainnet.base.org",
        native_symbol="ETH",
        explorer_url="https://basescan.org",
        tx_service_url="https://safe-transaction-base.safe.global",
        safe_app_prefix="base",
    ),
    "arbitrum": Chain(
        name="arbitrum",
        chain_id=42161,
        rpc_url="https://arb1.arbitrum.io/rpc",
        native_symbol="ETH",
        explorer_url="https://arbiscan.io",
        tx_service_url="https://safe-transaction-arbitrum.safe.global",
        safe_app_prefix="arb1",
    ),
    "polygon": Chain(
        name="polygon",
        chain_id=137,
        rpc_url="https://polygon-rpc.com",
        native_symbol="POL",
        explorer_url="https://polygonscan.com",
        tx_service_url="https://safe-transaction-polygon.safe.global",
        safe_app_prefix="matic",
    ),
    "gnosis": Chain(
        name="gnosis",
        chain_id=100,
        rpc_url="https://rpc.gnosischain.com",
        native_symbol="xDAI",
        explorer_url="https://gnosisscan.io",
        tx_service_url="https://safe-transaction-gnosis-chain.safe.global",
        safe_app_prefix="gno",
    ),
}


def get_chain(name: str) -> Chain:
    """Get a chain by name. Raises ``KeyError`` if not found."""
    if name not in CHAINS:
        raise KeyError(
            f"Unknown chain '{name}'. Available: {list_chain_names()}"
        )
    return CHAINS[name]


def list_chain_names() -> list[str]:
    """Return the names of all supported chains."""
    return list(CHAINS.keys())
