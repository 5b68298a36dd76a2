"""Owner identities derived from configured private keys using eth-account."""

from __future__ import annotations

from dataclasses import dataclass, field

from eth_account import Account


@dataclass(frozen=True)
class OwnerIdentity:
    """A Safe owner: a private key and the checksummed address it controls."""

    address: str
    private_key: bytes = field(repr=False)

    @classmethod
    def from_key(cls, private_key: str | bytes) -> OwnerIdentity:
        """Derive the identity for a hex or raw private key.

        Raises
        ------
        ValueError
            If *private_key* is not a valid secp256k1 key.
        """
        try:
            acct = Account.from_key(private_key)
        except Exception as exc:
            raise ValueError(f"Invalid owner private key: {exc}") from exc
        return cls(address=acct.address, private_key=bytes(acct.key))


def load_owners(private_keys: list[str]) -> list[OwnerIdentity]:
    """Build owner identities in configuration order.

    Raises ``ValueError`` if two keys resolve to the same address.
    """
    owners = [OwnerIdentity.from_key(key) for key in private_keys]
    seen: set[str] = set()
    for owner in owners:
        if owner.address in seen:
            raise ValueError(f"Duplicate owner address {owner.address}")
        seen.add(owner.address)
    return owners
