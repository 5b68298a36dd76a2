import pytest

from safe_quorum.owners import OwnerIdentity, load_owners
from conftest import OWNER_ADDRESSES, OWNER_KEYS


def test_addresses_derived_in_order():
    owners = load_owners(OWNER_KEYS)
    assert [o.address for o in owners] == OWNER_ADDRESSES


def test_key_is_not_in_repr():
    owner = OwnerIdentity.from_key(OWNER_KEYS[0])
    assert OWNER_KEYS[0][2:] not in repr(owner)
    assert owner.address in repr(owner)


def test_duplicate_owner_rejected():
    with pytest.raises(ValueError, match="Duplicate"):
        load_owners([OWNER_KEYS[0], OWNER_KEYS[0]])


def test_invalid_key_rejected():
    with pytest.raises(ValueError, match="Invalid owner private key"):
        OwnerIdentity.from_key("0x1234")
