"""
Scenarios against a mainnet-fork dev node (Hardhat or Anvil).

Start the node forked from Ethereum mainnet (e.g. block 14674245) and point
FORK_RPC_URL at it; NODE_FLAVOR selects hardhat_* or anvil_* methods.
"""

import os

import pytest

from interfaces import bind, getter
from slot_resolver import (
    ZERO_ADDRESS, array_element_slot, discover_base_slot, patch_mapping_value, patch_word,
)
from state_accessor import NodeStateAccessor, connect, snapshot_scope

FORK_RPC_URL = os.getenv("FORK_RPC_URL")

USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
USDT = "0xdAC17F958D2ee523a2206206994597C13D831ec7"
AAVE_REGISTRY = "0x52D306e36E3B6B02c153d0266ff0f85d18BCD413"
ACCOUNT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

pytestmark = pytest.mark.skipif(not FORK_RPC_URL, reason="FORK_RPC_URL not set")


@pytest.fixture
def node():
    w3 = connect(FORK_RPC_URL)
    accessor = NodeStateAccessor(w3, os.getenv("NODE_FLAVOR", "hardhat"))
    with snapshot_scope(accessor):
        yield w3, accessor


def test_usdc_balance_slot(node):
    w3, accessor = node
    usdc = bind(w3, "IERC20", USDC)
    balance_of = getter(usdc, "balanceOf")

    slot = discover_base_slot(accessor, USDC, balance_of, [ZERO_ADDRESS], 0xDEADBEEF, 100)
    assert slot == 9

    patch_mapping_value(accessor, USDC, slot, [ACCOUNT], 123456789)
    assert balance_of(ACCOUNT) == 123456789


def test_usdt_owner_slot(node):
    w3, accessor = node
    usdt = bind(w3, "IUSDT", USDT)
    patch_word(accessor, USDT, 0, ACCOUNT)
    assert usdt.functions.getOwner().call() == ACCOUNT


def test_aave_registry_list(node):
    w3, accessor = node
    registry = bind(w3, "ILendingPoolAddressesProviderRegistry", AAVE_REGISTRY)
    patch_word(accessor, AAVE_REGISTRY, 2, 3)
    patch_word(accessor, AAVE_REGISTRY, array_element_slot(2, 2), 0xDEADBEEF)
    patch_mapping_value(accessor, AAVE_REGISTRY, 1, [0xDEADBEEF], 1)
    providers = registry.functions.getAddressesProvidersList().call()
    assert int(providers[2], 16) == 0xDEADBEEF
