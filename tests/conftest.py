"""
Shared fixtures: an in-memory stand-in for a dev node's state and a token
whose getters read their answers straight out of that state.
"""

import pytest
from web3 import Web3

from slot_resolver import compute_slot
from state_accessor import NodeRPCError

TOKEN = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
ALICE = "0x1111111111111111111111111111111111111111"
BOB = "0x2222222222222222222222222222222222222222"


class FakeChain:
    """StateAccessor over a dict, with hardhat-like one-shot snapshots."""

    def __init__(self):
        self.storage = {}
        self.code = {}
        self.impersonated = set()
        self.log = []
        self._snapshots = {}
        self._next_id = 0

    def read_word(self, address, slot):
        return self.storage.get((address.lower(), slot), 0).to_bytes(32, "big")

    def write_word(self, address, slot, value):
        self.log.append(("write", slot, value))
        self.storage[(address.lower(), slot)] = value

    def snapshot(self):
        self._next_id += 1
        handle = hex(self._next_id)
        self._snapshots[handle] = (dict(self.storage), dict(self.code))
        self.log.append(("snapshot", handle))
        return handle

    def revert(self, handle):
        if handle not in self._snapshots:
            raise NodeRPCError(f"evm_revert refused snapshot {handle}")
        self.storage, self.code = self._snapshots.pop(handle)
        self.log.append(("revert", handle))

    def get_code(self, address):
        return self.code.get(address.lower(), b"")

    def set_code(self, address, code):
        self.code[address.lower()] = code

    def impersonate(self, address):
        self.impersonated.add(address.lower())

    def stop_impersonating(self, address):
        self.impersonated.discard(address.lower())

    @property
    def open_snapshots(self):
        return len(self._snapshots)


class FakeToken:
    """Token whose balances mapping sits at ``balances_slot`` and owner at ``owner_slot``."""

    def __init__(self, chain, address=TOKEN, balances_slot=9, allowances_slot=10, owner_slot=0):
        self.chain = chain
        self.address = address
        self.balances_slot = balances_slot
        self.allowances_slot = allowances_slot
        self.owner_slot = owner_slot

    def _word(self, slot):
        return int.from_bytes(self.chain.read_word(self.address, slot), "big")

    def balance_of(self, account):
        return self._word(compute_slot(self.balances_slot, [account]))

    def allowance(self, owner, spender):
        return self._word(compute_slot(self.allowances_slot, [owner, spender]))

    def owner(self):
        word = self.chain.read_word(self.address, self.owner_slot)
        return Web3.to_checksum_address("0x" + word[-20:].hex())


@pytest.fixture
def chain():
    c = FakeChain()
    c.write_word(TOKEN, 0, int(ALICE, 16))
    c.write_word(TOKEN, compute_slot(9, [ALICE]), 500)
    c.log.clear()
    return c


@pytest.fixture
def token(chain):
    return FakeToken(chain)
