"""Raw chain-state access on Hardhat / Anvil development nodes."""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Protocol, Union

from web3 import Web3

logger = logging.getLogger(__name__)

# RPC namespace of the node's state-override extensions.
FLAVORS = ("hardhat", "anvil")


class NodeRPCError(RuntimeError):
    """The node answered a request with an error (or refused it)."""


class StateAccessor(Protocol):
    def read_word(self, address: str, slot: int) -> bytes: ...

    def write_word(self, address: str, slot: int, value: int) -> None: ...

    def snapshot(self) -> Any: ...

    def revert(self, handle: Any) -> None: ...

    def get_code(self, address: str) -> bytes: ...

    def set_code(self, address: str, code: Union[bytes, str]) -> None: ...

    def impersonate(self, address: str) -> None: ...

    def stop_impersonating(self, address: str) -> None: ...


def checksum(addr: str) -> str:
    if not Web3.is_address(addr):
        raise ValueError(f"Invalid Ethereum address: {addr}")
    return Web3.to_checksum_address(addr)


def connect(url: str, timeout: int = 30) -> Web3:
    w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
    if not w3.is_connected():
        raise ConnectionError(f"Failed to connect to RPC at {url}")
    return w3


@contextmanager
def snapshot_scope(accessor: StateAccessor) -> Iterator[Any]:
    """Snapshot on entry, revert on exit however the block ends."""
    handle = accessor.snapshot()
    try:
        yield handle
    finally:
        accessor.revert(handle)


class NodeStateAccessor:
    """StateAccessor over a dev node's JSON-RPC, via web3.py.

    ``flavor`` selects the ``hardhat_*`` or ``anvil_*`` method names; the
    ``evm_*`` snapshot methods are shared by both nodes.
    """

    def __init__(self, w3: Web3, flavor: str = "hardhat"):
        if flavor not in FLAVORS:
            raise ValueError(f"Unknown node flavor {flavor!r}; expected one of {', '.join(FLAVORS)}")
        self.w3 = w3
        self.flavor = flavor

    def _request(self, method: str, params: list) -> Any:
        resp = self.w3.provider.make_request(method, params)
        if resp.get("error"):
            raise NodeRPCError(f"{method} failed: {resp['error']}")
        return resp.get("result")

    def read_word(self, address: str, slot: int) -> bytes:
        return bytes(self.w3.eth.get_storage_at(checksum(address), slot))

    def write_word(self, address: str, slot: int, value: int) -> None:
        if slot < 0 or slot >= 2**256:
            raise ValueError("Slot out of range [0, 2^256).")
        if value < 0 or value >= 2**256:
            raise ValueError("Value out of range [0, 2^256).")
        # The node rejects zero-padded keys but wants the value as a full
        # 32-byte word.
        self._request(
            f"{self.flavor}_setStorageAt",
            [checksum(address), hex(slot), "0x" + value.to_bytes(32, "big").hex()],
        )

    def snapshot(self) -> str:
        handle = self._request("evm_snapshot", [])
        logger.debug("snapshot %s taken", handle)
        return handle

    def revert(self, handle: str) -> None:
        if not self._request("evm_revert", [handle]):
            raise NodeRPCError(f"evm_revert refused snapshot {handle}")
        logger.debug("reverted to snapshot %s", handle)

    def get_code(self, address: str) -> bytes:
        return bytes(self.w3.eth.get_code(checksum(address)))

    def set_code(self, address: str, code: Union[bytes, str]) -> None:
        if isinstance(code, (bytes, bytearray)):
            code = "0x" + bytes(code).hex()
        self._request(f"{self.flavor}_setCode", [checksum(address), code])

    def set_balance(self, address: str, wei: int) -> None:
        self._request(f"{self.flavor}_setBalance", [checksum(address), hex(wei)])

    def impersonate(self, address: str) -> None:
        self._request(f"{self.flavor}_impersonateAccount", [checksum(address)])

    def stop_impersonating(self, address: str) -> None:
        self._request(f"{self.flavor}_stopImpersonatingAccount", [checksum(address)])
