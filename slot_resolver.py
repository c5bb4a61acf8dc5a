"""Locate and patch contract storage slots on a forked dev node.

Mapping entries live at ``keccak256(pad32(key) . pad32(slot))``; nested
mappings fold that hash once per key, outer key first. When the base slot
of a mapping is unknown it can be found by writing a sentinel at the slot
each candidate would imply and asking the contract's getter whether it
now returns that sentinel. Every probe runs inside a snapshot that is
reverted afterwards, so the chain is left as it was found.
"""

import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence

from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, Web3RPCError

from state_accessor import StateAccessor, snapshot_scope

logger = logging.getLogger(__name__)

WORD_BITS = 256
MAX_WORD = 2**WORD_BITS - 1
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DEFAULT_SENTINEL = 0xDEADBEEF
DEFAULT_MAX_SLOT = 100


class ProbeFault(Exception):
    """A getter failed while probing one candidate slot."""


# Failures of the probed call itself: reverts, undecodable output and any
# error the node answers the eth_call with (out of gas, invalid opcode).
# Transport failures and errors from the accessor reach the caller.
PROBE_FAULTS = (ProbeFault, ContractLogicError, BadFunctionCallOutput, Web3RPCError)


def _int_to_word(v: int) -> bytes:
    if v < 0:
        if v < -(2 ** (WORD_BITS - 1)):
            raise ValueError(f"value {v} does not fit in int256")
        v += 2**WORD_BITS  # int256 keys hash as two's complement
    if v > MAX_WORD:
        raise ValueError(f"value {hex(v)} does not fit in 32 bytes")
    return v.to_bytes(32, "big")


def _hex_to_bytes(h: str) -> bytes:
    h = h.strip()
    if h[:2].lower() == "0x":
        h = h[2:]
    if len(h) % 2:
        h = "0" + h
    return bytes.fromhex(h)


def pad32(value: Any) -> bytes:
    """Encode a key or word as 32 big-endian bytes, left-padded with zeros.

    Accepts ints (negative ones as int256), bools, bytes of up to 32 bytes,
    address strings and hex or decimal strings.
    """
    if isinstance(value, bool):
        return _int_to_word(int(value))
    if isinstance(value, int):
        return _int_to_word(value)
    if isinstance(value, (bytes, bytearray)):
        if len(value) > 32:
            raise ValueError(f"{len(value)}-byte value does not fit in a storage word")
        return bytes(value).rjust(32, b"\x00")
    if isinstance(value, str):
        s = value.strip()
        if s[:2].lower() == "0x":
            return pad32(_hex_to_bytes(s))
        return _int_to_word(int(s, 10))
    raise TypeError(f"cannot encode {type(value).__name__} as a storage word")


def word_int(value: Any) -> int:
    """Unsigned integer form of a value once stored as a 32-byte word."""
    return int.from_bytes(pad32(value), "big")


def word_hex(value: Any) -> str:
    return "0x" + pad32(value).hex()


def slot_hex(slot: int) -> str:
    """RPC key form of a slot: big-endian hex with no leading-zero padding."""
    check_slot(slot)
    return hex(slot)


def check_slot(slot: int) -> int:
    if not isinstance(slot, int) or isinstance(slot, bool):
        raise TypeError(f"slot must be an int, not {type(slot).__name__}")
    if slot < 0 or slot > MAX_WORD:
        raise ValueError("Slot out of range [0, 2^256).")
    return slot


def parse_slot(s: str) -> int:
    return check_slot(int(s, 0))  # accepts "5" or "0x5"


def parse_value(s: str) -> Any:
    """Parse a CLI value: a 20-byte hex string stays an address, the rest become ints."""
    s = s.strip()
    if s[:2].lower() == "0x" and len(s) == 42:
        return s
    return int(s, 0)


def compute_slot(base_slot: int, keys: Sequence[Any]) -> int:
    """Slot of ``mapping[keys[0]][keys[1]]...`` for a mapping declared at ``base_slot``."""
    slot = check_slot(base_slot)
    for key in keys:
        slot = int.from_bytes(Web3.keccak(pad32(key) + slot.to_bytes(32, "big")), "big")
    return slot


def array_element_slot(length_slot: int, index: int, element_words: int = 1) -> int:
    """Slot of element ``index`` of a dynamic array whose length is stored at ``length_slot``."""
    if index < 0:
        raise ValueError("array index must be non-negative")
    start = int.from_bytes(Web3.keccak(check_slot(length_slot).to_bytes(32, "big")), "big")
    return check_slot((start + index * element_words) % 2**WORD_BITS)


def read_back_matches(result: Any, expected: int) -> bool:
    if isinstance(result, (bytes, bytearray)):
        return int.from_bytes(result, "big") == expected
    if isinstance(result, str):
        try:
            return int(result, 16) == expected
        except ValueError:
            return False
    if isinstance(result, bool):
        return int(result) == expected
    return result == expected


def _scan(
    accessor: StateAccessor,
    address: str,
    candidates: Iterable[int],
    derive: Callable[[int], int],
    read: Callable[..., Any],
    read_args: Sequence[Any],
    sentinel: Any,
) -> Optional[int]:
    expected = word_int(sentinel)
    tried = 0
    for candidate in candidates:
        tried += 1
        target = derive(candidate)
        with snapshot_scope(accessor):
            accessor.write_word(address, target, expected)
            try:
                result = read(*read_args)
            except PROBE_FAULTS as e:
                logger.debug("candidate %d: probe fault: %s", candidate, e)
                continue
            if read_back_matches(result, expected):
                logger.info("candidate %d matched (slot %s)", candidate, hex(target))
                return candidate
            logger.debug("candidate %d: read back %r", candidate, result)
    logger.info("no match among %d candidates for %s", tried, address)
    return None


def discover_base_slot(
    accessor: StateAccessor,
    address: str,
    read: Callable[..., Any],
    probe_keys: Sequence[Any] = (ZERO_ADDRESS,),
    sentinel: Any = DEFAULT_SENTINEL,
    max_slot: int = DEFAULT_MAX_SLOT,
    candidates: Optional[Iterable[int]] = None,
) -> Optional[int]:
    """Find the base slot of the mapping behind ``read``.

    ``read`` is called with ``probe_keys`` and must return the mapping value
    for them, e.g. ``token.functions.balanceOf(key).call``. Candidates default
    to ``range(max_slot)`` and are tried in order. Returns the first candidate
    whose derived slot is reflected by the getter, or None.

    A getter that reverts, errors inside the node (e.g. out of gas) or
    returns garbage counts as a mismatch for that candidate; any other
    exception stops the scan.
    """
    keys = list(probe_keys)
    if not keys:
        raise ValueError("at least one probe key is required")
    if candidates is None:
        candidates = range(max_slot)
    return _scan(
        accessor, address, candidates,
        lambda c: compute_slot(c, keys), read, keys, sentinel,
    )


def discover_scalar_slot(
    accessor: StateAccessor,
    address: str,
    read: Callable[[], Any],
    sentinel: Any = DEFAULT_SENTINEL,
    max_slot: int = DEFAULT_MAX_SLOT,
    candidates: Optional[Iterable[int]] = None,
) -> Optional[int]:
    """Find the slot of a plain state variable exposed by the no-argument getter ``read``."""
    if candidates is None:
        candidates = range(max_slot)
    return _scan(accessor, address, candidates, check_slot, read, (), sentinel)


def patch_word(accessor: StateAccessor, address: str, slot: int, value: Any) -> None:
    accessor.write_word(address, check_slot(slot), word_int(value))


def patch_mapping_value(
    accessor: StateAccessor,
    address: str,
    base_slot: int,
    keys: List[Any],
    value: Any,
) -> int:
    slot = compute_slot(base_slot, keys)
    patch_word(accessor, address, slot, value)
    return slot
