# app.py
# Write a value into a contract storage slot on a dev node: a raw slot, a
# mapping entry (--key, repeatable for nested mappings) or a dynamic array
# element (--array-index), then read the raw word back.
import os
import sys
import time
import logging
import argparse
from dotenv import load_dotenv

from slot_resolver import (
    array_element_slot, compute_slot, parse_slot, parse_value, patch_word, slot_hex, word_hex,
)
from state_accessor import NodeStateAccessor, checksum, connect

DEFAULT_RPC_URL = "http://127.0.0.1:8545"

NETWORKS = {
    1: "Ethereum Mainnet",
    11155111: "Sepolia Testnet",
    31337: "Hardhat / Anvil dev node",
    10: "Optimism",
    137: "Polygon",
    42161: "Arbitrum One",
}

def network_name(chain_id: int) -> str:
    return NETWORKS.get(chain_id, f"Unknown (chain ID {chain_id})")

def to_hex(b: bytes) -> str:
    return "0x" + b.hex()

def target_slot(base: int, keys, array_index) -> int:
    if keys and array_index is not None:
        raise ValueError("--key and --array-index are mutually exclusive.")
    if array_index is not None:
        return array_element_slot(base, array_index)
    return compute_slot(base, keys)

def main(argv=None) -> int:
    load_dotenv()
    ap = argparse.ArgumentParser(description="Patch a storage slot (raw, mapping entry or array element) on a dev node.")
    ap.add_argument("address", help="Contract address (0x...)")
    ap.add_argument("slot", help="Slot, mapping base slot or array length slot (decimal or 0xHEX)")
    ap.add_argument("value", help="Value to store: integer, 0xHEX or an address")
    ap.add_argument("--key", action="append", default=[], help="Mapping key, outer first; repeat for nested mappings")
    ap.add_argument("--array-index", type=int, help="Treat slot as a dynamic array and patch this element")
    ap.add_argument("--rpc", default=os.getenv("RPC_URL", DEFAULT_RPC_URL), help="RPC URL (default: RPC_URL env)")
    ap.add_argument("--flavor", default=os.getenv("NODE_FLAVOR", "hardhat"), choices=["hardhat", "anvil"],
                    help="Dev node RPC namespace (default: NODE_FLAVOR env)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s - %(levelname)s - %(message)s")

    try:
        address = checksum(args.address)
        base = parse_slot(args.slot)
        value = parse_value(args.value)
        keys = [parse_value(k) for k in args.key]
        slot = target_slot(base, keys, args.array_index)
        expected = word_hex(value)
    except ValueError as e:
        print(f"❌ {e}")
        return 2

    try:
        w3 = connect(args.rpc)
    except ConnectionError:
        print("❌ Failed to connect to RPC. Check RPC_URL / --rpc.")
        return 1
    accessor = NodeStateAccessor(w3, args.flavor)

    if not accessor.get_code(address):
        print("⚠️ Target has no contract code — likely an EOA, not a smart contract.")
    print(f"🌐 Connected to {network_name(w3.eth.chain_id)} (chainId {w3.eth.chain_id})")

    start = time.time()
    before = accessor.read_word(address, slot)
    patch_word(accessor, address, slot, value)
    after = accessor.read_word(address, slot)

    print("\n📦 Target")
    print(f"  Address: {address}")
    print(f"  Base slot: {hex(base)} ({base})")
    if keys:
        print(f"  Keys: {', '.join(str(k) for k in keys)}")
    if args.array_index is not None:
        print(f"  Array index: {args.array_index}")
    print(f"  Slot key: {slot_hex(slot)}")

    print("\n🔢 Observations")
    print(f"  Before: {to_hex(before)}")
    print(f"  After:  {to_hex(after)}")

    ok = to_hex(after) == expected
    if ok:
        print("✅ Storage word now holds the requested value.")
    else:
        print(f"❌ Read-back mismatch; expected {expected}.")

    print(f"\n⏱️  Elapsed: {time.time() - start:.2f}s")
    return 0 if ok else 1

if __name__ == "__main__":
    sys.exit(main())
