# slot_layout_probe.py
# Find where a contract keeps a mapping (or a plain variable) by writing a
# sentinel under each candidate slot and asking the getter whether it shows
# up; optionally patch one entry at the discovered slot and verify it.

import os, sys, time, logging, argparse
from typing import List
from dotenv import load_dotenv

from interfaces import ABIS, bind, function_abi, getter
from slot_resolver import (
    DEFAULT_MAX_SLOT, DEFAULT_SENTINEL, ZERO_ADDRESS, compute_slot, discover_base_slot, discover_scalar_slot,
    parse_slot, parse_value, patch_mapping_value, patch_word, read_back_matches, word_int,
)
from state_accessor import NodeStateAccessor, checksum, connect

DEFAULT_RPC_URL = "http://127.0.0.1:8545"
MAX_CANDIDATES = 5000

def parse_slots_arg(arg: str) -> List[int]:
    """
    Accepts:
      - comma list: "0,1,0x2,5"
      - range: "0-255" (inclusive)
      - mix: "0-3,0x10,25"
    """
    slots: List[int] = []
    for chunk in arg.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        if "-" in chunk:
            a, b = chunk.split("-", 1)
            a_i, b_i = parse_slot(a), parse_slot(b)
            if a_i > b_i:
                a_i, b_i = b_i, a_i
            # guard large ranges by default
            if b_i - a_i > MAX_CANDIDATES:
                print(f"⚠️  Truncating large range {a_i}-{b_i} to {MAX_CANDIDATES} slots.")
                b_i = a_i + MAX_CANDIDATES
            slots.extend(range(a_i, b_i + 1))
        else:
            slots.append(parse_slot(chunk))
    # de-dup while preserving order
    seen, ordered = set(), []
    for s in slots:
        if s not in seen:
            seen.add(s); ordered.append(s)
    return ordered

def iter_candidates(args) -> List[int]:
    if args.slots:
        return parse_slots_arg(args.slots)
    # default: scan a small prefix range
    return list(range(0, min(args.max_slot, MAX_CANDIDATES)))

def check_getter(args, probe_keys: List, patch_keys: List) -> None:
    """Reject getter/flag combinations the probe could never satisfy."""
    arity = len(function_abi(args.interface, args.getter)["inputs"])
    if args.scalar:
        if arity:
            raise ValueError(f"--scalar needs a getter without arguments; {args.getter} takes {arity}.")
        if args.probe_key or patch_keys:
            raise ValueError("--probe-key/--patch-key cannot be combined with --scalar.")
        return
    if arity != len(probe_keys):
        raise ValueError(f"{args.getter} takes {arity} argument(s) but {len(probe_keys)} probe key(s) were given.")
    if patch_keys and len(patch_keys) != arity:
        raise ValueError(f"{args.getter} takes {arity} argument(s) but {len(patch_keys)} patch key(s) were given.")

def main(argv=None) -> int:
    load_dotenv()
    ap = argparse.ArgumentParser(description="Discover a mapping/variable base slot by sentinel probing on a dev node.")
    ap.add_argument("address", help="Contract address (0x...)")
    ap.add_argument("--interface", default="IERC20", choices=sorted(ABIS), help="ABI used to bind the contract")
    ap.add_argument("--getter", default="balanceOf", help="Getter that reflects the probed value (default balanceOf)")
    ap.add_argument("--scalar", action="store_true", help="Probe a plain variable (getter takes no arguments; no --probe-key/--patch-key)")
    ap.add_argument("--probe-key", action="append", default=[], help=f"Probe key(s), outer first (default {ZERO_ADDRESS})")
    ap.add_argument("--sentinel", default=hex(DEFAULT_SENTINEL), help="Value written while probing")
    ap.add_argument("--slots", help="Candidates: '0-99,0x100' (default: 0..max-slot-1)")
    ap.add_argument("--max-slot", type=int, default=DEFAULT_MAX_SLOT,
                    help=f"If --slots omitted, try 0..N-1 (default {DEFAULT_MAX_SLOT})")
    ap.add_argument("--patch-key", action="append", default=[], help="After discovery, patch the entry under these key(s)")
    ap.add_argument("--amount", help="Value to patch in after discovery")
    ap.add_argument("--rpc", default=os.getenv("RPC_URL", DEFAULT_RPC_URL), help="RPC URL (default from RPC_URL env)")
    ap.add_argument("--flavor", default=os.getenv("NODE_FLAVOR", "hardhat"), choices=["hardhat", "anvil"],
                    help="Dev node RPC namespace (default from NODE_FLAVOR env)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s - %(levelname)s - %(message)s")

    try:
        address = checksum(args.address)
        sentinel = parse_value(args.sentinel)
        probe_keys = [parse_value(k) for k in args.probe_key] or [ZERO_ADDRESS]
        patch_keys = [parse_value(k) for k in args.patch_key]
        amount = parse_value(args.amount) if args.amount is not None else None
        candidates = iter_candidates(args)
        check_getter(args, probe_keys, patch_keys)
    except ValueError as e:
        print(f"❌ {e}")
        return 2
    if patch_keys and amount is None:
        print("❌ --patch-key needs --amount."); return 2
    if not candidates:
        print("❌ No candidate slots to probe."); return 2

    try:
        w3 = connect(args.rpc)
    except ConnectionError:
        print("❌ Failed to connect to RPC. Set RPC_URL or --rpc.")
        return 1
    accessor = NodeStateAccessor(w3, args.flavor)
    print(f"🌐 Connected: chainId={w3.eth.chain_id}, tip={w3.eth.block_number}")

    if not accessor.get_code(address):
        print("⚠️ Target has no contract code (EOA?) — nothing to probe.")
        return 1

    read = getter(bind(w3, args.interface, address), args.getter)
    kind = "variable" if args.scalar else "mapping"
    print(f"🔎 Probing {len(candidates)} candidate {kind} slots from {hex(min(candidates))} to {hex(max(candidates))}")
    t0 = time.monotonic()

    if args.scalar:
        found = discover_scalar_slot(accessor, address, read, sentinel, candidates=candidates)
    else:
        found = discover_base_slot(accessor, address, read, probe_keys, sentinel, candidates=candidates)

    if found is None:
        print(f"❌ No candidate slot reflected the sentinel through {args.getter}().")
        print(f"⏱️ Elapsed: {time.monotonic() - t0:.2f}s")
        return 1
    print(f"✅ Found {args.interface}.{args.getter} slot: {found} ({hex(found)})")

    ok = True
    if amount is not None:
        if args.scalar:
            patch_word(accessor, address, found, amount)
            slot, result = found, read()
        elif patch_keys:
            slot = patch_mapping_value(accessor, address, found, patch_keys, amount)
            result = read(*patch_keys)
        else:
            slot = compute_slot(found, probe_keys)
            patch_word(accessor, address, slot, amount)
            result = read(*probe_keys)
        ok = read_back_matches(result, word_int(amount))
        print(f"📝 Patched slot {hex(slot)} → {args.getter} returns {result}")
        print("✅ Patch verified." if ok else "❌ Getter does not reflect the patched value.")

    print(f"⏱️ Elapsed: {time.monotonic() - t0:.2f}s")
    return 0 if ok else 1

if __name__ == "__main__":
    sys.exit(main())
