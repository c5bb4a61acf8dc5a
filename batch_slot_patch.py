#!/usr/bin/env python3
import csv, sys, os
from dotenv import load_dotenv
from web3 import Web3

from slot_resolver import compute_slot, parse_slot, parse_value, patch_word, slot_hex, word_hex
from state_accessor import NodeStateAccessor, checksum

# CLI: python batch_slot_patch.py input.csv > report.csv
# input columns: address,slot,keys,value  (keys: outer-first, "|"-separated, may be empty)
DEFAULT_RPC_URL = "http://127.0.0.1:8545"

FIELDNAMES = ["address","slot","keys","slot_key","value_before","value_after","matched"]

def parse_keys(s: str):
    return [parse_value(k) for k in s.split("|") if k.strip()]

def to_hex(b: bytes) -> str:
    return "0x" + b.hex()

def field(row, name: str) -> str:
    # DictReader fills missing trailing columns with None
    return (row.get(name) or "").strip()

def apply_rows(accessor, rows, out):
    writer = csv.DictWriter(out, fieldnames=FIELDNAMES)
    writer.writeheader()
    failures = 0

    for row in rows:
        try:
            address = checksum(field(row, "address"))
            base = parse_slot(field(row, "slot"))
            keys = parse_keys(field(row, "keys"))
            value = parse_value(field(row, "value"))
            slot = compute_slot(base, keys)
            expected = word_hex(value)
        except Exception as e:
            print(f"⚠️  Skipping invalid row {row}: {e}", file=sys.stderr)
            failures += 1
            continue

        before = accessor.read_word(address, slot)
        patch_word(accessor, address, slot, value)
        after = accessor.read_word(address, slot)
        matched = to_hex(after) == expected
        if not matched:
            failures += 1

        writer.writerow({
            "address": address,
            "slot": field(row, "slot"),
            "keys": field(row, "keys"),
            "slot_key": slot_hex(slot),
            "value_before": to_hex(before),
            "value_after": to_hex(after),
            "matched": "YES" if matched else "NO",
        })
    return failures

def main():
    if len(sys.argv) != 2:
        print("Usage: python batch_slot_patch.py <input.csv>", file=sys.stderr)
        sys.exit(2)

    inp = sys.argv[1]
    if not os.path.exists(inp):
        print(f"Input not found: {inp}", file=sys.stderr)
        sys.exit(2)

    load_dotenv()
    rpc_url = os.getenv("RPC_URL", DEFAULT_RPC_URL)
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
    if not w3.is_connected():
        print("❌ Failed to connect to RPC. Check RPC_URL.", file=sys.stderr)
        sys.exit(1)

    accessor = NodeStateAccessor(w3, os.getenv("NODE_FLAVOR", "hardhat"))
    with open(inp, newline="") as f:
        failures = apply_rows(accessor, csv.DictReader(f), sys.stdout)
    sys.exit(1 if failures else 0)

if __name__ == "__main__":
    main()
