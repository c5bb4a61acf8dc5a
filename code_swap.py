# code_swap.py
# Replace the runtime bytecode at a deployed address with the code of another
# (donor) contract. Storage at the target is kept, so the new code runs
# against the old state. Optionally impersonate an account, e.g. the owner,
# so privileged functions of the new code can be called.
import os, sys, time, logging, argparse
from dotenv import load_dotenv

from state_accessor import NodeStateAccessor, checksum, connect

DEFAULT_RPC_URL = "http://127.0.0.1:8545"

def swap_code(accessor, target: str, donor: str) -> bytes:
    code = accessor.get_code(donor)
    if not code:
        raise ValueError(f"Donor {donor} has no contract code.")
    accessor.set_code(target, code)
    return code

def main(argv=None) -> int:
    load_dotenv()
    ap = argparse.ArgumentParser(description="Copy a donor contract's runtime bytecode onto a target address.")
    ap.add_argument("target", help="Address whose code is replaced (0x...)")
    ap.add_argument("donor", help="Deployed contract carrying the new code (0x...)")
    ap.add_argument("--impersonate", help="Account to impersonate afterwards (e.g. the target's owner)")
    ap.add_argument("--fund-wei", type=int, help="Also set the impersonated account's ETH balance (wei)")
    ap.add_argument("--check-slot", type=lambda s: int(s, 0), action="append", default=[],
                    help="Slot to read before/after to confirm storage survived (repeatable)")
    ap.add_argument("--rpc", default=os.getenv("RPC_URL", DEFAULT_RPC_URL), help="RPC URL (default from RPC_URL env)")
    ap.add_argument("--flavor", default=os.getenv("NODE_FLAVOR", "hardhat"), choices=["hardhat", "anvil"],
                    help="Dev node RPC namespace (default from NODE_FLAVOR env)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s - %(levelname)s - %(message)s")

    try:
        target = checksum(args.target)
        donor = checksum(args.donor)
        impersonated = checksum(args.impersonate) if args.impersonate else None
    except ValueError as e:
        print(f"❌ {e}")
        return 2
    if args.fund_wei is not None and not impersonated:
        print("❌ --fund-wei needs --impersonate."); return 2

    try:
        w3 = connect(args.rpc)
    except ConnectionError:
        print("❌ Failed to connect to RPC. Check RPC_URL / --rpc.")
        return 1
    accessor = NodeStateAccessor(w3, args.flavor)
    print(f"🌐 Connected (chainId {w3.eth.chain_id})")

    t0 = time.time()
    old_code = accessor.get_code(target)
    if not old_code:
        print("⚠️ Target has no contract code — it will become a contract.")
    before = {s: accessor.read_word(target, s) for s in args.check_slot}

    try:
        new_code = swap_code(accessor, target, donor)
    except ValueError as e:
        print(f"❌ {e}")
        return 2

    installed = accessor.get_code(target)
    print(f"\n📦 Target {target}")
    print(f"  Old code: {len(old_code)} bytes")
    print(f"  New code: {len(installed)} bytes (donor {donor})")
    ok = installed == new_code
    print("✅ Bytecode replaced." if ok else "❌ Target code does not match the donor.")

    for s, v in before.items():
        after = accessor.read_word(target, s)
        same = "unchanged" if after == v else "CHANGED"
        print(f"  Slot {hex(s)}: 0x{after.hex()} ({same})")
        ok = ok and after == v

    if impersonated:
        accessor.impersonate(impersonated)
        if args.fund_wei is not None:
            accessor.set_balance(impersonated, args.fund_wei)
        print(f"🎭 Impersonating {impersonated}")

    print(f"\n⏱️  Elapsed: {time.time() - t0:.2f}s")
    return 0 if ok else 1

if __name__ == "__main__":
    sys.exit(main())
