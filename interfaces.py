# Minimal ABIs for the contracts the scripts poke at, bound by name.
from typing import Any, Callable, Dict, List

from web3 import Web3

from state_accessor import checksum


def _fn(name: str, inputs: List[str], outputs: List[str], mutability: str = "view") -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": f"arg{i}", "type": t} for i, t in enumerate(inputs)],
        "outputs": [{"name": "", "type": t} for t in outputs],
    }


_ERC20 = [
    _fn("name", [], ["string"]),
    _fn("symbol", [], ["string"]),
    _fn("decimals", [], ["uint8"]),
    _fn("totalSupply", [], ["uint256"]),
    _fn("balanceOf", ["address"], ["uint256"]),
    _fn("allowance", ["address", "address"], ["uint256"]),
    _fn("transfer", ["address", "uint256"], ["bool"], "nonpayable"),
    _fn("approve", ["address", "uint256"], ["bool"], "nonpayable"),
]

ABIS: Dict[str, List[Dict[str, Any]]] = {
    "IERC20": _ERC20,
    "Ownable": [_fn("owner", [], ["address"])],
    # Tether's owner lives in slot 0; issue() is owner-only.
    "IUSDT": _ERC20 + [
        _fn("owner", [], ["address"]),
        _fn("getOwner", [], ["address"]),
        _fn("issue", ["uint256"], [], "nonpayable"),
        _fn("redeem", ["uint256"], [], "nonpayable"),
    ],
    "ILendingPoolAddressesProviderRegistry": [
        _fn("owner", [], ["address"]),
        _fn("getAddressesProvidersList", [], ["address[]"]),
        _fn("getAddressesProviderIdByAddress", ["address"], ["uint256"]),
    ],
}


def bind(w3: Web3, name: str, address: str):
    try:
        abi = ABIS[name]
    except KeyError:
        raise KeyError(f"Unknown interface {name!r}; known: {', '.join(sorted(ABIS))}") from None
    return w3.eth.contract(address=checksum(address), abi=abi)


def _find_function(abi: List[Dict[str, Any]], fn_name: str) -> Dict[str, Any]:
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == fn_name:
            return entry
    raise ValueError(f"{fn_name} is not a function of this interface")


def function_abi(name: str, fn_name: str) -> Dict[str, Any]:
    """ABI entry of ``name.fn_name``; lets callers check arity before connecting."""
    if name not in ABIS:
        raise ValueError(f"Unknown interface {name!r}; known: {', '.join(sorted(ABIS))}")
    return _find_function(ABIS[name], fn_name)


def getter(contract, fn_name: str) -> Callable[..., Any]:
    """Read-only call of ``fn_name`` on ``contract`` as a plain callable."""
    _find_function(contract.abi, fn_name)
    fn = contract.get_function_by_name(fn_name)
    return lambda *args: fn(*args).call()
