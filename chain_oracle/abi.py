"""
Minimal contract ABIs for the Celo core contracts read by CeloChainOracle.

Only the view functions the indexer calls are listed.
"""

CELO_REGISTRY_ADDRESS = "0x000000000000000000000000000000000000cE10"


def _view(name, inputs, outputs):
    return {
        "name": name,
        "type": "function",
        "stateMutability": "view",
        "constant": True,
        "payable": False,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


REGISTRY_ABI = [
    _view("getAddressForStringOrDie", [("identifier", "string")], [("", "address")]),
]

ACCOUNTS_ABI = [
    _view("getName", [("account", "address")], [("", "string")]),
    _view("getMetadataURL", [("account", "address")], [("", "string")]),
    _view("signerToAccount", [("signer", "address")], [("", "address")]),
]

VALIDATORS_ABI = [
    _view("getRegisteredValidators", [], [("", "address[]")]),
    _view("getRegisteredValidatorGroups", [], [("", "address[]")]),
    _view(
        "getValidatorGroup",
        [("account", "address")],
        [
            ("members", "address[]"),
            ("commission", "uint256"),
            ("nextCommission", "uint256"),
            ("nextCommissionBlock", "uint256"),
            ("sizeHistory", "uint256[]"),
            ("slashingMultiplier", "uint256"),
            ("lastSlashed", "uint256"),
        ],
    ),
    _view(
        "getMembershipHistory",
        [("account", "address")],
        [
            ("epochs", "uint256[]"),
            ("groups", "address[]"),
            ("lastRemovedFromGroupTimestamp", "uint256"),
            ("tail", "uint256"),
        ],
    ),
    _view("getEpochNumberOfBlock", [("blockNumber", "uint256")], [("", "uint256")]),
]

ELECTION_ABI = [
    _view("getCurrentValidatorSigners", [], [("", "address[]")]),
]

CONTRACT_ABIS = {
    "Accounts": ACCOUNTS_ABI,
    "Validators": VALIDATORS_ABI,
    "Election": ELECTION_ABI,
}
