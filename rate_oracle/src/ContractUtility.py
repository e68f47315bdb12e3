"""ContractUtility: Web3 initialization, signing credential and ABI loading."""

import json
import os
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.middleware import SignAndSendRawMiddlewareBuilder

NETWORKS = {
    "mantle": "https://rpc.mantle.xyz",
    "mantle-sepolia": "https://rpc.sepolia.mantle.xyz",
    "localnet": "http://localhost:8545",
}

# Well-known development account used on localnet when no key is configured.
LOCALNET_PRIVATE_KEY = (
    "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
)


class ContractUtility:
    """Utility for Web3 connection and contract ABI loading.

    :ivar network: Network RPC URL.
    :ivar w3: Web3 instance, signing with the configured account if any.
    :ivar account: Local signing account, or None for read-only use.
    """

    def __init__(
        self,
        network_name: str,
        private_key: str | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        """Initialize the contract utility.

        :param network_name: Name of the network to connect to, or an RPC URL.
        :param private_key: Hex private key of the updater account.
        :param request_timeout: Timeout for RPC requests in seconds.
        """
        # RPC_URL env var overrides the default for the network
        self.network = os.environ.get("RPC_URL") or NETWORKS.get(network_name, network_name)

        self.w3 = Web3(
            Web3.HTTPProvider(self.network, request_kwargs={"timeout": request_timeout})
        )

        if not private_key and network_name == "localnet":
            private_key = LOCALNET_PRIVATE_KEY

        self.account: LocalAccount | None = None
        if private_key:
            self.account = Account.from_key(private_key)
            self.w3.middleware_onion.add(
                SignAndSendRawMiddlewareBuilder.build(self.account)
            )
            self.w3.eth.default_account = self.account.address

    @staticmethod
    def get_contract(contract_name: str) -> list:
        """Load the ABI of a contract from the packaged contracts folder.

        :param contract_name: Name of the contract (e.g., "DOORRateOracle").
        :returns: Contract ABI.
        """
        output_path = (
            Path(__file__).parent.parent / "contracts" / f"{contract_name}.json"
        ).resolve()

        with open(output_path, "r") as file:
            contract_data = json.load(file)

        return contract_data["abi"]
