"""RegistryClient: Read/write interface to the on-chain rate registry.

``RegistryClient`` is the abstract interface the pusher depends on;
``Web3RegistryClient`` implements it against the DOORRateOracle contract.
All methods are blocking.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from web3 import Web3

from .ContractUtility import ContractUtility

if TYPE_CHECKING:
    from web3.contract import Contract

logger = logging.getLogger(__name__)

REGISTRY_CONTRACT_NAME = "DOORRateOracle"


@dataclass(frozen=True)
class OnChainSource:
    """One row of the registry's rate source table.

    :ivar name: Source name as stored on-chain.
    :ivar weight: Aggregation weight in basis points.
    :ivar rate: Last pushed rate in basis points.
    :ivar last_update: Unix timestamp of the last update.
    :ivar is_active: Whether the source contributes to the DOR.
    """

    name: str
    weight: int
    rate: int
    last_update: int
    is_active: bool


@dataclass(frozen=True)
class SubmittedTx:
    """Confirmation data of a submitted transaction.

    :ivar tx_hash: 0x-prefixed transaction hash.
    :ivar block_number: Block the transaction was included in.
    :ivar gas_used: Gas consumed by the transaction.
    :ivar status: Receipt status (1 = success, 0 = reverted).
    """

    tx_hash: str
    block_number: int
    gas_used: int
    status: int

    @property
    def succeeded(self) -> bool:
        """Check if the receipt reports success."""
        return self.status == 1


class RegistryClient(ABC):
    """Abstract interface to the rate registry contract."""

    @abstractmethod
    def get_dor(self) -> int:
        """Read the current aggregate rate in basis points."""
        pass

    @abstractmethod
    def get_all_sources(self) -> list[OnChainSource]:
        """Read the per-source weight/rate/last-update table."""
        pass

    @abstractmethod
    def is_authorized(self) -> bool:
        """Check whether the active credential may push updates."""
        pass

    @abstractmethod
    def estimate_gas(self, source_ids: list[int], rates: list[int]) -> int:
        """Estimate gas for a batched update.

        :param source_ids: On-chain source ids.
        :param rates: New rates in basis points, aligned with ``source_ids``.
        :returns: Estimated gas units.
        """
        pass

    @abstractmethod
    def gas_price(self) -> int:
        """Return the current gas price in wei."""
        pass

    @abstractmethod
    def submit_batch(
        self, source_ids: list[int], rates: list[int], gas_limit: int
    ) -> SubmittedTx:
        """Submit a batched rate update and wait for one confirmation.

        :param source_ids: On-chain source ids.
        :param rates: New rates in basis points, aligned with ``source_ids``.
        :param gas_limit: Gas limit for the transaction.
        :returns: Confirmation data.
        """
        pass

    @property
    def address(self) -> str | None:
        """Address of the signing account, if any."""
        return None


class Web3RegistryClient(RegistryClient):
    """Registry client backed by web3.py.

    :ivar w3: Web3 instance (signing middleware installed if a key is set).
    :ivar contract: DOORRateOracle contract instance.
    :ivar receipt_timeout: Seconds to wait for a confirmation.
    """

    def __init__(
        self,
        w3: Web3,
        oracle_address: str,
        receipt_timeout: float = 120.0,
    ) -> None:
        """Initialize the client.

        :param w3: Web3 instance.
        :param oracle_address: Address of the DOORRateOracle contract.
        :param receipt_timeout: Seconds to wait for a receipt (default: 120).
        """
        self.w3 = w3
        self.receipt_timeout = receipt_timeout
        abi = ContractUtility.get_contract(REGISTRY_CONTRACT_NAME)
        self.contract: Contract = w3.eth.contract(
            address=Web3.to_checksum_address(oracle_address), abi=abi
        )

    @classmethod
    def from_network(
        cls,
        network_name: str,
        oracle_address: str,
        private_key: str | None = None,
    ) -> Web3RegistryClient:
        """Build a client for a named network.

        :param network_name: Network name (mantle, mantle-sepolia, localnet).
        :param oracle_address: Address of the DOORRateOracle contract.
        :param private_key: Updater private key.
        :returns: Configured client.
        """
        contract_utility = ContractUtility(network_name, private_key=private_key)
        return cls(contract_utility.w3, oracle_address)

    @property
    def address(self) -> str | None:
        """Address of the default signing account."""
        return self.w3.eth.default_account or None

    def get_dor(self) -> int:
        return int(self.contract.functions.getDOR().call())

    def get_all_sources(self) -> list[OnChainSource]:
        rows = self.contract.functions.getAllRateSources().call()
        return [
            OnChainSource(
                name=row[0],
                weight=int(row[1]),
                rate=int(row[2]),
                last_update=int(row[3]),
                is_active=bool(row[4]),
            )
            for row in rows
        ]

    def is_authorized(self) -> bool:
        if not self.address:
            return False
        return bool(self.contract.functions.authorizedUpdaters(self.address).call())

    def estimate_gas(self, source_ids: list[int], rates: list[int]) -> int:
        return int(
            self.contract.functions.batchUpdateRates(source_ids, rates).estimate_gas(
                {"from": self.address}
            )
        )

    def gas_price(self) -> int:
        return int(self.w3.eth.gas_price)

    def submit_batch(
        self, source_ids: list[int], rates: list[int], gas_limit: int
    ) -> SubmittedTx:
        tx_hash = self.contract.functions.batchUpdateRates(source_ids, rates).transact(
            {"from": self.address, "gas": gas_limit}
        )
        logger.info(f"TX submitted: {Web3.to_hex(tx_hash)}")

        tx_receipt = self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.receipt_timeout
        )
        return SubmittedTx(
            tx_hash=Web3.to_hex(tx_receipt["transactionHash"]),
            block_number=int(tx_receipt["blockNumber"]),
            gas_used=int(tx_receipt["gasUsed"]),
            status=int(tx_receipt["status"]),
        )
