"""
Wallet Repository.

============================================================
PURPOSE
============================================================
Wallet rows per user. Addresses are unique per user regardless
of case. Deleting a wallet deletes its artifacts.

============================================================
"""

import uuid
from typing import List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from artifact_adapters.base import is_valid_address
from artifact_adapters.models import ChainFamily
from storage.models.artifacts import Wallet
from storage.repositories.artifacts import as_uuid
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import ValidationError


def detect_chain_family(address: str) -> Optional[ChainFamily]:
    """Chain family an address belongs to, or None."""
    if is_valid_address(address, ChainFamily.EVM):
        return ChainFamily.EVM
    if is_valid_address(address, ChainFamily.SOLANA):
        return ChainFamily.SOLANA
    return None


class WalletRepository(BaseRepository[Wallet]):
    """Repository for wallets."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, Wallet, "wallets")

    def create(
        self,
        user_id: str,
        address: str,
        nickname: Optional[str] = None,
        chain_family: Optional[Union[ChainFamily, str]] = None,
    ) -> Wallet:
        """
        Create a wallet.

        Raises:
            ValidationError: Address does not match any chain family
            DuplicateRecordError: User already tracks this address
        """
        address = (address or "").strip()
        family = ChainFamily(chain_family) if chain_family else detect_chain_family(address)
        if family is None or not is_valid_address(address, family):
            raise ValidationError(
                repository_name=self._repository_name,
                operation="create",
                field="address",
                reason=f"{address!r} is not a valid wallet address",
            )

        wallet = Wallet(
            user_id=user_id,
            address=address,
            address_key=address.lower(),
            chain_family=family.value,
            nickname=nickname,
            active_networks=[],
        )
        self._add(wallet)
        self._logger.info(f"Created wallet {wallet.id} ({family.value}) for user {user_id}")
        return wallet

    def get(self, wallet_id: Union[uuid.UUID, str]) -> Optional[Wallet]:
        return self._get_by_id(as_uuid(wallet_id))

    def get_by_address(self, user_id: str, address: str) -> Optional[Wallet]:
        stmt = select(Wallet).where(
            Wallet.user_id == user_id,
            Wallet.address_key == address.strip().lower(),
        )
        return self._execute_scalar(stmt)

    def list_for_user(self, user_id: str) -> List[Wallet]:
        stmt = select(Wallet).where(Wallet.user_id == user_id).order_by(Wallet.created_at)
        return self._execute_query(stmt)

    def update_active_networks(
        self,
        wallet_id: Union[uuid.UUID, str],
        networks: Sequence[str],
    ) -> Wallet:
        """
        Replace the wallet's active network list.

        Raises:
            RecordNotFoundError: Unknown wallet
        """
        wallet = self._get_by_id_or_raise(as_uuid(wallet_id))
        wallet.active_networks = list(networks)
        self._flush("update_active_networks")
        return wallet

    def delete(self, wallet_id: Union[uuid.UUID, str]) -> bool:
        """Delete a wallet and, by cascade, its artifacts."""
        wallet = self.get(wallet_id)
        if wallet is None:
            return False
        self._delete(wallet)
        self._logger.info(f"Deleted wallet {wallet_id} and its artifacts")
        return True
