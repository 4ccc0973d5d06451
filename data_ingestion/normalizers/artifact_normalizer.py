"""
Data Ingestion - Artifact Normalizer.

============================================================
RESPONSIBILITY
============================================================
Normalizes raw provider records into NormalizedArtifact.

- Accepts the neutral fetcher shape ({id: {tokenId}, contract: {...}})
  as well as flat provider keys (token_id / token_address)
- Decides the metadata representation once (ParsedMetadata / RawMetadata)
- Resolves media URIs to gateway URLs
- Applies balance semantics per token standard

============================================================
DESIGN PRINCIPLES
============================================================
- Input: raw record from any fetcher
- Output: NormalizedArtifact or None
- Records without identity are dropped and counted, never raised
- No I/O

============================================================
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from uuid import UUID

from artifact_adapters.models import ChainFamily, get_network
from core.exceptions import MalformedRecordError
from data_ingestion.types import NormalizedArtifact, parse_metadata
from media_resolution import protocol


logger = logging.getLogger(__name__)


# Standards whose balance is a real quantity
MULTI_BALANCE_STANDARDS = frozenset({"ERC1155", "FUNGIBLEASSET", "FUNGIBLETOKEN"})

_EXPLICIT_TYPE_KEYS = ("media_type", "animation_type")


def _get(mapping: Any, *path: str) -> Any:
    value = mapping
    for key in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_balance(value: Any) -> int:
    try:
        balance = int(str(value).strip()) if value is not None else 1
    except ValueError:
        return 1
    return balance if balance > 0 else 1


class ArtifactNormalizer:
    """
    Converts raw provider records into canonical artifacts.

    Usage:
        normalizer = ArtifactNormalizer()
        artifacts, dropped = normalizer.normalize_batch(records, wallet_id, "polygon")
    """

    def __init__(self) -> None:
        self._dropped: List[MalformedRecordError] = []

    @property
    def dropped(self) -> List[MalformedRecordError]:
        """Errors for records dropped by the last normalize_batch call."""
        return list(self._dropped)

    def parse(
        self,
        raw: Dict[str, Any],
        wallet_id: Union[UUID, str],
        network: str,
    ) -> NormalizedArtifact:
        """
        Normalize one record.

        Raises:
            MalformedRecordError: Missing token id or contract address
        """
        if not isinstance(raw, Mapping):
            raise MalformedRecordError(
                "Record is not an object",
                network=network,
                raw_data=raw,
            )

        token_id = _as_text(_first(_get(raw, "id", "tokenId"), raw.get("token_id"), raw.get("tokenId")))
        if token_id is None:
            raise MalformedRecordError(
                "Record has no token id",
                network=network,
                field_name="token_id",
                raw_data=raw,
            )

        contract = raw.get("contract") if isinstance(raw.get("contract"), Mapping) else {}
        contract_address = _as_text(_first(
            contract.get("address"), raw.get("token_address"), raw.get("contract_address"),
        ))
        if contract_address is None:
            raise MalformedRecordError(
                "Record has no contract address",
                network=network,
                field_name="contract_address",
                raw_data=raw,
            )

        info = get_network(network)
        if info is None or info.family == ChainFamily.EVM:
            contract_address = contract_address.lower()

        metadata = parse_metadata(raw.get("metadata"))
        meta = metadata.as_dict()

        token_standard = _as_text(_first(
            contract.get("type"), raw.get("contract_type"), raw.get("contractType"),
        ))
        if token_standard and token_standard.upper().startswith("ERC"):
            token_standard = token_standard.upper()

        balance = 1
        if token_standard and token_standard.upper() in MULTI_BALANCE_STANDARDS:
            balance = _parse_balance(_first(raw.get("balance"), raw.get("amount")))

        title = _as_text(_first(raw.get("title"), meta.get("name"), raw.get("name")))
        if title is None:
            title = f"Token ID: {token_id}"

        media = raw.get("media")
        first_media = media[0] if isinstance(media, list) and media else None
        token_uri = _as_text(_first(raw.get("tokenUri"), raw.get("token_uri")))
        media_source = _first(
            _get(first_media, "gateway"),
            _get(first_media, "raw"),
            meta.get("image"),
            meta.get("image_url"),
            token_uri,
        )
        cover_source = _first(meta.get("image"), meta.get("image_url"))

        attributes = meta.get("attributes")

        return NormalizedArtifact(
            wallet_id=wallet_id,
            network=network,
            contract_address=contract_address,
            token_id=token_id,
            token_standard=token_standard,
            balance=balance,
            title=title,
            description=_as_text(_first(raw.get("description"), meta.get("description"))),
            media_url=protocol.resolve(media_source) if isinstance(media_source, str) else None,
            cover_image_url=protocol.resolve(cover_source) if isinstance(cover_source, str) else None,
            media_type=self._explicit_media_type(raw, meta),
            contract_name=_as_text(_first(contract.get("name"), raw.get("name"))),
            token_uri=token_uri,
            metadata=metadata,
            attributes=list(attributes) if isinstance(attributes, list) else [],
            is_spam=bool(_first(raw.get("possibleSpam"), raw.get("isSpam"), raw.get("possible_spam")) or False),
        )

    @staticmethod
    def _explicit_media_type(raw: Mapping[str, Any], meta: Mapping[str, Any]) -> Optional[str]:
        value = raw.get("media_type")
        if not value:
            properties = meta.get("properties")
            for key in _EXPLICIT_TYPE_KEYS:
                value = _get(properties, key) or meta.get(key)
                if value:
                    break
        return str(value).lower() if isinstance(value, str) and value else None

    def normalize(
        self,
        raw: Dict[str, Any],
        wallet_id: Union[UUID, str],
        network: str,
    ) -> Optional[NormalizedArtifact]:
        """Normalize one record, returning None when it lacks identity."""
        try:
            return self.parse(raw, wallet_id, network)
        except MalformedRecordError as e:
            logger.debug(f"Dropping malformed record on {network}: {e.message}")
            return None

    def normalize_batch(
        self,
        raws: Iterable[Dict[str, Any]],
        wallet_id: Union[UUID, str],
        network: str,
    ) -> Tuple[List[NormalizedArtifact], int]:
        """
        Normalize a batch of records.

        Duplicate natural keys within the batch collapse to the last
        record seen.

        Returns:
            (artifacts, dropped_count)
        """
        self._dropped = []
        by_key: Dict[Tuple[Any, str, str], NormalizedArtifact] = {}

        for raw in raws:
            try:
                artifact = self.parse(raw, wallet_id, network)
            except MalformedRecordError as e:
                self._dropped.append(e)
                continue
            by_key[artifact.natural_key] = artifact

        if self._dropped:
            logger.warning(
                f"Dropped {len(self._dropped)} malformed records on {network} "
                f"for wallet {wallet_id}"
            )
        return list(by_key.values()), len(self._dropped)


_default_normalizer = ArtifactNormalizer()


def normalize(
    raw: Dict[str, Any],
    wallet_id: Union[UUID, str],
    network: str,
) -> Optional[NormalizedArtifact]:
    """Module-level shortcut for ArtifactNormalizer().normalize."""
    return _default_normalizer.normalize(raw, wallet_id, network)


def normalize_batch(
    raws: Iterable[Dict[str, Any]],
    wallet_id: Union[UUID, str],
    network: str,
) -> Tuple[List[NormalizedArtifact], int]:
    return ArtifactNormalizer().normalize_batch(raws, wallet_id, network)
