#!/usr/bin/env python3
"""
Artifact Pipeline - Command Line Entry Point.

============================================================
USAGE
============================================================
Ingest a wallet's artifacts (persisted when --user is given):
    python app.py ingest 0xabc... --networks eth,polygon --user alice

Offline run against a fixture file:
    python app.py ingest 0xabc... --networks polygon --fixture records.json

Resolve one media URI:
    python app.py resolve ipfs://Qm.../1.png

List stored artifacts:
    python app.py list 0xabc... --user alice

Configuration comes from the environment / .env (see core.config).

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Any, Dict, List, Optional

from artifact_adapters import FetcherRegistry, FixtureFetcher, create_default_registry
from core import (
    ArtifactPipelineError,
    LoggingNotifier,
    PipelineSettings,
    StaticAuthContext,
    configure_logging,
    load_settings,
)
from data_ingestion import IngestionOrchestrator, IngestionServiceConfig
from media_resolution import MediaResolver, MediaTypeDetector, ProxyCache, ProxyChain
from storage import (
    ArtifactRead,
    ArtifactRepository,
    PersistenceSync,
    WalletRepository,
    configure,
    get_session_factory,
    init_database,
    session_scope,
)


logger = logging.getLogger("app")


DEFAULT_NETWORKS = "eth,polygon"


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Artifact ingestion and media resolution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Fetch and store a wallet's artifacts")
    ingest.add_argument("address", help="Wallet address or ENS name")
    ingest.add_argument(
        "--networks",
        default=DEFAULT_NETWORKS,
        help=f"Comma-separated network ids (default: {DEFAULT_NETWORKS})",
    )
    ingest.add_argument("--user", default=None, help="Owner identity; enables persistence")
    ingest.add_argument("--nickname", default=None, help="Nickname for a new wallet")
    ingest.add_argument("--fixture", default=None, help="JSON file served instead of live providers")
    ingest.add_argument("--json", action="store_true", help="Print the result as JSON")

    resolve = subparsers.add_parser("resolve", help="Resolve a media URI to a renderable URL")
    resolve.add_argument("uri", help="Media URI (ipfs://, ar://, https://, data:)")
    resolve.add_argument("--mime", default=None, help="Known MIME type")
    resolve.add_argument("--no-probe", action="store_true", help="Skip content-type probing")
    resolve.add_argument("--json", action="store_true", help="Print the result as JSON")

    list_cmd = subparsers.add_parser("list", help="List stored artifacts of a wallet")
    list_cmd.add_argument("address", help="Wallet address")
    list_cmd.add_argument("--user", required=True, help="Owner identity")
    list_cmd.add_argument("--network", default=None, help="Only this network")

    return parser


def _build_registry(settings: PipelineSettings, fixture: Optional[str]) -> FetcherRegistry:
    if fixture:
        registry = FetcherRegistry(
            page_size=settings.fetcher.page_size,
            max_pages=settings.fetcher.max_pages,
        )
        registry.register(FixtureFetcher.from_file(fixture))
        return registry
    return create_default_registry(settings.fetcher)


def _ensure_wallet(user_id: str, address: str, nickname: Optional[str]) -> uuid.UUID:
    with session_scope() as session:
        repo = WalletRepository(session)
        wallet = repo.get_by_address(user_id, address)
        if wallet is None:
            wallet = repo.create(user_id, address, nickname=nickname)
            repo.commit()
        return wallet.id


async def run_ingest(args: argparse.Namespace, settings: PipelineSettings) -> int:
    networks = [n.strip() for n in args.networks.split(",") if n.strip()]

    async with _build_registry(settings, args.fixture) as registry:
        address = await registry.resolve_identity(args.address)

        persistence = None
        if args.user:
            wallet_id = _ensure_wallet(args.user, address, args.nickname)
            persistence = PersistenceSync(
                session_factory=get_session_factory(),
                batch_size=settings.persistence_batch_size,
            )
        else:
            wallet_id = uuid.uuid4()

        orchestrator = IngestionOrchestrator(
            registry=registry,
            persistence=persistence,
            auth=StaticAuthContext(args.user),
            notifier=LoggingNotifier("app.notifier"),
            config=IngestionServiceConfig.from_settings(settings),
        )
        result = await orchestrator.ingest(wallet_id, address, networks)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print(f"\nWallet:          {result.address}")
        print(f"Artifacts:       {result.total_ingested}")
        print(f"Active networks: {', '.join(result.active_networks) or '-'}")
        for network, reason in result.failures.items():
            print(f"Failed:          {network}: {reason}")
        if result.malformed_dropped:
            print(f"Dropped:         {result.malformed_dropped} malformed records")
        if result.persistence is not None:
            p = result.persistence
            print(f"Persisted:       {p.inserted} new, {p.updated} updated, {len(p.errors)} failed")

    return 0 if result.active_networks or not result.failures else 1


async def run_resolve(args: argparse.Namespace, settings: PipelineSettings) -> int:
    artifact: Dict[str, Any] = {"media_url": args.uri, "metadata": {}}
    if args.mime:
        artifact["metadata"]["mimeType"] = args.mime

    async with ProxyChain(settings.proxy, cache=ProxyCache()) as chain:
        resolver = MediaResolver(
            chain,
            detector=MediaTypeDetector(chain),
            probe_unknown=not args.no_probe,
        )
        media = await resolver.resolve_media(artifact)

    if args.json:
        print(json.dumps(media.to_dict(), indent=2))
    else:
        print(f"URL:    {media.url}")
        print(f"Type:   {media.type.value}")
        print(f"Method: {media.resolution_method.value}")
    return 0


def run_list(args: argparse.Namespace) -> int:
    with session_scope() as session:
        wallet = WalletRepository(session).get_by_address(args.user, args.address)
        if wallet is None:
            print(f"No wallet {args.address} for user {args.user}", file=sys.stderr)
            return 1
        rows: List[ArtifactRead] = [
            ArtifactRead.model_validate(a)
            for a in ArtifactRepository(session).list_for_wallet(wallet.id, network=args.network)
        ]

    for row in rows:
        spam = " [spam]" if row.is_spam else ""
        print(f"{row.network:<10} {row.contract_address} #{row.token_id}  {row.title or ''}{spam}")
    print(f"\n{len(rows)} artifacts")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except ArtifactPipelineError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(args.log_level or settings.log_level)

    if args.command in ("ingest", "list"):
        configure(args.database_url or settings.database_url)
        init_database()

    try:
        if args.command == "ingest":
            return asyncio.run(run_ingest(args, settings))
        if args.command == "resolve":
            return asyncio.run(run_resolve(args, settings))
        return run_list(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except ArtifactPipelineError as e:
        logger.error(f"{e}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
