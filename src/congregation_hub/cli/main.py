#!/usr/bin/env python3
"""
Main CLI entry point for Congregation Hub.
"""

import argparse
import asyncio
import json
import os
import sys
from typing import List, Optional

from .. import config
from ..__version__ import __version__, print_version_info
from ..errors import CongregationHubError
from ..messaging import BroadcastDispatcher, BroadcastProgress, BroadcastRequest, Recipient, Sender, build_channel, validate_request
from ..messaging.models import CHANNEL_DIRECT_MESSAGE, CHANNELS


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="congregation-hub",
        description="Church management API: people, districts, visitor pipeline, events and broadcast messaging",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  congregation-hub --version                                  Show version information
  congregation-hub serve --port 8000                          Start the API server
  congregation-hub broadcast --district-id D1 --subject Hi --body "See you Sunday"
  congregation-hub init-board                                 Create the default visitor board
  congregation-hub check-config                               Validate environment settings
        """,
    )

    parser.add_argument("--version", "-v", action="store_true", help="Show version information")
    parser.add_argument("--verbose", action="store_true", help="Show detailed version information")

    subparsers = parser.add_subparsers(dest="command", help="Available commands", metavar="COMMAND")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server", description="Run the FastAPI app with uvicorn")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # Broadcast command
    broadcast_parser = subparsers.add_parser(
        "broadcast", help="Send a broadcast", description="Send an email or direct message to a list of members"
    )
    broadcast_parser.add_argument("--channel", choices=CHANNELS, default="email", help="Delivery channel (default: email)")
    broadcast_parser.add_argument("--subject", help="Email subject")
    body_group = broadcast_parser.add_mutually_exclusive_group(required=True)
    body_group.add_argument("--body", help="Message body")
    body_group.add_argument("--body-file", help="Read the message body from a file")
    target_group = broadcast_parser.add_mutually_exclusive_group(required=True)
    target_group.add_argument("--district-id", help="Send to every member of a district")
    target_group.add_argument("--recipients-file", help="JSON list of {id, name, email} recipients")
    broadcast_parser.add_argument(
        "--google-token",
        default=os.getenv("GOOGLE_ACCESS_TOKEN"),
        help="Google OAuth access token for Gmail (default: $GOOGLE_ACCESS_TOKEN)",
    )
    broadcast_parser.add_argument("--sender-id", help="Member id sending direct messages")
    broadcast_parser.add_argument("--sender-name", default="Admin", help="Sender display name (default: Admin)")
    broadcast_parser.add_argument(
        "--batch-size", type=int, default=config.BROADCAST_BATCH_SIZE, help="Recipients per batch"
    )
    broadcast_parser.add_argument(
        "--delay-ms", type=int, default=config.BROADCAST_BATCH_DELAY_MS, help="Pause between batches in milliseconds"
    )

    # Init board command
    board_parser = subparsers.add_parser(
        "init-board", help="Create the default visitor board", description="Create the Sunday service pipeline board if missing"
    )
    board_parser.add_argument("--created-by", default="system", help="Creator recorded on the board")

    # Check config command
    subparsers.add_parser("check-config", help="Validate configuration", description="Check required environment variables")

    return parser


def handle_version(args: argparse.Namespace) -> None:
    """Handle version command."""
    if args.verbose:
        print_version_info(verbose=True)
    else:
        print(f"Congregation Hub v{__version__}")


def handle_serve(args: argparse.Namespace) -> int:
    """Handle serve command."""
    import uvicorn

    uvicorn.run("congregation_hub.backend.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def load_recipients(args: argparse.Namespace) -> List[Recipient]:
    if args.recipients_file:
        with open(args.recipients_file, encoding="utf-8") as f:
            rows = json.load(f)
        return [Recipient(id=r.get("id"), name=r.get("name") or "Unknown", email=r.get("email")) for r in rows]

    from ..services import MemberService

    return [Recipient.from_member(m) for m in MemberService().list_members(district_id=args.district_id)]


def print_progress(progress: BroadcastProgress) -> None:
    line = f"\r📤 {progress.sent + progress.failed}/{progress.total} ({progress.percent}%) sent={progress.sent} failed={progress.failed}"
    if progress.current:
        line += f" → {progress.current}"
    sys.stdout.write(line.ljust(100))
    sys.stdout.flush()


async def _report(progress: BroadcastProgress) -> None:
    print_progress(progress)


def handle_broadcast(args: argparse.Namespace) -> int:
    """Handle broadcast command."""
    if args.body_file:
        with open(args.body_file, encoding="utf-8") as f:
            body = f.read()
    else:
        body = args.body

    request = BroadcastRequest(
        channel=args.channel,
        body=body,
        subject=args.subject,
        recipients=load_recipients(args),
        sender=Sender(id=args.sender_id, name=args.sender_name) if args.sender_id else None,
        google_access_token=args.google_token,
    )
    channel = build_channel(args.channel)
    try:
        validate_request(request, channel)
    except CongregationHubError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2

    if args.channel == CHANNEL_DIRECT_MESSAGE:
        print(f"💬 Sending direct messages as {args.sender_name}")
    dispatcher = BroadcastDispatcher(channel, batch_size=args.batch_size, batch_delay_ms=args.delay_ms, on_progress=_report)
    result = asyncio.run(dispatcher.dispatch(request))

    print()
    print(f"✅ Sent: {result.sent}")
    print(f"❌ Failed: {result.failed}")
    if result.skipped_recipients:
        print(f"⏭️ Skipped (no {args.channel} address): {len(result.skipped_recipients)}")
    if result.failed_recipients:
        print(f"   Failed recipients: {', '.join(result.failed_recipients)}")
    return 1 if result.failed else 0


def handle_init_board(args: argparse.Namespace) -> int:
    """Handle init-board command."""
    from ..services import PipelineBoardService

    board = PipelineBoardService().initialize_default_board(created_by=args.created_by)
    print(f"📋 {board['name']} ({board['id']})")
    for stage in sorted(board.get("stages") or [], key=lambda s: s.get("order", 0)):
        print(f"   {stage['order']}. {stage['name']}")
    return 0


def handle_check_config(args: argparse.Namespace) -> int:
    """Handle check-config command."""
    if config.validate_config():
        print("✅ Configuration OK")
        return 0
    print("❌ Configuration incomplete, see log output")
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Handle version first
    if args.version:
        handle_version(args)
        return 0

    try:
        if args.command == "serve":
            return handle_serve(args)
        elif args.command == "broadcast":
            return handle_broadcast(args)
        elif args.command == "init-board":
            return handle_init_board(args)
        elif args.command == "check-config":
            return handle_check_config(args)
    except CongregationHubError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    # No command provided, show help
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
