#!/usr/bin/env python3
"""
CLI entry point for the reMarkable Cloud client.

Usage:
    # Interactive setup (recommended)
    rm-cloud setup

    # Convert one-time code to token (run once)
    rm-cloud register <one-time-code>

    # Work with the library
    rm-cloud ls [-r] [PATH ...]
    rm-cloud info PATH ...
    rm-cloud pull PATH ... [-o DIR]
    rm-cloud mkdir PATH
    rm-cloud put FILE [FOLDER] [--name NAME]

    # As MCP server (default when no command is given)
    rm-cloud serve
"""

import argparse
import json
import logging
import sys
import webbrowser
import zipfile
from importlib.metadata import version as pkg_version
from pathlib import Path
from typing import List
from uuid import uuid4

from rm_cloud._style import error, header, listing, step, success
from rm_cloud.errors import RemarkableError

REMARKABLE_CONNECT_URL = "https://my.remarkable.com/device/browser/connect"

try:
    _VERSION = pkg_version("rm-cloud")
except Exception:
    _VERSION = "dev"


def _fail(message: str) -> None:
    print(error(message), file=sys.stderr)
    sys.exit(1)


def _handle_setup() -> None:
    """Interactive setup: open browser, prompt for code, register."""
    print(header(_VERSION))
    print()
    print(step(1, f"Opening {REMARKABLE_CONNECT_URL}..."))
    print("           If the browser doesn't open, visit the URL manually.")
    print()

    try:
        webbrowser.open(REMARKABLE_CONNECT_URL)
    except Exception:
        pass  # Browser open is best-effort

    try:
        code = input(step(2, "Enter the one-time code: ")).strip()
    except (EOFError, KeyboardInterrupt):
        print("\nSetup cancelled.")
        sys.exit(0)

    if not code:
        print("No code entered. Setup cancelled.", file=sys.stderr)
        sys.exit(1)

    from rm_cloud.api import REMARKABLE_STATE_FILE, register_and_get_token

    try:
        print()
        print("           Registering...")
        register_and_get_token(code)
    except RemarkableError as e:
        _fail(f"Registration failed: {e}")
    print(success("Successfully registered!"))
    print(f"           Token saved to {REMARKABLE_STATE_FILE}")


def _handle_register(code: str, quiet: bool) -> None:
    from rm_cloud.api import register_and_get_token

    try:
        token = register_and_get_token(code)
    except RemarkableError as e:
        _fail(f"Registration failed: {e}")

    if quiet:
        print(token)
        return
    print(header(_VERSION))
    print(success("Successfully registered!"))
    print()
    print("  Use the token with the MCP server:")
    print(f"  REMARKABLE_TOKEN='{token}' rm-cloud serve")


def _client_and_index(with_blob: bool = False):
    from rm_cloud import api

    client = api.get_client()
    if client is None:
        _fail("Not authenticated. Run: rm-cloud setup")
    index = client.list_documents(with_blob=with_blob)
    api.save_client_state(client)
    return client, index


def _handle_ls(paths: List[str], recursive: bool) -> None:
    from rm_cloud.models import ROOT, Parent

    _, index = _client_and_index()
    for path in paths or ["/"]:
        if path.strip("/"):
            doc = index.resolve_path(path)
            if doc is None:
                print(f"Couldn't find {path}")
                continue
            if not doc.is_folder:
                print(listing(doc.visible_name, str(doc.id), False))
                continue
            parent = Parent.node(doc.id)
        else:
            parent = ROOT

        if recursive:
            for depth, doc in index.walk(parent):
                print(listing(doc.visible_name, str(doc.id), doc.is_folder, "  " * depth))
        else:
            for doc in index.children(parent):
                print(listing(doc.visible_name, str(doc.id), doc.is_folder))


def _handle_info(paths: List[str]) -> None:
    from rm_cloud.paths import get_item_path

    _, index = _client_and_index()
    for path in paths:
        doc = index.resolve_path(path)
        if doc is None:
            print(f"Couldn't find document '{path}'")
            continue
        record = doc.to_json()
        record["Path"] = get_item_path(doc, index)
        print(json.dumps(record, indent=2))


def _handle_pull(paths: List[str], output_dir: Path) -> None:
    client, index = _client_and_index(with_blob=True)
    for path in paths:
        doc = index.resolve_path(path)
        if doc is None:
            print(f"Couldn't find document '{path}'")
            continue
        if doc.is_folder:
            print(f"Skipping folder '{path}'")
            continue
        target = output_dir / f"{doc.visible_name}.zip"
        target.write_bytes(client.download(doc))
        print(success(f"{path} -> {target}"))


def _handle_mkdir(path: str) -> None:
    from rm_cloud import upload
    from rm_cloud.paths import base_name, parent_path

    client, index = _client_and_index()
    name = base_name(path)
    if not name:
        _fail("A folder name is required")
    parent = index.resolve_folder(parent_path(path))
    if parent is None:
        _fail(f"Couldn't find folder '{parent_path(path)}'")
    if index.child_named(parent, name) is not None:
        _fail(f"'{path}' already exists")

    folder_id = upload.create_folder(client, uuid4(), name, parent)
    print(success(f"Created {path} ({folder_id})"))


def _handle_put(file: Path, folder: str, name: str) -> None:
    from rm_cloud import upload

    client, index = _client_and_index()
    parent = index.resolve_folder(folder)
    if parent is None:
        _fail(f"Couldn't find folder '{folder}'")

    try:
        archive = zipfile.ZipFile(file)
    except (OSError, zipfile.BadZipFile) as e:
        _fail(f"Cannot open {file}: {e}")
    with archive:
        doc_id = upload.upload_notebook(client, uuid4(), name or file.stem, parent, archive)
    print(success(f"Uploaded {file} ({doc_id})"))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rm-cloud",
        description="reMarkable Cloud client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Interactive setup (recommended)
  rm-cloud setup

  # List the library recursively
  rm-cloud ls -r /

  # Upload a notebook archive into /Work
  rm-cloud put "Meeting Notes.zip" /Work

  # Run as MCP server with token from environment
  REMARKABLE_TOKEN="your-token" rm-cloud serve
""",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log HTTP and protocol steps")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("setup", help="Interactive setup: open browser, enter code, save token")

    register = sub.add_parser("register", help="Register with a one-time code and print the token")
    register.add_argument("code", metavar="CODE")
    register.add_argument(
        "--quiet", action="store_true", help="Output only the raw token JSON (for scripting)"
    )

    ls = sub.add_parser("ls", help="List files")
    ls.add_argument("-r", "--recursive", action="store_true", help="List files recursively")
    ls.add_argument("paths", nargs="*")

    info = sub.add_parser("info", help="Describe files in detail")
    info.add_argument("paths", nargs="+")

    pull = sub.add_parser("pull", help="Download document archives")
    pull.add_argument("paths", nargs="+")
    pull.add_argument("-o", "--output", type=Path, default=Path("."), help="Output directory")

    mkdir = sub.add_parser("mkdir", help="Create a folder")
    mkdir.add_argument("path")

    put = sub.add_parser("put", help="Upload a document archive (.zip)")
    put.add_argument("file", type=Path)
    put.add_argument("folder", nargs="?", default="/")
    put.add_argument("--name", help="Visible name (default: file name)")

    sub.add_parser("serve", help="Run the MCP server (default)")
    return parser


def main():
    """Main entry point - handle CLI args or run MCP server."""
    args = _build_parser().parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
        )

    if args.command == "setup":
        _handle_setup()
        return
    if args.command == "register":
        _handle_register(args.code, args.quiet)
        return
    if args.command in (None, "serve"):
        # MCP server mode - only now import the full server
        from rm_cloud.server import run

        run()
        return

    try:
        if args.command == "ls":
            _handle_ls(args.paths, args.recursive)
        elif args.command == "info":
            _handle_info(args.paths)
        elif args.command == "pull":
            _handle_pull(args.paths, args.output)
        elif args.command == "mkdir":
            _handle_mkdir(args.path)
        elif args.command == "put":
            _handle_put(args.file, args.folder, args.name)
    except RemarkableError as e:
        _fail(str(e))


if __name__ == "__main__":
    main()
