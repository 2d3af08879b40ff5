#!/usr/bin/env python3
"""
reMarkable Cloud client

Command line and MCP server for the reMarkable Cloud document-storage API.

Usage:
    # As MCP server (default)
    python server.py

    # List the library
    python server.py ls -r /

This is a backwards-compatible entry point. The actual CLI is in rm_cloud/cli.py.
"""

from rm_cloud.cli import main

if __name__ == "__main__":
    main()
