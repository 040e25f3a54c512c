#!/usr/bin/env python3
"""CLI script to issue a bearer token for a user.

Usage:
    uv run python scripts/issue_token.py --user-id 4b1e7f2c-...-000000000001
    uv run python scripts/issue_token.py --user-id <uuid> --minutes 240

Signs with JWT_SECRET_KEY from the environment or .env file. Intended for
local development and smoke tests against a deployed instance; production
tokens come from the identity provider.
"""

from __future__ import annotations

import argparse
import os
import sys
import uuid
from datetime import timedelta

# Ensure project root is on sys.path so we can import src.meeting_tasks
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a bearer token for a user")
    parser.add_argument("--user-id", required=True, help="User UUID (token subject)")
    parser.add_argument("--minutes", type=int, default=60, help="Token lifetime in minutes")
    args = parser.parse_args()

    try:
        uuid.UUID(args.user_id)
    except ValueError:
        print(f"Error: --user-id must be a UUID, got {args.user_id!r}", file=sys.stderr)
        sys.exit(1)

    from src.meeting_tasks.core.security import create_access_token

    token = create_access_token(args.user_id, expires_delta=timedelta(minutes=args.minutes))
    print(token)


if __name__ == "__main__":
    main()
