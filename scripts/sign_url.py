#!/usr/bin/env python3
"""
Sign target URLs for the preview endpoint using HMAC-SHA1.

The secret (SECRET_KEY_BASE) never leaves your machine - only the signed
path is shared.

Usage:
    # Print the signed path
    python scripts/sign_url.py https://example.com/photo.jpg

    # Append a cosmetic filename
    python scripts/sign_url.py https://example.com/photo.jpg --filename photo.jpg

    # Full URL for a deployment
    python scripts/sign_url.py https://example.com/photo.jpg --host https://preview.example.com

Environment:
    SECRET_KEY_BASE: Signing secret (required unless --secret is given)

Output:
    /<sig>/<encoded_url>[/<filename>]
"""
import argparse
import os
import sys
from pathlib import Path

# Runnable from a checkout without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mediapreview.transport.security import signed_path  # noqa: E402


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Sign preview URLs with HMAC-SHA1",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("url", help="Target URL (http/https)")
    parser.add_argument("--filename", "-f", default="", help="Trailing filename (ignored by the server)")
    parser.add_argument("--host", "-H", default="", help="Prefix the path with this base URL")
    parser.add_argument("--secret", "-s", help="Signing secret (or use SECRET_KEY_BASE env var)")

    args = parser.parse_args(argv)

    secret = args.secret or os.environ.get("SECRET_KEY_BASE")
    if not secret:
        print("Error: SECRET_KEY_BASE environment variable not set", file=sys.stderr)
        print("Set it with: export SECRET_KEY_BASE=your-secret", file=sys.stderr)
        sys.exit(1)

    path = signed_path(secret, args.url, args.filename)
    print(f"{args.host.rstrip('/')}{path}")


if __name__ == "__main__":
    main()
