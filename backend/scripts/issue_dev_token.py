from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.services.config_loader import create_config_service
from backend.app.utils.security import create_access_token


def main() -> None:
    parser = argparse.ArgumentParser(description="Print a bearer token for local testing")
    parser.add_argument("--subject", default="dev-user")
    parser.add_argument("--email", default=None)
    parser.add_argument("--hours", type=int, default=24)
    args = parser.parse_args()

    secret = create_config_service().get().secrets.jwt_secret
    if not secret:
        raise SystemExit("JWT_SECRET is not configured")
    print(create_access_token(subject=args.subject, secret=secret, email=args.email, expires_hours=args.hours))


if __name__ == "__main__":
    main()
