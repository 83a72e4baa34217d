from __future__ import annotations

import argparse

import uvicorn

from tenantgate.apps.api.main import create_app


def main() -> None:
    # Serve the admin API with env-driven settings for compose and local runs.
    parser = argparse.ArgumentParser(description="Run the tenantgate admin API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()
    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
