# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2026 MuVeraAI Corporation
"""
Serve the HTTP API with uvicorn.

    python -m iam_policy.api --port 8000 --data-dir ./data
"""
from __future__ import annotations

import argparse
import logging

import uvicorn

from iam_policy.api.app import create_app


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="python -m iam_policy.api")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory for durable storage. Omit for in-memory storage.",
    )
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(data_dir=args.data_dir), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
