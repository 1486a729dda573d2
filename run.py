#!/usr/bin/env python3
"""Start the mcpsmith API with uvicorn.

Host, port and auto-reload come from ``[server]`` in config; reload stays off
unless ``development.toml`` turns it on.
"""
import uvicorn

from src.api.dependencies import get_config


def main() -> None:
    server = get_config().server
    uvicorn.run(
        "src.main:app",
        host=server.host,
        port=server.port,
        reload=server.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
