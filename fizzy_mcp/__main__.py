import logging
import sys

from dotenv import load_dotenv


def main() -> None:
    # Load .env before anything reads FIZZY_* settings.
    load_dotenv()

    from fizzy_mcp.config import get_log_level
    from fizzy_mcp.server import mcp

    # stdout carries the MCP protocol, so logs go to stderr.
    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
