import argparse
import os


def main():
    parser = argparse.ArgumentParser(description="Engram MCP Server")
    parser.add_argument("--brain", type=str, default=None,
                        help="Brain directory (overrides ENGRAM_BRAIN_PATH)")
    args = parser.parse_args()

    if args.brain:
        os.environ["ENGRAM_BRAIN_PATH"] = args.brain

    from . import mcp
    mcp.run()


if __name__ == "__main__":
    main()
