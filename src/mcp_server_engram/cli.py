"""
Engram MCP CLI - brain initialization
"""

import json
from pathlib import Path
from typing import Any, Dict, List

from .runtime.config import CONFIG_FILENAME, DEFAULT_CONFIG_TEXT


def create_brain_structure(brain_path: Path) -> List[Path]:
    """Create the brain layout. Existing files are left untouched; returns what was created."""
    created = []
    for d in ("journal", "knowledge", "packs", "ledger"):
        path = brain_path / d
        if not path.exists():
            path.mkdir(parents=True)
            created.append(path)

    engrams_path = brain_path / "engrams.yaml"
    if not engrams_path.exists():
        engrams_path.write_text("engrams: []\n", encoding="utf-8")
        created.append(engrams_path)

    config_path = brain_path / CONFIG_FILENAME
    if not config_path.exists():
        config_path.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")
        created.append(config_path)

    return created


def get_engram_config_block(brain_path: Path) -> Dict[str, Any]:
    """Generate the MCP client config block for this server."""
    return {
        "command": "mcp-server-engram",
        "args": [],
        "env": {
            "ENGRAM_BRAIN_PATH": str(brain_path.absolute())
        }
    }


def main(argv=None):
    """Main CLI entry point."""
    import argparse
    from . import __version__

    parser = argparse.ArgumentParser(
        description="Engram MCP - persistent, decaying memory for AI agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  engram-init                    # Initialize .brain in current directory
  engram-init --path /my/project # Initialize at specific path
        """
    )
    parser.add_argument(
        "--path", "-p",
        type=str,
        default=".",
        help="Directory to create the .brain folder in (default: current directory)"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"mcp-server-engram {__version__}"
    )
    args = parser.parse_args(argv)

    brain_path = Path(args.path).absolute() / ".brain"
    created = create_brain_structure(brain_path)

    if created:
        print(f"Created brain at: {brain_path}")
        for path in created:
            print(f"  + {path.relative_to(brain_path)}")
    else:
        print(f"Brain already initialized at: {brain_path}")

    print("\nAdd to your MCP client config:")
    print(json.dumps({"mcpServers": {"engram": get_engram_config_block(brain_path)}}, indent=2))
    return 0


if __name__ == "__main__":
    main()
