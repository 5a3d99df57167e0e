import os
import json
import logging
import sys
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

# stdout carries the MCP JSON-RPC stream, so logs go to stderr
logging.basicConfig(
    level=os.environ.get("ENGRAM_LOG_LEVEL", "WARNING").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stderr)]
)
logger = logging.getLogger("engram")

MAX_CONTENT_SIZE = 1_000_000
MAX_TITLE_LENGTH = 200


def get_brain_path() -> Path:
    """Get the brain path from environment or default."""
    brain_path = os.environ.get("ENGRAM_BRAIN_PATH", ".brain")
    path = Path(brain_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_engrams_path(brain: Optional[Path] = None) -> Path:
    return (brain or get_brain_path()) / "engrams.yaml"


def get_packs_path(brain: Optional[Path] = None) -> Path:
    return (brain or get_brain_path()) / "packs"


def get_journal_path(brain: Optional[Path] = None) -> Path:
    return (brain or get_brain_path()) / "journal"


def get_knowledge_path(brain: Optional[Path] = None) -> Path:
    return (brain or get_brain_path()) / "knowledge"


def make_response(success: bool, data=None, error=None, error_code=None):
    """Standardized API response formatter."""
    return json.dumps({
        "success": success,
        "data": data,
        "error": error,
        "error_code": error_code,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    }, indent=2, default=str)


def build_hints(enabled: bool, next_step: Optional[str] = None,
                related: Optional[List[str]] = None,
                warning: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Follow-up guidance attached to tool results, or None when disabled/empty."""
    if not enabled:
        return None
    if not next_step and not related and not warning:
        return None
    hints: Dict[str, Any] = {}
    if next_step:
        hints["next"] = next_step
    if related:
        hints["related"] = related
    if warning:
        hints["warning"] = warning
    return hints


def validate_content(content: str) -> Optional[str]:
    if len(content) > MAX_CONTENT_SIZE:
        return f"Content too large: {len(content)} characters (max: {MAX_CONTENT_SIZE})"
    return None


def validate_title(title: Optional[str]) -> Optional[str]:
    if title and len(title) > MAX_TITLE_LENGTH:
        return f"Title too long: {len(title)} characters (max: {MAX_TITLE_LENGTH})"
    return None
