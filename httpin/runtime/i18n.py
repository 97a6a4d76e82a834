import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).parent.parent / "locales"
DEFAULT_LANG = "en-US"

_PARAM_PATTERN = re.compile(r"__([A-Za-z0-9_]+)__")


class MessageCatalog:
    """
    Dotted-key message lookup with ``__name__`` placeholders.

    Usage:
        catalog = MessageCatalog.load()
        catalog.translate("httpin.errors.deprecated-call", method="msg.res.send")
    """

    def __init__(self, messages: Dict[str, Any]):
        self.messages = messages

    @classmethod
    def load(cls, lang: str = DEFAULT_LANG, locales_dir: Optional[Path] = None) -> "MessageCatalog":
        locales_dir = Path(locales_dir or LOCALES_DIR)
        path = locales_dir / lang / "messages.json"
        if not path.exists():
            logger.warning(f"No message catalog for {lang}, falling back to {DEFAULT_LANG}")
            path = locales_dir / DEFAULT_LANG / "messages.json"
        with open(path, "r", encoding="utf-8") as f:
            return cls(json.load(f))

    def lookup(self, key: str) -> Optional[str]:
        node: Any = self.messages
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node if isinstance(node, str) else None

    def translate(self, key: str, **params: Any) -> str:
        template = self.lookup(key)
        if template is None:
            # Unknown keys are shown as-is so missing entries are visible
            return key

        def substitute(match):
            name = match.group(1)
            return str(params[name]) if name in params else match.group(0)

        return _PARAM_PATTERN.sub(substitute, template)
