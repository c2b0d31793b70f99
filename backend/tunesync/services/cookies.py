import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict

logger = logging.getLogger(__name__)

NETSCAPE_HEADERS = ("# Netscape HTTP Cookie File", "# HTTP Cookie File")
COOKIE_FIELDS = 7


class InvalidCookiesFile(ValueError):
    pass


def validate_cookies(text: str) -> int:
    """Return the number of cookie lines in a Netscape cookies.txt body."""
    count = 0
    for line in text.splitlines():
        line = line.strip()
        if not line or (line.startswith("#") and not line.startswith("#HttpOnly_")):
            continue
        if len(line.split("\t")) != COOKIE_FIELDS:
            raise InvalidCookiesFile(f"Malformed cookie line: {line[:40]!r}")
        count += 1
    if count == 0:
        raise InvalidCookiesFile("No cookies found")
    return count


def save_cookies(path: str, content: bytes) -> Dict[str, Any]:
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidCookiesFile("Cookies file must be UTF-8 text") from e

    count = validate_cookies(text)
    if not text.lstrip().startswith(NETSCAPE_HEADERS):
        # yt-dlp refuses files without the header
        text = f"{NETSCAPE_HEADERS[0]}\n{text}"

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(text)
    os.replace(tmp_path, path)
    logger.info(f"Saved {count} cookies to {path}")
    return {"saved": True, "cookies": count, **cookies_status(path)}


def cookies_status(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {"exists": False, "path": path}
    stat = os.stat(path)
    return {
        "exists": True,
        "path": path,
        "size": stat.st_size,
        "modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
    }
