import fnmatch
import re
from typing import Union


def path_is_match(path: Union[str, list[str]], request_path: str) -> bool:
    """
    Check if request path matches the specified path pattern(s).

    Supports:
    - Exact matching: "/api/users"
    - Glob patterns: "/api/users/*", "/api/*/profile"
    - Regex patterns (prefix with 'regex:'): "regex:^/api/users/\\d+$"
    - List of any of the above

    Args:
        path: Path pattern(s) to match against. Can be a string or list of strings.
        request_path: Actual request path to check.

    Returns:
        bool: True if paths match, False otherwise.
    """
    if isinstance(path, str):
        if path.startswith("regex:"):
            return re.match(path[len("regex:") :], request_path) is not None
        if "*" in path or "?" in path or "[" in path:
            return fnmatch.fnmatchcase(request_path, path)
        return path == request_path
    elif isinstance(path, list):
        return any(path_is_match(p, request_path) for p in path)
    return False
