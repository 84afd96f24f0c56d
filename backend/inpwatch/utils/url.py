"""URL utility functions."""
from inpwatch.constants import PAGE_PATH_MAX_LENGTH


def strip_query(page_url: str) -> str:
    """Drop everything from the first ``?`` onwards."""
    return page_url.split("?", 1)[0]


def page_path(page_url: str) -> str:
    """
    Rollup key for a reported page URL.

    Args:
        page_url: URL or path as reported by the client

    Returns:
        The URL without its query string, truncated to the column width
    """
    return strip_query(page_url or "")[:PAGE_PATH_MAX_LENGTH]


def display_path(path: str) -> str:
    """Normalize a stored page path to a single leading slash."""
    return "/" + path.lstrip("/")
