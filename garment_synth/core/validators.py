"""Input checks for image references and free-text prompts."""

from urllib.parse import urlparse

MAX_PROMPT_LENGTH = 1000


def is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def validate_image_url(url: str | None) -> bool:
    """Accept http(s) URLs and embedded data/blob references, reject anything else."""
    if not url or not isinstance(url, str):
        return False

    if url.startswith("data:image/") or url.startswith("blob:"):
        return True

    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def sanitize_prompt(prompt: str, max_length: int = MAX_PROMPT_LENGTH) -> str:
    """Strip angle brackets and truncate to a fixed maximum length."""
    return prompt.replace("<", "").replace(">", "")[:max_length]


__all__ = ["MAX_PROMPT_LENGTH", "is_url", "validate_image_url", "sanitize_prompt"]
