"""Content normalization applied before anything is written to disk."""


def sanitize_content(content: str) -> str:
    """
    Normalize file content for writing.

    NUL characters are dropped and CRLF / lone CR line endings become LF.
    The function is idempotent.

    Example:
        >>> sanitize_content("Hello\\0World\\r\\nLine\\r")
        'HelloWorld\\nLine\\n'
    """
    return content.replace("\0", "").replace("\r\n", "\n").replace("\r", "\n")
