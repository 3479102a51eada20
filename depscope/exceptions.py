"""
Exception hierarchy for depscope.

Every error raised by depscope derives from :class:`DepScopeError`, which
carries a message plus a ``details`` mapping rendered after it, for
example ``Resource not found (url=..., status_code=404)``.

Few errors are fatal. An unreadable manifest, an invalid configuration
and a selection naming an unknown package stop a command. Everything else
(a bad manifest line, a failed lookup) is caught where it happens and
recorded on the line or package it affects.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

_MAX_BODY = 200


def _compact(**pairs: Any) -> Dict[str, Any]:
    """Keep only the pairs whose value is set."""
    return {key: value for key, value in pairs.items() if value is not None}


def _clip(text: Optional[str]) -> Optional[str]:
    if text is None or len(text) <= _MAX_BODY:
        return text
    return f"{text[:_MAX_BODY]}..."


class DepScopeError(Exception):
    """Root of the depscope exception hierarchy.

    Args:
        message: Human-readable description.
        details: Structured context, shown after the message by ``str()``.
    """

    __slots__ = ("message", "details")

    def __init__(self, message: str, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.details: Dict[str, Any] = dict(details or {})

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({context})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, details={self.details!r})"


class ParseError(DepScopeError):
    """A manifest line that could not be parsed.

    ``ManifestParser.parse_string`` collects these instead of raising
    them, so a single bad line never hides the rest of the file.
    """

    __slots__ = ("line_number", "line_content", "file_path")

    def __init__(
        self,
        message: str,
        *,
        line_number: Optional[int] = None,
        line_content: Optional[str] = None,
        file_path: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            _compact(line=line_number, content=line_content, file=file_path),
        )
        self.line_number = line_number
        self.line_content = line_content
        self.file_path = file_path


class NetworkError(DepScopeError):
    """An HTTP request failed or returned an unusable response.

    Args:
        message: Error description.
        url: Requested URL.
        status_code: HTTP status, when a response arrived.
        response_body: Raw body; only a clipped copy goes into ``details``.
    """

    __slots__ = ("url", "status_code", "response_body")

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            _compact(url=url, status_code=status_code, response=_clip(response_body)),
        )
        self.url = url
        self.status_code = status_code
        self.response_body = response_body


class RegistryError(NetworkError):
    """A metadata service answered, but not with what was asked for.

    Raised for missing resources (404) and for payloads that do not have
    the expected shape.
    """

    __slots__ = ("package_name",)

    def __init__(
        self,
        message: str,
        *,
        package_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.package_name = package_name
        if package_name is not None:
            self.details["package"] = package_name


class FileOperationError(DepScopeError):
    """Reading, writing or backing up a file failed."""

    __slots__ = ("file_path", "operation", "original_error")

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(
            message,
            _compact(
                path=file_path,
                operation=operation,
                original_error=str(original_error) if original_error else None,
            ),
        )
        self.file_path = file_path
        self.operation = operation
        self.original_error = original_error


class ConfigError(DepScopeError):
    """A configuration file is missing, malformed or holds invalid values."""

    __slots__ = ("config_path", "option")

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        option: Optional[str] = None,
    ) -> None:
        super().__init__(message, _compact(config=config_path, option=option))
        self.config_path = config_path
        self.option = option


class SelectionError(DepScopeError):
    """An upgrade selection or pin names packages the manifest does not declare."""

    __slots__ = ("package_names",)

    def __init__(
        self,
        message: str,
        *,
        package_names: Optional[Iterable[str]] = None,
    ) -> None:
        names = tuple(package_names or ())
        super().__init__(message, _compact(packages=", ".join(names) or None))
        self.package_names = names
