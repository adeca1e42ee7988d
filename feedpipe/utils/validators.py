"""
FeedPipe Input Validators
=========================

Validation utilities for source URLs, file paths, identifiers and parser
options, raising ValidationError with field context.
"""

import codecs
import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse, urlunparse

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and normalization utilities."""

    ALLOWED_SCHEMES = {"http", "https"}

    @classmethod
    def validate_source_url(cls, url: str) -> str:
        """Validate and normalize an HTTP source URL.

        Args:
            url: URL to validate

        Returns:
            Normalized URL

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url",
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {str(e)}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        return urlunparse(parsed._replace(
            scheme=parsed.scheme.lower(),
            netloc=parsed.netloc.lower(),
            path=parsed.path or "/",
            fragment="",
        ))


class ConfigValidator:
    """Validation for configurable identities and parser options."""

    IDENTIFIER_PATTERN = re.compile(r"^[a-z0-9_]+$")

    @classmethod
    def validate_identifier(cls, identifier: str, field_name: str = "id") -> str:
        """Validate a machine name such as an importer id.

        Raises:
            ValidationError: If the identifier is empty or not a machine name
        """
        if not identifier or not isinstance(identifier, str):
            raise ValidationError(
                "Identifier is required",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name=field_name,
            )

        if not cls.IDENTIFIER_PATTERN.match(identifier):
            raise ValidationError(
                "Identifier may only contain lowercase letters, digits and underscores",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name,
            )

        return identifier

    @classmethod
    def validate_delimiter(cls, delimiter: str) -> str:
        """Validate a single-character CSV delimiter.

        The literal string ``TAB`` is accepted as an alias for a tab.
        """
        if delimiter == "TAB":
            delimiter = "\t"

        if not isinstance(delimiter, str) or len(delimiter) != 1:
            raise ValidationError(
                "Delimiter must be exactly one character",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="delimiter",
            )

        if delimiter in ("\n", "\r"):
            raise ValidationError(
                "Delimiter cannot be a line break",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="delimiter",
            )

        return delimiter

    @classmethod
    def validate_encoding(cls, encoding: Optional[str]) -> Optional[str]:
        """Validate an encoding name against the codec registry.

        Returns:
            The canonical codec name, or None when no encoding is given
        """
        if not encoding:
            return None

        try:
            name = codecs.lookup(encoding).name
            newlines = "\n\n".encode(name)
        except LookupError:
            raise ValidationError(
                f"Unknown encoding: {encoding}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="encoding",
            )

        # Sources are split into lines before decoding
        if not newlines.endswith(b"\n\n"):
            raise ValidationError(
                f"Unsupported encoding: {encoding} does not encode line breaks as a single newline byte",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="encoding",
            )

        return name


def validate_file_path(file_path: str, must_exist: bool = False) -> Path:
    """Validate file path.

    Args:
        file_path: File path to validate
        must_exist: Whether the file must already exist

    Returns:
        Validated Path object

    Raises:
        ValidationError: If path is invalid
    """
    if not file_path or not isinstance(file_path, str):
        raise ValidationError(
            "File path is required",
            error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
            field_name="file_path",
        )

    try:
        path = Path(file_path).expanduser().resolve()
    except (OSError, RuntimeError) as e:
        raise ValidationError(
            f"Invalid file path: {str(e)}",
            error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
            field_name="file_path",
        )

    if must_exist and not path.is_file():
        raise ValidationError(
            f"File does not exist: {file_path}",
            error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
            field_name="file_path",
        )

    return path


def validate_url(url: str) -> bool:
    """Quick boolean check for HTTP source URLs."""
    try:
        URLValidator.validate_source_url(url)
        return True
    except ValidationError:
        return False
