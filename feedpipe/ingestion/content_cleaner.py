"""
Content Cleaner
===============

HTML cleanup for syndication items: strips markup from descriptions and
extracts outbound links so processors receive plain text.
"""

import re
import html
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Comment
from bs4.element import CData, ProcessingInstruction, Doctype

from ..utils.logging import get_logger_for_component
from ..utils.validators import validate_url


class ContentCleaner:
    """HTML to text converter for feed item content."""

    # Removed together with their content
    DANGEROUS_ELEMENTS = {
        "script",
        "style",
        "iframe",
        "embed",
        "object",
        "applet",
        "form",
        "noscript",
        "canvas",
    }

    WHITESPACE_PATTERN = re.compile(r"[ \t\f\v]+")
    MULTIPLE_NEWLINES_PATTERN = re.compile(r"\n\s*\n\s*\n+", re.MULTILINE)

    JAVASCRIPT_URL_PATTERN = re.compile(r"^\s*javascript:", re.IGNORECASE)
    DATA_URL_PATTERN = re.compile(r"^\s*data:", re.IGNORECASE)

    def __init__(self, max_length: int = 50000):
        """Initialize content cleaner.

        Args:
            max_length: Cleaned text longer than this is truncated
        """
        self.max_length = max_length
        self.logger = get_logger_for_component("content_cleaner")
        self.parser = "html.parser"

    def clean_html_content(self, html_content: Optional[str]) -> str:
        """Clean HTML content and return readable text.

        Paragraph structure is kept as line breaks.
        """
        if not html_content or not html_content.strip():
            return ""

        soup = BeautifulSoup(html_content, self.parser)

        for element in soup.find_all(self.DANGEROUS_ELEMENTS):
            element.decompose()

        for element in soup.find_all(
            string=lambda text: isinstance(text, (Comment, CData, ProcessingInstruction, Doctype))
        ):
            element.extract()

        text = self._normalize_text(soup.get_text(separator="\n", strip=True))

        if len(text) > self.max_length:
            self.logger.debug(f"Truncating cleaned content: {len(text)} > {self.max_length}")
            text = text[: self.max_length] + "... [truncated]"

        return text

    def extract_links(self, html_content: Optional[str], base_url: Optional[str] = None) -> List[Dict[str, str]]:
        """Extract valid http(s) links from HTML content."""
        links: List[Dict[str, str]] = []

        if not html_content or not html_content.strip():
            return links

        soup = BeautifulSoup(html_content, self.parser)

        for a_tag in soup.find_all("a", href=True):
            href = a_tag.get("href", "").strip()

            if not href or self.JAVASCRIPT_URL_PATTERN.match(href) or self.DATA_URL_PATTERN.match(href):
                continue

            if base_url and not urlparse(href).netloc:
                href = urljoin(base_url, href)

            if not validate_url(href):
                continue

            links.append({
                "url": href,
                "text": a_tag.get_text(strip=True) or "",
                "title": (a_tag.get("title") or "").strip(),
            })

        return links

    def _normalize_text(self, text: str) -> str:
        if not text:
            return ""

        text = html.unescape(text)
        text = self.WHITESPACE_PATTERN.sub(" ", text)
        text = self.MULTIPLE_NEWLINES_PATTERN.sub("\n\n", text)

        lines = [line.strip() for line in text.split("\n")]
        while lines and not lines[0]:
            lines.pop(0)
        while lines and not lines[-1]:
            lines.pop()

        return "\n".join(lines).strip()
