"""Rendered-page extraction: links, asset URLs, metadata, and navigation."""

from __future__ import annotations

from dataclasses import dataclass
import re

from bs4 import BeautifulSoup
from readability import Document as ReadabilityDocument
import trafilatura

from ..types import AssetKind, JSONValue, LinkRecord, PageAssets, PageData, utc_now_iso
from ..url import classify_asset_url, links_from_soup, resolve_url

CSS_URL_RE = re.compile(r"url\(\s*['\"]?([^'\"()]+)['\"]?\s*\)", re.IGNORECASE)
FONT_FACE_RE = re.compile(r"@font-face\s*{([^}]*)}", re.IGNORECASE)
SRCSET_SPLIT_RE = re.compile(r"\s*,\s*")

NAVIGATION_SELECTORS = (
    "nav",
    '[role="navigation"]',
    "header nav",
    ".nav",
    ".navigation",
    ".menu",
    "#nav",
    "#navigation",
    "#menu",
)


@dataclass(slots=True)
class HTMLParserConfig:
    """Config for HTML extraction."""

    parser_name: str = "html_parser_mirror_v1"
    internal_links_only: bool = True
    use_trafilatura: bool = True
    use_readability: bool = True
    main_text_preview_chars: int = 2000


class HTMLParser:
    """Extract everything the crawl loop needs from one rendered page."""

    def __init__(self, config: HTMLParserConfig | None = None) -> None:
        self.config = config or HTMLParserConfig()

    def parse(
        self,
        *,
        url: str,
        html: str | bytes,
        final_url: str | None = None,
    ) -> PageData:
        base_url = final_url or url
        html_text = self._coerce_html_text(html)
        soup = BeautifulSoup(html_text, "lxml")

        links = links_from_soup(
            soup,
            base_url=base_url,
            internal_only=self.config.internal_links_only,
        )

        return PageData(
            url=url,
            final_url=final_url,
            html=html_text,
            links=links,
            assets=self.extract_assets(soup, base_url=base_url),
            metadata=self.extract_metadata(soup, html_text, url=base_url),
            navigation=self.extract_navigation(soup, base_url=base_url),
        )

    def extract_assets(self, soup: BeautifulSoup, *, base_url: str) -> PageAssets:
        images: dict[str, None] = {}
        stylesheets: dict[str, None] = {}
        scripts: dict[str, None] = {}
        fonts: dict[str, None] = {}

        def add(bucket: dict[str, None], href: str | None) -> None:
            resolved = resolve_url(base_url, href)
            if resolved:
                bucket.setdefault(resolved, None)

        for img in soup.select("img[src]"):
            add(images, img.get("src"))
        for tag in soup.select("img[srcset], source[srcset]"):
            for candidate in SRCSET_SPLIT_RE.split((tag.get("srcset") or "").strip()):
                if candidate:
                    add(images, candidate.split()[0])
        for tag in soup.select("[style]"):
            for match in CSS_URL_RE.finditer(tag.get("style") or ""):
                add(images, match.group(1))
        for tag in soup.find_all("image"):
            add(images, tag.get("href") or tag.get("xlink:href"))

        for link in soup.select("link[href]"):
            rels = {value.lower() for value in (link.get("rel") or [])}
            if "stylesheet" in rels:
                add(stylesheets, link.get("href"))

        for style in soup.find_all("style"):
            css_text = style.string or style.get_text() or ""
            font_urls: set[str] = set()
            for block in FONT_FACE_RE.finditer(css_text):
                for match in CSS_URL_RE.finditer(block.group(1)):
                    font_urls.add(match.group(1).strip())
                    add(fonts, match.group(1))
            for match in CSS_URL_RE.finditer(css_text):
                href = match.group(1).strip()
                if href in font_urls:
                    continue
                kind = classify_asset_url(resolve_url(base_url, href) or "")
                add(images if kind == AssetKind.IMAGE else stylesheets, href)

        for script in soup.select("script[src]"):
            add(scripts, script.get("src"))

        return PageAssets(
            images=list(images),
            stylesheets=list(stylesheets),
            scripts=list(scripts),
            fonts=list(fonts),
        )

    def extract_metadata(self, soup: BeautifulSoup, html_text: str, *, url: str) -> dict[str, JSONValue]:
        title = self._extract_title(soup)
        main_text = self._extract_with_trafilatura(html_text)
        if not title:
            title = self._readability_title(html_text)

        body = soup.body
        body_text = body.get_text(" ", strip=True) if body else ""

        return {
            "title": title or "",
            "meta_description": self._meta_content(soup, "description") or "",
            "meta_keywords": self._meta_content(soup, "keywords") or "",
            "og_title": self._meta_content(soup, "og:title", attribute="property") or "",
            "og_description": self._meta_content(soup, "og:description", attribute="property") or "",
            "og_image": self._meta_content(soup, "og:image", attribute="property") or "",
            "h1_tags": [text for text in (h1.get_text(" ", strip=True) for h1 in soup.find_all("h1")) if text],
            "word_count": len(body_text.split()),
            "image_count": len(soup.find_all("img")),
            "main_text": main_text[: self.config.main_text_preview_chars],
            "url": url,
            "timestamp": utc_now_iso(),
            "parser": self.config.parser_name,
        }

    def extract_navigation(self, soup: BeautifulSoup, *, base_url: str) -> list[dict[str, JSONValue]]:
        structure: list[dict[str, JSONValue]] = []
        for selector in NAVIGATION_SELECTORS:
            for element in soup.select(selector):
                links: list[JSONValue] = []
                for anchor in element.select("a[href]"):
                    resolved = resolve_url(base_url, anchor.get("href"))
                    if resolved:
                        links.append(
                            LinkRecord(
                                url=resolved,
                                text=anchor.get_text(" ", strip=True),
                                title=str(anchor.get("title") or ""),
                            ).to_json()
                        )
                if links:
                    structure.append({"selector": selector, "links": links})
        return structure

    def _extract_with_trafilatura(self, html_text: str) -> str:
        if not self.config.use_trafilatura:
            return ""
        try:
            extracted = trafilatura.extract(
                html_text,
                output_format="txt",
                include_comments=False,
                include_tables=True,
                include_images=False,
                deduplicate=True,
            )
        except Exception:
            return ""
        return (extracted or "").strip()

    def _readability_title(self, html_text: str) -> str | None:
        if not self.config.use_readability:
            return None
        try:
            return (ReadabilityDocument(html_text).short_title() or "").strip() or None
        except Exception:
            return None

    @staticmethod
    def _meta_content(soup: BeautifulSoup, name: str, *, attribute: str = "name") -> str | None:
        meta = soup.find("meta", attrs={attribute: name})
        if meta is None:
            return None
        content = meta.get("content")
        return None if content is None else str(content)

    @staticmethod
    def _coerce_html_text(html: str | bytes) -> str:
        if isinstance(html, bytes):
            return html.decode("utf-8", errors="replace")
        return html

    @staticmethod
    def _extract_title(soup: BeautifulSoup) -> str | None:
        if soup.title and soup.title.get_text(strip=True):
            return soup.title.get_text(" ", strip=True)
        return None


__all__ = [
    "HTMLParser",
    "HTMLParserConfig",
]
