import re
from typing import List, Optional, Union

from bs4 import BeautifulSoup, Tag

from core.logger import get_logger
from core.utils import looks_like_url

logger = get_logger(__name__)

Scope = Union[BeautifulSoup, Tag]

# Attribute carriers searched, in order, when mining a URL out of markup
LINK_ATTRIBUTES = ["href", "src", "data-href", "data-url", "data-src", "content"]
_BARE_URL_PATTERN = re.compile(r"""(?:https?:)?//[^\s"'<>]+""", re.IGNORECASE)


def parse_document(html: Union[str, bytes, Scope, None]) -> Scope:
    """Parses raw markup; already-parsed documents and tags pass through."""
    if isinstance(html, (BeautifulSoup, Tag)):
        return html
    if html is None:
        html = ""
    return BeautifulSoup(html, "html.parser")


class SelectorResolver:
    """
    Evaluates one CSS selector/attribute pair against a parsed document.

    A selector that matches nothing yields "" rather than an error. Inside an
    iterator scope, pass the item's Tag as ``scope`` so resolution never
    leaves that subtree.
    """

    def select_all(self, scope: Scope, selector: Optional[str]) -> List[Tag]:
        if not selector:
            return []
        try:
            return scope.select(selector)
        except Exception as e:
            # soupsieve raises SelectorSyntaxError on malformed selectors
            logger.warning(f"[PARSER] Invalid selector '{selector}': {e}")
            return []

    def select_first(self, scope: Scope, selector: Optional[str]) -> Optional[Tag]:
        if not selector:
            return None
        matches = self.select_all(scope, selector)
        return matches[0] if matches else None

    def extract(
        self,
        elements: Union[Tag, List[Tag], None],
        attribute: Optional[str] = None,
        as_html: bool = False,
    ) -> str:
        """
        Raw value of matched elements.

        attribute set  -> attribute of the first element (missing -> "")
        as_html=True   -> inner HTML of the first element
        otherwise      -> concatenated text of every element
        """
        if elements is None:
            return ""
        if isinstance(elements, Tag):
            elements = [elements]
        if not elements:
            return ""

        first = elements[0]
        if attribute:
            value = first.get(attribute)
            if value is None:
                return ""
            # Multi-valued attributes such as class come back as lists
            if isinstance(value, list):
                return " ".join(value)
            return str(value)
        if as_html:
            return first.decode_contents()
        return "".join(el.get_text() for el in elements)

    def resolve(
        self,
        scope: Scope,
        selector: Optional[str],
        attribute: Optional[str] = None,
        as_html: bool = False,
    ) -> str:
        """
        Selector + attribute against ``scope``.

        An empty selector addresses the scope element itself, so an iterator
        that already is the link can be read with just an attribute.
        """
        if not selector:
            if isinstance(scope, Tag) and not isinstance(scope, BeautifulSoup):
                return self.extract(scope, attribute, as_html)
            return ""
        return self.extract(self.select_all(scope, selector), attribute, as_html)

    def resolve_indexed(
        self,
        document: Scope,
        iterator: str,
        index: int,
        selector: Optional[str],
        attribute: Optional[str] = None,
        as_html: bool = False,
    ) -> str:
        """Resolves inside the index-th match of a field-level iterator."""
        scopes = self.select_all(document, iterator)
        if index >= len(scopes):
            return ""
        return self.resolve(scopes[index], selector, attribute, as_html)

    def meta_content(self, document: Scope, *selectors: str) -> str:
        """First non-empty content attribute among the given meta selectors."""
        for selector in selectors:
            value = self.resolve(document, selector, "content").strip()
            if value:
                return value
        return ""

    def document_title(self, document: Scope) -> str:
        title = self.select_first(document, "title")
        return title.get_text(strip=True) if title else ""

    def document_language(self, document: Scope) -> str:
        html = self.select_first(document, "html")
        if html is None:
            return ""
        return (html.get("lang") or "").strip()


def mine_url(fragment: Union[str, Tag, None]) -> str:
    """
    Finds the first link-like construct in a piece of markup.

    Elements carrying href/src/data-* attributes are preferred; a bare
    http(s) URL in the text is the last resort.
    """
    if fragment is None:
        return ""
    if isinstance(fragment, Tag):
        root = fragment
    else:
        text = str(fragment).strip()
        if not text:
            return ""
        if looks_like_url(text):
            return text
        root = BeautifulSoup(text, "html.parser")

    # The fragment's own root element counts, not just its descendants
    candidates = [root] if isinstance(root, Tag) and not isinstance(root, BeautifulSoup) else []
    candidates.extend(root.find_all(True))
    for attribute in LINK_ATTRIBUTES:
        for element in candidates:
            value = element.get(attribute)
            if isinstance(value, str) and value.strip() and (attribute != "content" or looks_like_url(value)):
                return value.strip()

    for piece in root.find_all(string=True):
        match = _BARE_URL_PATTERN.search(str(piece))
        if match:
            return match.group(0)

    return ""
