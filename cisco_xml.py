"""cisco_xml.py

Decoders for the Cisco IP phone XML documents met while walking a phone's
corporate directory:

- the device bootstrap file (``SEP<mac>.cnf.xml``) holding ``directoryURL``
- ``CiscoIPPhoneMenu`` listings of ``MenuItem`` elements
- ``CiscoIPPhoneInput`` pointers carrying the directory list ``URL``
- ``CiscoIPPhoneDirectory`` pages of ``DirectoryEntry`` and ``SoftKeyItem``

Decoders only map tags to fields. Missing tags decode to ``None`` or an empty
list; only a document that cannot be parsed at all raises
``lxml.etree.XMLSyntaxError``.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from lxml import etree

NEXT_SOFT_KEY = "Next"

# No external entities, no network access while parsing.
_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


@dataclass(frozen=True)
class BootstrapPointer:
    directory_url: Optional[str] = None


@dataclass(frozen=True)
class MenuItem:
    name: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class MenuListing:
    items: List[MenuItem] = field(default_factory=list)

    def find(self, name: str) -> Optional[MenuItem]:
        """Return the first item labelled ``name`` in document order."""
        for item in self.items:
            if item.name == name:
                return item
        return None


@dataclass(frozen=True)
class DirectoryListPointer:
    url: Optional[str] = None


@dataclass(frozen=True)
class DirectoryEntry:
    name: Optional[str] = None
    telephone: Optional[str] = None


@dataclass(frozen=True)
class SoftKeyItem:
    name: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class EntryPage:
    """One page of directory results and the link to the page after it."""

    url: str
    entries: List[DirectoryEntry] = field(default_factory=list)
    next_url: Optional[str] = None


def _parse(xml_bytes: bytes) -> etree._Element:
    return etree.fromstring(xml_bytes, parser=_PARSER)


def _text(elem: etree._Element, tag: str) -> Optional[str]:
    child = elem.find(tag)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def decode_bootstrap(xml_bytes: bytes) -> BootstrapPointer:
    root = _parse(xml_bytes)
    # directoryURL sits under <device> but may be nested in vendor wrappers
    for elem in root.iter("directoryURL"):
        if elem.text and elem.text.strip():
            return BootstrapPointer(directory_url=elem.text.strip())
    return BootstrapPointer()


def decode_menu(xml_bytes: bytes) -> MenuListing:
    root = _parse(xml_bytes)
    items = [
        MenuItem(name=_text(el, "Name"), url=_text(el, "URL"))
        for el in root.findall("MenuItem")
    ]
    return MenuListing(items=items)


def decode_list_pointer(xml_bytes: bytes) -> DirectoryListPointer:
    root = _parse(xml_bytes)
    return DirectoryListPointer(url=_text(root, "URL"))


def decode_entries(xml_bytes: bytes) -> List[DirectoryEntry]:
    """Project the ``DirectoryEntry`` records of a directory page."""
    root = _parse(xml_bytes)
    return [
        DirectoryEntry(name=_text(el, "Name"), telephone=_text(el, "Telephone"))
        for el in root.findall("DirectoryEntry")
    ]


def decode_soft_keys(xml_bytes: bytes) -> List[SoftKeyItem]:
    """Project the ``SoftKeyItem`` pagination controls of a directory page.

    Decoded independently of :func:`decode_entries` from the same body.
    """
    root = _parse(xml_bytes)
    return [
        SoftKeyItem(name=_text(el, "Name"), url=_text(el, "URL"))
        for el in root.findall("SoftKeyItem")
    ]


def next_page_url(soft_keys: List[SoftKeyItem]) -> Optional[str]:
    """URL of the first ``Next`` soft key, if any. Later ``Next`` keys are ignored."""
    for key in soft_keys:
        if key.name == NEXT_SOFT_KEY:
            return key.url
    return None
