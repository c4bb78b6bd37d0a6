"""Namespace-agnostic helpers over lxml for OPF, NCX and container documents."""

from lxml import etree

from epub_extract.exceptions import MalformedPackageError

_PARSER_OPTIONS = {"resolve_entities": False, "no_network": True, "huge_tree": True}


def parse_xml(data: bytes, description: str) -> etree._Element:
    """Parse XML bytes, raising MalformedPackageError with context on failure."""
    parser = etree.XMLParser(**_PARSER_OPTIONS)
    try:
        root = etree.fromstring(data, parser=parser)
    except etree.XMLSyntaxError as e:
        raise MalformedPackageError(f"Could not parse {description}: {e}") from e
    if root is None:
        raise MalformedPackageError(f"Could not parse {description}: empty document")
    return root


def serialize_xml(root: etree._Element) -> bytes:
    """Serialize a document (doctype included) back to UTF-8 bytes."""
    return etree.tostring(
        root.getroottree(), xml_declaration=True, encoding="utf-8"
    )


def local_name(element: etree._Element) -> str:
    return etree.QName(element).localname


def find_first(parent: etree._Element, name: str) -> etree._Element | None:
    """First descendant with the given local name, in document order."""
    return next(parent.iter(f"{{*}}{name}"), None)


def find_children(parent: etree._Element, name: str) -> list[etree._Element]:
    """Direct children with the given local name."""
    return [
        child
        for child in parent
        if isinstance(child.tag, str) and local_name(child) == name
    ]


def find_child(parent: etree._Element, name: str) -> etree._Element | None:
    children = find_children(parent, name)
    return children[0] if children else None


def element_text(element: etree._Element | None) -> str:
    """Stripped text content of an element, or empty string."""
    if element is None:
        return ""
    return "".join(element.itertext()).strip()
