"""Shared test fixtures: in-memory EPUB builders."""

import io
import zipfile
from dataclasses import dataclass, field

import pytest

from epub_extract.core.archive import ArchiveStore
from epub_extract.core.navigation import parse_book

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{root_path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

XHTML_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml">
<head><title>{title}</title><link href="../Styles/style.css" rel="stylesheet" type="text/css"/></head>
<body>{body}</body>
</html>
"""

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-png"
JPG_BYTES = b"\xff\xd8\xff\xe0fake-jpg"


@dataclass
class NavPoint:
    """Navigation entry for the NCX builder."""

    label: str | None
    src: str
    children: list["NavPoint"] = field(default_factory=list)


@dataclass
class Resource:
    """Non-spine manifest item."""

    id: str
    href: str
    media_type: str
    content: bytes
    properties: str | None = None


def _nav_point_xml(point: NavPoint, counter: list[int], indent: str) -> str:
    counter[0] += 1
    label = (
        f"{indent}  <navLabel><text>{point.label}</text></navLabel>\n"
        if point.label is not None
        else ""
    )
    children = "".join(_nav_point_xml(c, counter, indent + "  ") for c in point.children)
    return (
        f'{indent}<navPoint id="np{counter[0]}" playOrder="{counter[0]}">\n'
        f"{label}"
        f'{indent}  <content src="{point.src}"/>\n'
        f"{children}"
        f"{indent}</navPoint>\n"
    )


def build_ncx(nav_points: list[NavPoint], title: str = "Test Book") -> str:
    counter = [0]
    points = "".join(_nav_point_xml(p, counter, "    ") for p in nav_points)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">\n'
        '  <head><meta name="dtb:uid" content="urn:uuid:1234"/></head>\n'
        f"  <docTitle><text>{title}</text></docTitle>\n"
        "  <navMap>\n"
        f"{points}"
        "  </navMap>\n"
        "</ncx>\n"
    )


def build_opf(
    spine: list[tuple[str, str]],
    resources: list[Resource],
    title: str | None = "Test Book",
    author: str | None = "Jane Doe",
    include_ncx: bool = True,
    cover_meta: str | None = None,
) -> str:
    items = [
        f'    <item id="{item_id}" href="{href}" media-type="application/xhtml+xml"/>'
        for item_id, href in spine
    ]
    if include_ncx:
        items.append('    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>')
    for r in resources:
        props = f' properties="{r.properties}"' if r.properties else ""
        items.append(f'    <item id="{r.id}" href="{r.href}" media-type="{r.media_type}"{props}/>')

    metadata = []
    if title is not None:
        metadata.append(f"    <dc:title>{title}</dc:title>")
    if author is not None:
        metadata.append(f"    <dc:creator>{author}</dc:creator>")
    metadata.append('    <dc:identifier id="BookId">urn:uuid:1234</dc:identifier>')
    if cover_meta:
        metadata.append(f'    <meta name="cover" content="{cover_meta}"/>')

    itemrefs = [f'    <itemref idref="{item_id}"/>' for item_id, _ in spine]
    toc_attr = ' toc="ncx"' if include_ncx else ""

    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<package xmlns="http://www.idpf.org/2007/opf" version="2.0" unique-identifier="BookId">\n'
        '  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">\n'
        + "\n".join(metadata)
        + "\n  </metadata>\n  <manifest>\n"
        + "\n".join(items)
        + f"\n  </manifest>\n  <spine{toc_attr}>\n"
        + "\n".join(itemrefs)
        + "\n  </spine>\n</package>\n"
    )


def build_epub(
    spine: list[tuple[str, str, str]],
    nav_points: list[NavPoint] | None = None,
    resources: list[Resource] | None = None,
    title: str | None = "Test Book",
    author: str | None = "Jane Doe",
    cover_meta: str | None = None,
    root_path: str = "OEBPS/content.opf",
    container_xml: str | None = None,
    opf_override: str | None = None,
    extra_entries: dict[str, bytes] | None = None,
) -> bytes:
    """Build an EPUB 2 package in memory.

    ``spine`` items are (manifest id, href, body html); hrefs are relative
    to the package document directory.
    """
    resources = resources or []
    base = root_path[: root_path.rfind("/") + 1]

    entries: dict[str, bytes] = {
        "mimetype": b"application/epub+zip",
        "META-INF/container.xml": (
            container_xml
            if container_xml is not None
            else CONTAINER_XML.format(root_path=root_path)
        ).encode("utf-8"),
    }

    opf = opf_override or build_opf(
        [(i, h) for i, h, _ in spine],
        resources,
        title=title,
        author=author,
        include_ncx=nav_points is not None,
        cover_meta=cover_meta,
    )
    entries[root_path] = opf.encode("utf-8")

    if nav_points is not None:
        entries[base + "toc.ncx"] = build_ncx(nav_points, title or "Untitled").encode("utf-8")

    for item_id, href, body in spine:
        entries[base + href] = XHTML_TEMPLATE.format(title=item_id, body=body).encode("utf-8")

    for r in resources:
        entries[base + r.href] = r.content

    entries.update(extra_entries or {})

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for path, content in entries.items():
            zf.writestr(path, content)
    return buffer.getvalue()


def corrupt_entry(data: bytes, name: str) -> bytes:
    """Damage one entry's deflate stream while leaving the ZIP directory intact."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        offset = zf.getinfo(name).header_offset
    name_length = int.from_bytes(data[offset + 26 : offset + 28], "little")
    extra_length = int.from_bytes(data[offset + 28 : offset + 30], "little")
    start = offset + 30 + name_length + extra_length

    broken = bytearray(data)
    # BFINAL set with the reserved block type 11
    broken[start] = 0xFF
    return bytes(broken)


NESTED_SPINE = [
    ("part1", "Text/part1.xhtml", "<h1>Part One</h1>"),
    ("ch1", "Text/ch1.xhtml", '<h2>Chapter 1</h2><img src="../Images/fig1.png" alt=""/>'),
    ("ch1b", "Text/ch1b.xhtml", "<p>More of chapter 1.</p>"),
    ("ch2", "Text/ch2.xhtml", '<h2 id="start">Chapter 2</h2>'),
    ("part2", "Text/part2.xhtml", "<h1>Part Two</h1>"),
    ("ch3", "Text/ch3.xhtml", '<h2>Chapter 3</h2><img src="../Images/fig3.jpg"/>'),
    ("notes", "Text/notes.xhtml", "<p>Notes</p>"),
]

NESTED_NAV = [
    NavPoint(
        "Part One",
        "Text/part1.xhtml",
        [
            NavPoint("Chapter 1", "Text/ch1.xhtml"),
            NavPoint("Chapter 2", "Text/ch2.xhtml#start"),
        ],
    ),
    NavPoint("Part Two", "Text/part2.xhtml", [NavPoint("Chapter 3", "Text/ch3.xhtml")]),
    NavPoint("Lost Appendix", "Text/missing.xhtml"),
]

NESTED_RESOURCES = [
    Resource("css", "Styles/style.css", "text/css", b"body { margin: 0; }"),
    Resource("font", "Fonts/serif.ttf", "font/ttf", b"fake-font"),
    Resource("cover-img", "Images/cover.jpg", "image/jpeg", JPG_BYTES),
    Resource("fig1", "Images/fig1.png", "image/png", PNG_BYTES),
    Resource("fig3", "Images/fig3.jpg", "image/jpeg", JPG_BYTES),
    Resource("unused", "Images/unused.gif", "image/gif", b"GIF89a"),
]


@pytest.fixture
def epub_builder():
    """The build_epub helper, for tests that need a custom package."""
    return build_epub


@pytest.fixture
def nested_epub() -> bytes:
    """Two parts with nested chapters, assets and one broken nav entry."""
    return build_epub(
        NESTED_SPINE,
        nav_points=NESTED_NAV,
        resources=NESTED_RESOURCES,
        cover_meta="cover-img",
    )


@pytest.fixture
def flat_epub() -> bytes:
    """Spine-only book without a navigation document."""
    return build_epub(
        [
            ("a", "a.xhtml", "<p>A</p>"),
            ("b", "b.xhtml", "<p>B</p>"),
            ("c", "c.xhtml", "<p>C</p>"),
        ],
        nav_points=None,
    )


@pytest.fixture
def nested_store(nested_epub) -> ArchiveStore:
    return ArchiveStore.from_bytes(nested_epub)


@pytest.fixture
def nested_book(nested_store):
    return parse_book(nested_store)
