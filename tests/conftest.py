import zipfile
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple, Union

import pytest

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

Document = Tuple[str, Union[str, bytes]]


def xhtml(body: str, title: str = "") -> str:
    head = f"<title>{title}</title>" if title else ""
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<html xmlns="http://www.w3.org/1999/xhtml">'
        f"<head>{head}</head><body>{body}</body></html>"
    )


def write_epub(
    path: Path,
    documents: Sequence[Document],
    title: Optional[str] = "Sample Book",
    author: Optional[str] = "Jane Doe",
) -> Path:
    meta = ['<dc:identifier id="bookid">test-book</dc:identifier>']
    if title is not None:
        meta.append(f"<dc:title>{title}</dc:title>")
    if author is not None:
        meta.append(f"<dc:creator>{author}</dc:creator>")
    meta.append("<dc:language>en</dc:language>")

    items = []
    itemrefs = []
    for idx, (name, _data) in enumerate(documents):
        item_id = f"doc{idx}"
        items.append(
            f'<item id="{item_id}" href="{name}" media-type="application/xhtml+xml"/>'
        )
        itemrefs.append(f'<itemref idref="{item_id}"/>')

    opf = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<package xmlns="http://www.idpf.org/2007/opf" version="2.0" '
        'unique-identifier="bookid">'
        '<metadata xmlns:dc="http://purl.org/dc/elements/1.1/">'
        + "".join(meta)
        + "</metadata><manifest>"
        + "".join(items)
        + "</manifest><spine>"
        + "".join(itemrefs)
        + "</spine></package>"
    )

    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
        zf.writestr("META-INF/container.xml", CONTAINER_XML)
        zf.writestr("OEBPS/content.opf", opf)
        for name, data in documents:
            if isinstance(data, str):
                data = data.encode("utf-8")
            zf.writestr(f"OEBPS/{name}", data)
    return path


@pytest.fixture
def make_epub(tmp_path: Path) -> Callable[..., Path]:
    def factory(documents: Sequence[Document], name: str = "book.epub", **kwargs) -> Path:
        return write_epub(tmp_path / name, documents, **kwargs)

    return factory


INVALID_UTF8 = b"<html><body><p>caf\xe9 \xff\xfe broken bytes here</p></body></html>"
