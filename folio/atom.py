"""Atom 1.0 syndication feeds."""
from __future__ import annotations

import dataclasses
import datetime
import xml.etree.ElementTree as ET
from typing import IO

ATOM_NS = "http://www.w3.org/2005/Atom"


def _timestamp(value: datetime.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.isoformat()


@dataclasses.dataclass(frozen=True)
class Link:
    href: str
    rel: str | None = None
    type: str | None = None

    def to_element(self) -> ET.Element:
        attrib = {"href": self.href}
        if self.rel:
            attrib["rel"] = self.rel
        if self.type:
            attrib["type"] = self.type
        return ET.Element("link", attrib)


@dataclasses.dataclass(frozen=True)
class Entry:
    title: str
    content: str
    published: datetime.datetime
    updated: datetime.datetime
    link: Link
    id: str
    author_name: str
    author_uri: str | None = None
    content_type: str = "html"

    def to_element(self) -> ET.Element:
        entry = ET.Element("entry")
        ET.SubElement(entry, "title").text = self.title
        ET.SubElement(entry, "content", type=self.content_type).text = self.content
        ET.SubElement(entry, "published").text = _timestamp(self.published)
        ET.SubElement(entry, "updated").text = _timestamp(self.updated)
        entry.append(self.link.to_element())
        ET.SubElement(entry, "id").text = self.id
        author = ET.SubElement(entry, "author")
        ET.SubElement(author, "name").text = self.author_name
        if self.author_uri:
            ET.SubElement(author, "uri").text = self.author_uri
        return entry


@dataclasses.dataclass
class Feed:
    title: str
    id: str
    links: list[Link] = dataclasses.field(default_factory=list)
    updated: datetime.datetime | None = None
    entries: list[Entry] = dataclasses.field(default_factory=list)

    def to_element(self) -> ET.Element:
        feed = ET.Element("feed", xmlns=ATOM_NS)
        ET.SubElement(feed, "title").text = self.title
        ET.SubElement(feed, "id").text = self.id
        # An empty feed has no natural update time.
        updated = self.updated or datetime.datetime(
            1970, 1, 1, tzinfo=datetime.timezone.utc
        )
        ET.SubElement(feed, "updated").text = _timestamp(updated)
        for link in self.links:
            feed.append(link.to_element())
        for entry in self.entries:
            feed.append(entry.to_element())
        return feed

    def encode(self, fp: IO[str], indent: str = "  ") -> None:
        """Write the feed as a UTF-8 XML document to the text stream ``fp``."""
        tree = ET.ElementTree(self.to_element())
        ET.indent(tree, space=indent)
        # ElementTree declares the locale's encoding when writing text.
        fp.write('<?xml version="1.0" encoding="utf-8"?>\n')
        tree.write(fp, encoding="unicode")
        fp.write("\n")
