"""Render a keep-list as a linker descriptor document."""

from __future__ import annotations

from xml.sax.saxutils import quoteattr

from linkerkeep.keeplist.aggregate import KeepList

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'
INDENT = "  "


def emit(keep_list: KeepList) -> str:
    """
    Serialize a keep-list to linker descriptor XML.

    One ``<assembly>`` element per assembly and one ``<type>`` element per kept
    type, both sorted by name. The function has no side effects; callers write
    the text once the whole analysis has succeeded.

    Parameters
    ----------
    keep_list
        Aggregated types to preserve.

    Returns
    -------
    str
        UTF-8 descriptor text terminated by a newline.
    """
    lines = [XML_DECLARATION, "<linker>"]
    for assembly in keep_list.assemblies():
        lines.append(f"{INDENT}<assembly fullname={quoteattr(assembly)}>")
        lines.extend(
            f"{INDENT * 2}<type fullname={quoteattr(type_name)}/>"
            for type_name in keep_list.types_for(assembly)
        )
        lines.append(f"{INDENT}</assembly>")
    lines.append("</linker>")
    return "\n".join(lines) + "\n"
