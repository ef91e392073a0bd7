"""
codefixer/bundle_builder.py
-----------------------------------------------------------------------------
Concatenate project files into the delimited text block that is embedded in
the model prompt.

Each file becomes::

    ### FILENAME: src/app.js
    <raw content>
    ### --- END OF src/app.js ---

followed by a blank line.  Files appear in input order.  No truncation is
applied here; request size is bounded by the model API, not by this module.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from codefixer.schema import ProjectFile

FILE_HEADER = "### FILENAME: {filename}"
FILE_FOOTER = "### --- END OF {filename} ---"


def _as_pairs(files: Iterable[ProjectFile] | Mapping[str, str]) -> Iterable[tuple[str, str]]:
    if isinstance(files, Mapping):
        return files.items()
    return ((f.filename, f.content) for f in files)


def build_bundle(files: Iterable[ProjectFile] | Mapping[str, str]) -> str:
    """
    Render ``files`` as one delimited text block.

    Parameters
    ----------
    files : A list of ``ProjectFile`` records, or a filename → content
            mapping (a project state).

    Returns
    -------
    str : The bundle text.  Empty input gives an empty string.
    """
    parts: list[str] = []
    for filename, content in _as_pairs(files):
        parts.append(
            f"{FILE_HEADER.format(filename=filename)}\n"
            f"{content}\n"
            f"{FILE_FOOTER.format(filename=filename)}\n\n"
        )
    return "".join(parts)
