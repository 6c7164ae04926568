"""Library for removing Secret payloads from rendered manifests.

The rendered output is processed as text rather than parsed and serialized
again, since reserializing would reorder keys and reformat values and make
the shadow diffs noisy. Each document in the stream is checked for a
`kind: Secret` line and the `data`, `stringData` and `binaryData` blocks of
Secrets are replaced with a placeholder comment:

```yaml
apiVersion: v1
kind: Secret
data:
  # REDACTED - secrets are not included in shadow diffs
metadata:
  name: example
```

Every other line, and every non-Secret document, is emitted unchanged.
"""

import logging
import re

__all__ = [
    "redact_secrets",
    "split_documents",
    "join_documents",
    "is_secret_document",
    "redact_secret_document",
]

_LOGGER = logging.getLogger(__name__)

DOCUMENT_SEPARATOR = "---"
PLACEHOLDER = "# REDACTED - secrets are not included in shadow diffs"
SECRET_DATA_KEYS = ("data:", "stringData:", "binaryData:")
EMPTY_INLINE_VALUES = ("{}", "{ }")
TAB_WIDTH = 2

_SECRET_KIND_RE = re.compile(r"^[ \t]*kind: Secret[ \t]*$", re.MULTILINE)


def split_documents(manifest: str) -> list[str]:
    """Split a multi-document stream on `---` lines.

    The first document has no leading separator. Every later document starts
    with the `---` separator line.
    """
    parts = manifest.split(f"\n{DOCUMENT_SEPARATOR}")
    return parts[:1] + [f"{DOCUMENT_SEPARATOR}{part}" for part in parts[1:]]


def join_documents(docs: list[str]) -> str:
    """Join documents produced by `split_documents`.

    Every separator is placed at the start of its own line, including when
    the previous document does not end with a newline.
    """
    if not docs:
        return ""
    result = [docs[0]]
    for doc in docs[1:]:
        if not doc.startswith(DOCUMENT_SEPARATOR):
            doc = f"{DOCUMENT_SEPARATOR}\n{doc}"
        result.append("\n")
        result.append(doc)
    return "".join(result)


def is_secret_document(doc: str) -> bool:
    """Return True if the document is a Kubernetes Secret."""
    return _SECRET_KIND_RE.search(doc) is not None


def _indent(line: str) -> int:
    count = 0
    for char in line:
        if char == " ":
            count += 1
        elif char == "\t":
            count += TAB_WIDTH
        else:
            break
    return count


def _data_key(trimmed: str) -> str | None:
    """Return the secret data key that starts the line, if any."""
    for key in SECRET_DATA_KEYS:
        if trimmed == key or trimmed.startswith(f"{key} "):
            return key
    return None


def redact_secret_document(doc: str) -> str:
    """Replace the data blocks of a Secret document with a placeholder.

    Lines that are blank or indented deeper than a data key belong to its
    block and are dropped. Inline empty maps like `data: {}` are kept as is.
    """
    trailing_newline = doc.endswith("\n")
    lines = (doc[:-1] if trailing_newline else doc).split("\n")
    result: list[str] = []
    skip_indent: int | None = None

    for line in lines:
        if skip_indent is not None:
            if not line.strip() or _indent(line) > skip_indent:
                continue
            skip_indent = None

        trimmed = line.strip()
        if (key := _data_key(trimmed)) is None:
            result.append(line)
            continue

        value = trimmed[len(key) :].strip()
        if value in EMPTY_INLINE_VALUES:
            result.append(line)
            continue

        indent = _indent(line)
        if value and not value.startswith("#"):
            # Inline flow values carry the payload on the key line itself
            line = line[: len(line) - len(line.lstrip())] + key
        result.append(line)
        result.append(" " * (indent + 2) + PLACEHOLDER)
        skip_indent = indent

    redacted = "\n".join(result)
    return f"{redacted}\n" if trailing_newline else redacted


def redact_secrets(manifest: str) -> str:
    """Redact the payload of every Secret document in a manifest stream.

    Input without a Secret document is returned unchanged.
    """
    if not _SECRET_KIND_RE.search(manifest):
        return manifest
    docs = split_documents(manifest)
    redacted = 0
    for i, doc in enumerate(docs):
        if is_secret_document(doc):
            docs[i] = redact_secret_document(doc)
            redacted += 1
    _LOGGER.debug("Redacted %d Secret documents", redacted)
    return join_documents(docs)
