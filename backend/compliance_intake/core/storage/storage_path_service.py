"""
Storage Path Service.

Builds the content-addressed object keys used in the document bucket.

Storage Structure:
    {tenant_id}/
    ├── {entity_type}/                        # e.g. project, company
    │   └── {entity_id}/
    │       └── {category}/                   # e.g. PRL, SEGURO_RC
    │           └── v{version}/
    │               └── {sha256}.{ext}        # canonical blob
    │
    └── platforms/                            # staging copies per portal
        └── {platform}/
            └── {document_id}/
                └── {filename}

Keys are self-describing (tenant, placement, category and version can be read
back from the key) and collision-resistant (the final component is the
content hash).
"""

import hashlib
import logging
import re
from typing import Optional, Union
from urllib.parse import unquote
from uuid import UUID

logger = logging.getLogger("compliance.storage_path")


# Maximum path component length (to avoid filesystem issues)
MAX_COMPONENT_LENGTH = 100

DEFAULT_EXTENSION = "bin"

PLATFORMS_PREFIX = "platforms"

# Characters that are safe in storage paths
SAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")

SHA256_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def slugify(text: str, max_length: int = MAX_COMPONENT_LENGTH) -> str:
    """
    Convert text to a safe slug for storage paths.

    Args:
        text: Text to slugify
        max_length: Maximum length of result

    Returns:
        Safe slug string
    """
    if not text:
        return "_empty"

    # Decode URL encoding
    text = unquote(text)

    # Lowercase
    text = text.lower()

    # Replace spaces and common separators with hyphens
    text = re.sub(r"[\s_]+", "-", text)

    # Remove unsafe characters
    text = SAFE_CHARS.sub("", text)

    # Collapse multiple hyphens
    text = re.sub(r"-+", "-", text)

    # Remove leading/trailing hyphens
    text = text.strip("-")

    if len(text) > max_length:
        text = text[:max_length]

    return text or "_unnamed"


def safe_component(value: Union[str, UUID]) -> str:
    """Strip path separators and unsafe characters while keeping case."""
    text = SAFE_CHARS.sub("", str(value).replace("/", "_"))
    text = text.strip(".")[:MAX_COMPONENT_LENGTH]
    return text or "_empty"


def file_extension(filename: Optional[str]) -> str:
    """Lower-cased extension of ``filename`` without the dot, ``bin`` if none."""
    if not filename or "." not in filename:
        return DEFAULT_EXTENSION
    extension = SAFE_CHARS.sub("", filename.rsplit(".", 1)[-1].lower())
    return extension or DEFAULT_EXTENSION


def compute_sha256(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def content_path(
    tenant_id: Union[str, UUID],
    entity_type: str,
    entity_id: Union[str, UUID],
    category: str,
    version: int,
    sha256: str,
    extension: str = DEFAULT_EXTENSION,
) -> str:
    """
    Generate the canonical object key for a document blob.

    Args:
        tenant_id: Owning tenant
        entity_type: Placement kind (project, company)
        entity_id: Placement identifier
        category: Document category
        version: Version within the slot (>= 1)
        sha256: Hex digest of the content
        extension: File extension without the dot

    Returns:
        ``{tenant}/{entityType}/{entityId}/{category}/v{version}/{sha256}.{ext}``

    Raises:
        ValueError: If version is below 1 or sha256 is not a hex digest
    """
    if version < 1:
        raise ValueError(f"Version must be >= 1, got {version}")
    if not SHA256_PATTERN.match(sha256):
        raise ValueError("sha256 must be a 64-character lowercase hex digest")

    return "/".join([
        safe_component(tenant_id),
        safe_component(entity_type),
        safe_component(entity_id),
        safe_component(category),
        f"v{version}",
        f"{sha256}.{safe_component(extension or DEFAULT_EXTENSION)}",
    ])


def platform_staging_path(
    tenant_id: Union[str, UUID],
    platform: str,
    document_id: Union[str, UUID],
    filename: str,
) -> str:
    """
    Generate the staging key for a document prepared for a portal upload.

    Returns:
        ``{tenant}/platforms/{platform}/{documentId}/{filename}``
    """
    return "/".join([
        safe_component(tenant_id),
        PLATFORMS_PREFIX,
        safe_component(platform),
        safe_component(document_id),
        slugify(filename),
    ])


def tenant_of(path: str) -> str:
    """First component of an object key, i.e. the owning tenant."""
    tenant, _, rest = path.partition("/")
    if not tenant or not rest:
        raise ValueError(f"Not a tenant-scoped storage path: {path!r}")
    return tenant
