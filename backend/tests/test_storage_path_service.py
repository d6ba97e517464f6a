"""
Tests for the content-addressed storage key helpers.
"""

import hashlib
from uuid import UUID

import pytest

from compliance_intake.core.storage.storage_path_service import (
    compute_sha256,
    content_path,
    file_extension,
    platform_staging_path,
    safe_component,
    slugify,
    tenant_of,
)

TENANT = UUID("11111111-1111-1111-1111-111111111111")
PROJECT = UUID("22222222-2222-2222-2222-222222222222")
SHA = hashlib.sha256(b"X").hexdigest()


class TestContentPath:
    """Canonical blob keys."""

    def test_layout(self):
        path = content_path(TENANT, "project", PROJECT, "PRL", 1, SHA, "pdf")
        assert path == f"{TENANT}/project/{PROJECT}/PRL/v1/{SHA}.pdf"

    def test_version_is_part_of_key(self):
        v1 = content_path(TENANT, "project", PROJECT, "PRL", 1, SHA, "pdf")
        v2 = content_path(TENANT, "project", PROJECT, "PRL", 2, SHA, "pdf")
        assert v1 != v2
        assert "/v2/" in v2

    def test_rejects_version_zero(self):
        with pytest.raises(ValueError):
            content_path(TENANT, "project", PROJECT, "PRL", 0, SHA, "pdf")

    def test_rejects_non_hex_hash(self):
        with pytest.raises(ValueError):
            content_path(TENANT, "project", PROJECT, "PRL", 1, "not-a-hash", "pdf")

    def test_path_separators_are_stripped_from_components(self):
        path = content_path(TENANT, "project/../etc", PROJECT, "PRL", 1, SHA)
        assert path.count("/") == 5
        assert ".." not in path.split("/")


class TestFileExtension:
    """Extension derived from the original filename."""

    def test_lowercased(self):
        assert file_extension("Plan.PDF") == "pdf"

    def test_default_when_missing(self):
        assert file_extension("README") == "bin"
        assert file_extension(None) == "bin"
        assert file_extension("") == "bin"

    def test_last_suffix_wins(self):
        assert file_extension("archive.tar.gz") == "gz"


class TestStagingPath:
    """Platform staging keys."""

    def test_layout(self):
        doc_id = UUID("33333333-3333-3333-3333-333333333333")
        path = platform_staging_path(TENANT, "nalanda", doc_id, "Seguro RC 2024.pdf")
        assert path == f"{TENANT}/platforms/nalanda/{doc_id}/seguro-rc-2024.pdf"

    def test_tenant_of(self):
        path = content_path(TENANT, "project", PROJECT, "PRL", 1, SHA, "pdf")
        assert tenant_of(path) == str(TENANT)

    def test_tenant_of_rejects_bare_name(self):
        with pytest.raises(ValueError):
            tenant_of("orphan.pdf")


class TestHelpers:
    def test_compute_sha256(self):
        assert compute_sha256(b"X") == SHA
        assert len(compute_sha256(b"")) == 64

    def test_slugify(self):
        assert slugify("Hello World_File") == "hello-world-file"
        assert slugify("") == "_empty"
        assert slugify("$$$") == "_unnamed"

    def test_safe_component_keeps_case(self):
        assert safe_component("SEGURO_RC") == "SEGURO_RC"
