"""Tests for distindex.permissions."""

from __future__ import annotations

import gzip
from pathlib import Path

import pytest

from distindex.errors import PermissionsError
from distindex.permissions import Permissions

PERMS = """File:        06perms.txt
Description: CSV file of upload permission to the CPAN per namespace
Columns:     package,userid,best-permission

Foo::Bar,BOB,c
Foo::Bar,alice,m
Foo::Baz,CAROL,f
Zed,DAVE,c
"""


def test_parse_orders_owners_before_comaintainers() -> None:
    permissions = Permissions.parse(PERMS)

    assert list(permissions) == ["Foo::Bar", "Foo::Baz", "Zed"]
    assert permissions["Foo::Bar"] == ("ALICE", "BOB")
    assert permissions.owners("Zed") == ("DAVE",)
    assert permissions.owners("Unknown") == ()


def test_is_authorized_is_case_insensitive() -> None:
    permissions = Permissions.parse(PERMS)

    assert permissions.is_authorized("Foo::Bar", "alice")
    assert permissions.is_authorized("Foo::Bar", "BOB")
    assert not permissions.is_authorized("Foo::Baz", "ALICE")
    assert permissions.is_authorized("Brand::New", "ANYONE")


def test_permissions_are_immutable() -> None:
    permissions = Permissions({"Foo": ["alice"]})

    with pytest.raises(TypeError):
        permissions["Foo"] = ("BOB",)  # type: ignore[index]
    assert permissions["Foo"] == ("ALICE",)


def test_load_reads_gzipped_tables(tmp_path: Path) -> None:
    path = tmp_path / "06perms.txt.gz"
    path.write_bytes(gzip.compress(PERMS.encode("utf-8")))

    permissions = Permissions.load(path)

    assert len(permissions) == 3


def test_load_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(PermissionsError):
        Permissions.load(tmp_path / "missing.txt")
