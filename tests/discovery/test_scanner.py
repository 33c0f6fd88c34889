"""Tests for the static package scanners."""

from __future__ import annotations

from distindex.discovery.scanner import parse_pmfile, scan_packages, scan_perl6_packages


def test_scan_packages_reads_declarations_and_versions() -> None:
    source = """package Foo::Bar;
use strict;
our $VERSION = '1.02';

package Foo::Bar::Helper 0.5;

package main;
$Foo::Extra::VERSION = 1.10;

1;
"""

    assert scan_packages(source) == [
        ("Foo::Bar", "1.02"),
        ("Foo::Bar::Helper", "0.5"),
        ("Foo::Extra", "1.1"),
    ]


def test_scan_packages_skips_pod_comments_and_data() -> None:
    source = """package Real;

=head1 SYNOPSIS

  package Fake::InPod;

=cut

# package Fake::Comment;
our $VERSION = version->declare('1.2.3');

__END__
package Fake::AfterEnd;
"""

    assert scan_packages(source) == [("Real", "v1.2.3")]


def test_scan_packages_first_version_wins() -> None:
    source = "package Foo;\nour $VERSION = '1.0';\n$VERSION = '2.0';\n"

    assert scan_packages(source) == [("Foo", "1.0")]


def test_scan_packages_drops_unclaimable_namespaces() -> None:
    source = "package DB;\nsub x {}\npackage main;\nour $VERSION = 1;\n"

    assert scan_packages(source) == []


def test_parse_pmfile_honours_no_index() -> None:
    source = "package Gen;\nour $VERSION = '0.01';\npackage Gen::Internal::X;\npackage Skip;\n"
    meta = {"no_index": {"package": ["Skip"], "namespace": ["Gen::Internal"]}}

    assert parse_pmfile(source, meta) == {"Gen": {"version": "0.01"}}


def test_scan_perl6_packages() -> None:
    source = """use v6;

=begin pod
unit module Fake;
=end pod

unit module Foo::Bar:ver<0.2.1>;
class Foo::Bar::Baz { }
"""

    assert scan_perl6_packages(source) == [("Foo::Bar", "0.2.1"), ("Foo::Bar::Baz", None)]
