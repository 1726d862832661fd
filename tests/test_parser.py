"""
Tests for the descriptor loader — parsing, validation, serialization.
"""

import textwrap

import pytest

from caskctl.core.catalog.parser import (
    dump_descriptor,
    load_descriptor,
    render_canonical,
    tokenize,
)
from caskctl.core.errors import DuplicateField, MalformedDescriptor, UnsupportedDirective
from caskctl.core.models.descriptor import (
    Checksum,
    CleanupSpec,
    InstallTarget,
    PackageDescriptor,
    UninstallSpec,
)

from tests.helpers import cask_text

DIGEST = "a" * 64


class TestShippedDescriptor:
    """The SF Arabic manifest loads to the documented values."""

    def test_fields(self, sample_text: str):
        d = load_descriptor(sample_text)
        assert d.identifier == "font-sf-arabic"
        assert d.version == "18.0d7e1"
        assert d.checksum.no_check is True
        assert d.unverified is True
        assert d.source_url == "https://devimages-cdn.apple.com/design/resources/download/SF-Arabic.dmg"
        assert d.canonical_name == "San Francisco Arabic"
        assert d.display_names == ("San Francisco Arabic", "SF Arabic")
        assert d.description == 'Arabic extension of "San Francisco" by Apple'
        assert d.homepage_url == "https://developer.apple.com/fonts"
        assert d.install_target == InstallTarget(path="SF Arabic Fonts.pkg")
        assert d.uninstall_spec.pkgutil == ("com.apple.pkg.SFArabicFonts",)
        assert d.post_removal_cleanup is None

    def test_round_trip_is_byte_identical(self, sample_text: str):
        assert dump_descriptor(load_descriptor(sample_text)) == sample_text

    def test_artifact_filename(self, sample_text: str):
        assert load_descriptor(sample_text).artifact_filename == "SF-Arabic.dmg"


class TestRoundTrip:
    """Whatever the loader accepts, dump reproduces exactly."""

    @pytest.mark.parametrize(
        "text",
        [
            cask_text(),
            cask_text(sha256=DIGEST),
            cask_text().rstrip("\n"),                      # no trailing newline
            "# leading comment\n\n" + cask_text() + "\n# trailing\n",
            cask_text().replace("  version", "    version"),  # odd indentation
            cask_text().replace('"18.0d7e1"', '"18.0d7e1"   # pinned'),
            cask_text(extra='zap trash: ["~/Library/Fonts/SF-Arabic.ttf", "~/Library/Caches/x"]\n'),
            cask_text().replace("\n", "\r\n"),
        ],
        ids=["plain", "digest", "no-newline", "comments", "indent", "trailing-comment", "zap", "crlf"],
    )
    def test_dump_reproduces_source(self, text: str):
        assert dump_descriptor(load_descriptor(text)) == text

    def test_canonical_form_reloads_equal(self, sample_text: str):
        original = load_descriptor(sample_text)
        rendered = render_canonical(original)
        assert load_descriptor(rendered) == original
        # canonical output is itself a fixed point
        assert dump_descriptor(load_descriptor(rendered)) == rendered

    def test_changed_field_is_rerendered(self, sample_text: str):
        d = load_descriptor(sample_text)
        bumped = d.model_copy(update={"version": "19.0d1e1"})
        text = dump_descriptor(bumped)
        assert '  version "19.0d1e1"' in text
        assert "# No zap stanza required" in text
        assert load_descriptor(text).version == "19.0d1e1"

    def test_added_names_follow_existing(self, sample_text: str):
        d = load_descriptor(sample_text)
        more = d.model_copy(update={"display_names": d.display_names + ("SF Arabic Rounded",)})
        lines = dump_descriptor(more).splitlines()
        idx = lines.index('  name "SF Arabic"')
        assert lines[idx + 1] == '  name "SF Arabic Rounded"'

    def test_programmatic_descriptor_renders_canonically(self):
        d = PackageDescriptor(
            identifier="font-example",
            version="1.0",
            checksum=Checksum.digest(DIGEST),
            source_url="https://example.com/Example.dmg",
            display_names=("Example",),
            install_target=InstallTarget(path="Example.pkg", allow_untrusted=True),
            uninstall_spec=UninstallSpec(pkgutil=("com.example.pkg",), delete=("/tmp/a", "/tmp/b")),
            post_removal_cleanup=CleanupSpec(trash=("~/Library/Example",)),
        )
        text = dump_descriptor(d)
        assert text == textwrap.dedent(f"""\
            cask "font-example" do
              version "1.0"
              sha256 "{DIGEST}"

              url "https://example.com/Example.dmg"
              name "Example"

              pkg "Example.pkg", allow_untrusted: true

              uninstall pkgutil: "com.example.pkg", delete: ["/tmp/a", "/tmp/b"]

              zap trash: "~/Library/Example"
            end
            """)
        assert load_descriptor(text) == d


class TestStanzas:
    def test_bare_hex_digest(self):
        d = load_descriptor(cask_text(sha256=DIGEST).replace(f'"{DIGEST}"', DIGEST))
        assert d.checksum.sha256 == DIGEST
        assert d.unverified is False

    def test_version_interpolation(self):
        text = cask_text(url='https://example.com/SF-Arabic-#{version}.dmg')
        d = load_descriptor(text)
        assert d.source_url == "https://example.com/SF-Arabic-18.0d7e1.dmg"
        assert dump_descriptor(d) == text

    def test_escaped_interpolation_is_literal(self):
        d = load_descriptor(cask_text().replace('"SF Arabic"', '"SF \\#{version}"'))
        assert d.display_names[1] == "SF #{version}"

    def test_uninstall_lists(self):
        text = cask_text().replace(
            'uninstall pkgutil: "com.apple.pkg.SFArabicFonts"',
            'uninstall pkgutil: ["a.b", "c.d"], delete: "/Library/Fonts/x.otf", rmdir: "/opt/x"',
        )
        spec = load_descriptor(text).uninstall_spec
        assert spec.pkgutil == ("a.b", "c.d")
        assert spec.delete == ("/Library/Fonts/x.otf",)
        assert spec.rmdir == ("/opt/x",)

    def test_zap(self):
        d = load_descriptor(cask_text(extra='zap trash: "~/Library/Fonts/SF.ttf", rmdir: "~/x"\n'))
        assert d.post_removal_cleanup == CleanupSpec(trash=("~/Library/Fonts/SF.ttf",), rmdir=("~/x",))

    def test_pkg_allow_untrusted(self):
        text = cask_text().replace('pkg "SF Arabic Fonts.pkg"', 'pkg "SF Arabic Fonts.pkg", allow_untrusted: true')
        assert load_descriptor(text).install_target.allow_untrusted is True

    def test_end_with_comment(self):
        text = cask_text().replace("end\n", "end # done\n")
        assert load_descriptor(text).identifier == "font-sf-arabic"


class TestErrors:
    @pytest.mark.parametrize("stanza", ["version", "sha256", "url", "name", "pkg", "uninstall"])
    def test_missing_required(self, stanza: str):
        lines = [ln for ln in cask_text().splitlines(keepends=True) if not ln.lstrip().startswith(stanza + " ")]
        with pytest.raises(MalformedDescriptor, match=f"missing required stanza '{stanza}'") as exc:
            load_descriptor("".join(lines))
        assert exc.value.identifier == "font-sf-arabic"

    def test_optional_fields_may_be_absent(self):
        text = "".join(
            ln for ln in cask_text().splitlines(keepends=True)
            if not ln.lstrip().startswith(("desc ", "homepage "))
        )
        d = load_descriptor(text)
        assert d.description is None
        assert d.homepage_url is None

    def test_unknown_stanza(self):
        with pytest.raises(UnsupportedDirective, match="depends_on") as exc:
            load_descriptor(cask_text(extra='depends_on macos: ">= :big_sur"\n'))
        assert exc.value.line is not None

    def test_unknown_uninstall_key(self):
        text = cask_text().replace("uninstall pkgutil:", "uninstall launchctl:")
        with pytest.raises(UnsupportedDirective, match="launchctl"):
            load_descriptor(text)

    @pytest.mark.parametrize(
        "extra",
        ['version "19"\n', "sha256 :no_check\n", 'url "https://x/y.dmg"\n', 'pkg "x.pkg"\n', 'uninstall delete: "/x"\n'],
    )
    def test_duplicate_field(self, extra: str):
        with pytest.raises(DuplicateField):
            load_descriptor(cask_text(extra=extra))

    def test_duplicate_option(self):
        text = cask_text().replace(
            'uninstall pkgutil: "com.apple.pkg.SFArabicFonts"',
            'uninstall pkgutil: "a", pkgutil: "b"',
        )
        with pytest.raises(DuplicateField):
            load_descriptor(text)

    def test_repeated_name_is_fine(self):
        d = load_descriptor(cask_text(extra='name "Third"\n'))
        assert d.display_names[-1] == "Third"

    @pytest.mark.parametrize(
        "mutate, message",
        [
            (lambda t: t.replace("end\n", ""), "missing 'end'"),
            (lambda t: t + 'version "x"\n', "after 'end'"),
            (lambda t: t.replace('"18.0d7e1"', '"18.0d7e1'), "unterminated"),
            (lambda t: t.replace("San Francisco Arabic", "San \\q"), "unknown escape"),
            (lambda t: t.replace(":no_check", ":maybe"), "unknown symbol"),
            (lambda t: t.replace(":no_check", '"abc"'), "64 lowercase hex"),
            (lambda t: t.replace('"SF Arabic"', '"SF #{arch}"'), "unknown interpolation"),
            (lambda t: t.replace('cask "font-sf-arabic" do', 'cask "Font SF" do'), "invalid cask token"),
            (lambda t: t.replace('name "SF Arabic"', "name SF"), "quoted string"),
            (lambda t: t.replace('cask "font-sf-arabic" do', "cask font do"), "expected 'cask"),
            (lambda t: "", "no 'cask"),
            (lambda t: t.replace('name "SF Arabic"', 'name "SF Arabic",'), "trailing ','"),
            (
                lambda t: t.replace('pkgutil: "com.apple.pkg.SFArabicFonts"', 'pkgutil: "com.apple.pkg.SFArabicFonts",'),
                "trailing ','",
            ),
            (lambda t: t.replace('"com.apple.pkg.SFArabicFonts"', '["com.apple.pkg.SFArabicFonts",]'), "unexpected ']'"),
        ],
    )
    def test_malformed(self, mutate, message: str):
        with pytest.raises(MalformedDescriptor, match=message):
            load_descriptor(mutate(cask_text()))

    def test_error_carries_source_and_line(self):
        with pytest.raises(UnsupportedDirective) as exc:
            load_descriptor(cask_text(extra="livecheck\n"), source="Casks/font-sf-arabic.rb")
        err = exc.value
        assert err.source == "Casks/font-sf-arabic.rb"
        assert err.line == 14
        assert "Casks/font-sf-arabic.rb:14" in str(err)


class TestTokenizer:
    def test_comment_inside_string_is_kept(self):
        tokens = tokenize('desc "use # freely" # real comment')
        assert [t.kind for t in tokens] == ["word", "string"]
        assert tokens[1].value == "use # freely"

    def test_keys_and_lists(self):
        tokens = tokenize('uninstall pkgutil: ["a", "b"]')
        assert [t.kind for t in tokens] == ["word", "key", "punct", "string", "punct", "string", "punct"]
