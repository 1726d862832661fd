"""
Builders shared by the test modules.
"""

import textwrap

ARTIFACT_BYTES = b"not really a disk image\n" * 64


def cask_text(
    identifier: str = "font-sf-arabic",
    *,
    url: str = "https://devimages-cdn.apple.com/design/resources/download/SF-Arabic.dmg",
    sha256: str = ":no_check",
    extra: str = "",
) -> str:
    """Build a descriptor in the shape of the shipped example."""
    sha_arg = sha256 if sha256.startswith(":") else f'"{sha256}"'
    body = textwrap.dedent(f"""\
        cask "{identifier}" do
          version "18.0d7e1"
          sha256 {sha_arg}

          url "{url}"
          name "San Francisco Arabic"
          name "SF Arabic"
          desc "Arabic extension of \\"San Francisco\\" by Apple"
          homepage "https://developer.apple.com/fonts"

          pkg "SF Arabic Fonts.pkg"

          uninstall pkgutil: "com.apple.pkg.SFArabicFonts"
        """)
    if extra:
        body += textwrap.indent(textwrap.dedent(extra), "  ")
    return body + "end\n"
