"""macOS adapters — installer packages via hdiutil, installer and pkgutil."""

from caskctl.adapters.macos.pkg import PkgInstallerAdapter

__all__ = ["PkgInstallerAdapter"]
