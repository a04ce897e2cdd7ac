"""Per-application button pages for the Ulanzi D200 deck on X11 desktops."""

__version__ = "0.0.1"