"""wsr: weighted spaced review for Markdown knowledge bases."""

from wsr.consts import VERSION

__version__ = VERSION
