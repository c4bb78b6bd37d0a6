"""Errors raised while parsing and extracting EPUB files."""


class EpubExtractError(Exception):
    """Base class for all extraction errors."""

    pass


class MalformedArchiveError(EpubExtractError):
    """Input bytes are not a readable ZIP container."""

    pass


class MissingRootError(EpubExtractError):
    """container.xml is absent or does not lead to a package document."""

    pass


class MissingPackageDocumentError(EpubExtractError):
    """The package document referenced by container.xml is not in the archive."""

    pass


class MalformedPackageError(EpubExtractError):
    """container.xml or the package document is not well-formed XML."""

    pass


class NoChaptersSelectedError(EpubExtractError):
    """The selection matched no chapters in the parsed tree."""

    pass


class SerializationError(EpubExtractError):
    """Writing an output archive failed."""

    pass


class ExtractionCancelled(EpubExtractError):
    """Extraction was cancelled between units."""

    pass
