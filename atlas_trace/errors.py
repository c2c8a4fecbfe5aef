"""Exception hierarchy for line parsing and span synthesis."""


class AtlasError(Exception):
    """Base class for every error raised by atlas_trace."""


class MalformedLineError(AtlasError):
    """The line cannot be split into timestamp, hostname and payload."""


class UnrecognizedFormatError(AtlasError):
    """A sub-parser's arity or numeric checks failed."""


class FieldDecodeError(AtlasError):
    """A key=value or embedded JSON fragment could not be decoded."""


class TimestampError(AtlasError):
    """The year-injected timestamp could not be parsed. Fatal for the line."""


class SpanSynthesisError(AtlasError):
    """A record was eligible for tracing but its duration is unusable."""
