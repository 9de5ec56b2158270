"""Exception taxonomy for the redubbing engine."""


class RedubError(Exception):
    """Base class for all redubber errors."""


class MalformedCueError(RedubError):
    """No usable cue could be parsed from the input."""


class SynthesisError(RedubError):
    """A single render failed. Recoverable: drives retry or fallback."""


class SynthesisTimeoutError(SynthesisError):
    """The engine did not finish within the hard timeout."""


class SynthesisEmptyOutputError(SynthesisError):
    """The engine produced no usable audio."""


class SynthesisFailedError(SynthesisError):
    """The engine exited with an error."""


class SynthesisArtifactExistsError(SynthesisError):
    """The attempt file already exists and is never overwritten."""


class AnalysisFailure(RedubError):
    """Audio analysis could not be completed."""


class AssemblyEmptyError(RedubError):
    """Nothing to assemble."""


class RunCancelled(RedubError):
    """The run was cancelled between segments or iterations."""
