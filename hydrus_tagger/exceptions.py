"""
Exceptions raised by the Hydrus Auto-Tagger.

Startup errors (configuration, model load, service resolution) abort a run;
everything else is raised per image and isolated by the scheduler.
"""


class TaggerError(Exception):
    """Base class for all tagger errors."""
    pass


class ConfigurationError(TaggerError):
    """Bad model directory, manifest, label file or CLI input."""
    pass


class ModelLoadError(TaggerError):
    """The inference engine could not load the model weights."""
    pass


class InferenceError(TaggerError):
    """The inference call failed or returned an unexpected output."""
    pass


class ServiceNotFoundError(TaggerError):
    """No tag service with the requested name exists."""
    pass


class DecodeError(TaggerError):
    """Neither the original file nor its render could be decoded."""
    pass


class NetworkError(TaggerError):
    """A request to the Hydrus Client API failed."""
    pass


class CommitError(NetworkError):
    """Adding tags to a file failed."""
    pass


class EmptyRatingsError(TaggerError):
    """Ratings were enabled but the model produced none."""
    pass
