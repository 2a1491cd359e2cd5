"""
Exception types raised by the pipeline.
"""


class PipelineError(Exception):
    """Base class for fatal pipeline errors."""


class ConfigurationError(PipelineError):
    """Missing or ambiguous configuration, raised before any matrix work."""


class FormatError(PipelineError, ValueError):
    """An input file does not have the expected layout."""

    def __init__(self, path, detail: str = "Unknown file format"):
        self.path = path
        super().__init__(f"{detail}: {path}")


class ExternalToolError(PipelineError):
    """An external program failed or produced no output."""

    def __init__(self, tool, detail: str = "Failed to run"):
        self.tool = tool
        super().__init__(f"{detail} {tool}")
