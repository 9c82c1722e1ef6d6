class VocalScanError(Exception):
    """Base class for errors reported by the capture/analysis pipeline."""


class CaptureUnavailableError(VocalScanError):
    """No usable input device, or microphone permission was denied."""


class MalformedBufferError(VocalScanError):
    """A sample buffer did not have the length the session was opened with."""

    def __init__(self, kind: str, expected: int, actual: int):
        self.kind = kind
        self.expected = expected
        self.actual = actual
        super().__init__(f"{kind} buffer has {actual} samples, expected {expected}")


class AnalysisFailureError(VocalScanError):
    """The remote voice analysis failed or returned nothing usable."""
