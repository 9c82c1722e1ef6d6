from numpy.typing import NDArray

from vocalscan.services.capture import CaptureSession


class SpectralFrameProvider:
    """Hands out the source's current byte spectrum unchanged.

    The array may share storage with the next pull. Anything kept past the
    current tick has to be copied by the consumer.
    """

    def current_frame(self, session: CaptureSession) -> NDArray:
        return session.source.get_frequency_magnitude_buffer(session.handle)
