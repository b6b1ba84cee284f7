# errors.py: Error taxonomy for the watermarking engine
#
# "No watermark found" is never an error: extract() returns None for that.


class ReclaimError(Exception):
    """Base class for all engine errors"""


class CapacityExceeded(ReclaimError):
    """The carrier image is too small for the payload"""

    def __init__(self, required_bits: int, available_bits: int):
        self.required_bits = required_bits
        self.available_bits = available_bits
        super().__init__(
            f"Payload needs {required_bits} bits but image only holds {available_bits} bits"
        )


class MalformedInput(ReclaimError):
    """Input is not a decodable image or video"""


class MediaProcessingError(ReclaimError):
    """An ffmpeg/ffprobe subprocess failed or timed out"""


class InvalidRecord(ReclaimError, ValueError):
    """A WatermarkRecord cannot be encoded"""
