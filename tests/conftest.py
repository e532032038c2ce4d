import numpy as np
import pytest

from video2lottie.core import BezierVertex, PaletteColor, ShapeGroup, VectorPath
from video2lottie.core.video_loader import VideoSource


class FakeVideoSource(VideoSource):
    """In-memory source.

    By default the red channel of every pixel holds its column index. With
    ``scene=True`` frames show a red square on a green screen instead.
    """

    def __init__(self, width=64, height=48, duration=2.0, fps=30.0, on_seek=None, scene=False):
        self.width = width
        self.height = height
        self.duration = duration
        self.fps = fps
        self.seeks = []
        self.on_seek = on_seek
        self.scene = scene
        self.closed = False

    def seek(self, timestamp):
        self.seeks.append(timestamp)
        if self.on_seek is not None:
            self.on_seek(len(self.seeks))

    def read_current_frame(self):
        frame = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        frame[..., 3] = 255
        if self.scene:
            frame[..., 1] = 255
            h, w = self.height // 4, self.width // 4
            frame[h : self.height - h, w : self.width - w] = (255, 0, 0, 255)
            return frame
        frame[..., 0] = np.arange(self.width, dtype=np.uint8)[None, :]
        frame[..., 1] = 255
        return frame

    def close(self):
        self.closed = True


@pytest.fixture
def fake_source():
    return FakeVideoSource()


def square_raster(size=32, inset=8, color=(255, 0, 0, 255)):
    pixels = np.zeros((size, size, 4), dtype=np.uint8)
    pixels[inset : size - inset, inset : size - inset] = color
    return pixels


def triangle_group(color=PaletteColor(10, 20, 30, 255)):
    path = VectorPath(
        vertices=[
            BezierVertex((0.0, 0.0)),
            BezierVertex((10.0, 0.0), (-1.5, 0.0), (0.0, 2.25)),
            BezierVertex((5.0, 8.0)),
        ]
    )
    return ShapeGroup(color=color, paths=[path], name="Color 1")
