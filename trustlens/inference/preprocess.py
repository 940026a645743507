# trustlens/inference/preprocess.py
import io

import torch
from PIL import Image, UnidentifiedImageError
from torchvision import transforms

from trustlens.errors import DecodeError

IMG_SIZE = 224  # must match the model input
CHANNELS = 3
WIDE_MODES = ("I", "I;16", "I;16L", "I;16B", "I;16N")


class ImagePreprocessor:
    """Turns uploaded image bytes into a ``(1, H, W, 3)`` float tensor in [0, 1].

    The steps are kept separate (``decode``, ``resize``, ``drop_alpha``,
    ``normalize``) so the service only depends on ``preprocess`` and the
    image library behind it can be swapped.
    """

    def __init__(self, size: int = IMG_SIZE):
        self.size = size
        # bilinear is the torchvision default for PIL inputs
        self._resize = transforms.Resize((size, size), antialias=True)
        self._to_tensor = transforms.PILToTensor()

    def decode(self, raw_bytes: bytes) -> Image.Image:
        if not raw_bytes:
            raise DecodeError(message="Cannot read image: empty upload")
        try:
            image = Image.open(io.BytesIO(raw_bytes))
            image.load()
            if image.mode in WIDE_MODES:
                # 16-bit samples: scale 0..65535 down to 0..255
                image = image.convert("I").point(lambda v: v * (1 / 257)).convert("L")
            if image.mode not in ("RGB", "RGBA"):
                # palette / greyscale / CMYK images, keeping transparency if any
                image = image.convert("RGBA" if "transparency" in image.info or "A" in image.getbands() else "RGB")
        except (UnidentifiedImageError, OSError, ValueError, SyntaxError, EOFError) as e:
            raise DecodeError(message=f"Cannot read image: {e}") from e
        return image

    def resize(self, image: Image.Image) -> Image.Image:
        return self._resize(image)

    def drop_alpha(self, image: Image.Image) -> Image.Image:
        if image.mode == "RGBA":
            # discard the alpha band, no compositing
            r, g, b, _ = image.split()
            return Image.merge("RGB", (r, g, b))
        return image

    def normalize(self, image: Image.Image) -> torch.Tensor:
        pixels = self._to_tensor(image)               # [3,H,W] uint8
        tensor = pixels.permute(1, 2, 0).contiguous()  # [H,W,3] channel-last
        tensor = tensor.to(torch.float32).div_(255.0)
        return tensor.unsqueeze(0)                    # [1,H,W,3]

    def preprocess_image(self, image: Image.Image) -> torch.Tensor:
        return self.normalize(self.drop_alpha(self.resize(image)))

    def preprocess(self, raw_bytes: bytes) -> torch.Tensor:
        return self.preprocess_image(self.decode(raw_bytes))

    __call__ = preprocess
