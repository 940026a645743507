# trustlens/inference/service.py
import os
import logging
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Literal, Optional

from trustlens.errors import DecodeError, InferenceError, ModelUnavailable, TrustLensError, ValidationError
from trustlens.inference.preprocess import ImagePreprocessor
from trustlens.inference.video_reader import representative_frame

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class PredictionResult:
    label: Literal["Fake", "Real"]
    confidence: float

    def to_dict(self) -> dict:
        return {"label": self.label, "confidence": self.confidence}


def label_for(confidence: float, threshold: float = 0.5) -> str:
    # exactly at the threshold counts as Real
    return "Fake" if confidence > threshold else "Real"


class PredictionService:
    def __init__(self, runner, preprocessor: Optional[ImagePreprocessor] = None, *,
                 upload_dir: str = "uploads", max_upload_bytes: int = 50 * 1024 * 1024,
                 threshold: float = 0.5, extract_video_frames: bool = False):
        self.runner = runner
        self.preprocessor = preprocessor or ImagePreprocessor()
        self.upload_dir = upload_dir
        self.max_upload_bytes = max_upload_bytes
        self.threshold = threshold
        self.extract_video_frames = extract_video_frames

    @property
    def max_upload_mb(self) -> int:
        return self.max_upload_bytes // (1024 * 1024)

    def predict(self, raw_bytes: bytes) -> PredictionResult:
        if not self.runner.is_loaded:
            raise ModelUnavailable()
        tensor = self.preprocessor.preprocess(raw_bytes)
        return self._classify(tensor)

    def _classify(self, tensor) -> PredictionResult:
        confidence = self.runner.infer(tensor)
        return PredictionResult(label=label_for(confidence, self.threshold),
                                confidence=round(confidence, 4))

    @contextmanager
    def stage_upload(self, fileobj: BinaryIO, suffix: str = "") -> Iterator[str]:
        """Copies an upload to a temp file under ``upload_dir``.

        Raises ValidationError as soon as more than ``max_upload_bytes`` have
        been read. The file is removed however the block exits.
        """
        os.makedirs(self.upload_dir, exist_ok=True)
        with tempfile.NamedTemporaryFile(delete=False, dir=self.upload_dir, suffix=suffix) as tmp:
            tmp_path = tmp.name
        try:
            written = 0
            with open(tmp_path, "wb") as out:
                while True:
                    chunk = fileobj.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_upload_bytes:
                        raise ValidationError(f"File size too large. Max {self.max_upload_mb}MB allowed.")
                    out.write(chunk)
            yield tmp_path
        finally:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass

    def predict_file(self, path: str, content_type: Optional[str] = None) -> PredictionResult:
        if not self.runner.is_loaded:
            raise ModelUnavailable()

        if self.extract_video_frames and (content_type or "").startswith("video/"):
            frame = representative_frame(path)
            if frame is None:
                raise DecodeError(message="Could not decode video or no frames found")
            return self._classify(self.preprocessor.preprocess_image(frame))

        # videos without frame extraction go through the image decoder as-is
        with open(path, "rb") as f:
            raw_bytes = f.read()
        return self.predict(raw_bytes)

    def predict_upload(self, fileobj: BinaryIO, content_type: Optional[str] = None,
                       filename: Optional[str] = None) -> PredictionResult:
        suffix = os.path.splitext(filename or "")[1]
        try:
            with self.stage_upload(fileobj, suffix=suffix) as path:
                return self.predict_file(path, content_type)
        except TrustLensError:
            raise
        except Exception as e:
            logger.exception("Prediction error for %s", filename)
            raise InferenceError(message=str(e)) from e
