# trustlens/inference/video_reader.py
from typing import Optional

import cv2
from PIL import Image


def representative_frame(video_path: str) -> Optional[Image.Image]:
    """Returns the middle frame of the clip as an RGB PIL Image.

    cv2.VideoCapture needs a path, so callers pass the staged upload file.
    None means OpenCV could not open the container or read a frame.
    """
    cap = cv2.VideoCapture(video_path)
    try:
        if not cap.isOpened():
            return None

        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT)) or 0
        if frame_count > 1:
            cap.set(cv2.CAP_PROP_POS_FRAMES, frame_count // 2)
        ok, frame = cap.read()
        if not ok or frame is None:
            return None
        frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return Image.fromarray(frame)
    finally:
        cap.release()
