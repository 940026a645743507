# trustlens/inference/loader.py
import os
import logging
from typing import Optional

import torch
import torch.nn as nn

from trustlens.errors import InferenceError, ModelUnavailable
from trustlens.inference.preprocess import CHANNELS, IMG_SIZE

logger = logging.getLogger(__name__)

INPUT_SHAPE = (IMG_SIZE, IMG_SIZE, CHANNELS)


def build_placeholder(input_shape=INPUT_SHAPE) -> nn.Sequential:
    """Untrained binary classifier used when no artifact is available.

    Its scores are meaningless; it only keeps the API contract intact.
    Serving only runs forward passes, so the model is never compiled here;
    `compile_binary` gives the loss and optimizer it would be trained with.
    """
    in_features = 1
    for dim in input_shape:
        in_features *= dim
    return nn.Sequential(
        nn.Flatten(),
        nn.Linear(in_features, 128),
        nn.ReLU(),
        nn.Dropout(0.5),
        nn.Linear(128, 64),
        nn.ReLU(),
        nn.Linear(64, 1),
        nn.Sigmoid(),
    )


def compile_binary(model: nn.Module, lr: float = 1e-3):
    """Loss and optimizer a sigmoid-output classifier is trained with."""
    return nn.BCELoss(), torch.optim.Adam(model.parameters(), lr=lr)


def select_device(name: Optional[str] = None) -> torch.device:
    if name:
        return torch.device(name)
    return torch.device("mps" if torch.backends.mps.is_available() else
                        "cuda" if torch.cuda.is_available() else "cpu")


class ModelRunner:
    """Holds the one model a service context serves from.

    ``load`` is called once at startup; after that the model is only ever
    used for forward passes.
    """

    def __init__(self, model_path: str, device: Optional[str] = None, placeholder_seed: int = 42):
        self.model_path = model_path
        self.device = select_device(device)
        self.placeholder_seed = placeholder_seed
        self.model: Optional[nn.Module] = None
        self.source: Optional[str] = None  # "artifact" | "placeholder"

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    def load(self) -> nn.Module:
        model = None
        if os.path.exists(self.model_path):
            try:
                model = torch.jit.load(self.model_path, map_location="cpu")
                self.source = "artifact"
                logger.info("Loaded model from %s", self.model_path)
            except Exception as e:
                logger.error("Error loading model from %s: %s", self.model_path, e)
                logger.warning("Creating placeholder model as fallback")
        else:
            logger.warning("Model file %s not found. Creating a placeholder model", self.model_path)

        if model is None:
            model = self._placeholder()
            self.source = "placeholder"

        self.model = model.eval().to(self.device)
        return self.model

    def _placeholder(self) -> nn.Module:
        # fixed seed so restarts score identical inputs identically
        with torch.random.fork_rng(devices=[]):
            torch.manual_seed(self.placeholder_seed)
            return build_placeholder()

    def infer(self, tensor: torch.Tensor) -> float:
        if self.model is None:
            raise ModelUnavailable()

        with torch.inference_mode():
            batch = tensor.to(self.device, non_blocking=True)
            output = self.model(batch)
            values = output.detach().reshape(-1).cpu()
        del batch, output

        if values.numel() != 1:
            raise InferenceError(message=f"Expected one score, model returned {values.numel()}")
        score = float(values[0])
        if not 0.0 <= score <= 1.0:
            raise InferenceError(message=f"Model score {score} outside [0, 1]")
        return score
