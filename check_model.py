# check_model.py
import argparse
import sys

import torch

from trustlens.config import Settings
from trustlens.inference.loader import INPUT_SHAPE, ModelRunner, compile_binary
from trustlens.inference.service import label_for


def main(argv=None):
    settings = Settings.from_env()
    ap = argparse.ArgumentParser(description="Load the detector model and run one random forward pass")
    ap.add_argument("--model", default=settings.model_path, help="TorchScript model file")
    ap.add_argument("--device", default=settings.device)
    ap.add_argument("--seed", type=int, default=0, help="seed for the random input")
    args = ap.parse_args(argv)

    runner = ModelRunner(args.model, device=args.device, placeholder_seed=settings.placeholder_seed)
    try:
        model = runner.load()
    except Exception as e:
        print("Error loading model:", e, file=sys.stderr)
        return 1

    print(f"Model source: {runner.source}  device: {runner.device}")
    print(model)
    n_params = sum(p.numel() for p in model.parameters())
    print(f"Parameters: {n_params:,}")
    if runner.source == "placeholder":
        loss, opt = compile_binary(model)
        print(f"Placeholder compiled with {type(loss).__name__} / {type(opt).__name__}")

    gen = torch.Generator().manual_seed(args.seed)
    sample = torch.rand((1,) + INPUT_SHAPE, generator=gen)
    try:
        confidence = runner.infer(sample)
    except Exception as e:
        print("Prediction failed:", e, file=sys.stderr)
        return 1

    print(f"Input shape: {list(sample.shape)}")
    print(f"Confidence score: {confidence:.4f}")
    print(f"Label: {label_for(confidence, settings.threshold)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
