import pytest
import torch
import torch.nn as nn

from trustlens.errors import InferenceError, ModelUnavailable
from trustlens.inference.loader import INPUT_SHAPE, ModelRunner, build_placeholder, compile_binary


class MeanScore(nn.Module):
    def forward(self, x):
        return torch.sigmoid(x.mean()).reshape(1, 1)


class ConstantScore(nn.Module):
    def __init__(self, value):
        super().__init__()
        self.value = value

    def forward(self, x):
        return torch.full((x.shape[0], 1), self.value)


def sample(seed=0):
    return torch.rand((1,) + INPUT_SHAPE, generator=torch.Generator().manual_seed(seed))


def test_infer_before_load_raises(tmp_path):
    runner = ModelRunner(str(tmp_path / "model.pt"), device="cpu")
    assert not runner.is_loaded
    with pytest.raises(ModelUnavailable) as exc:
        runner.infer(sample())
    assert isinstance(exc.value, RuntimeError)


def test_placeholder_when_artifact_missing(placeholder_runner):
    assert placeholder_runner.is_loaded
    assert placeholder_runner.source == "placeholder"
    assert not placeholder_runner.model.training
    score = placeholder_runner.infer(sample())
    assert isinstance(score, float)
    assert 0.0 <= score <= 1.0


def test_placeholder_is_deterministic(placeholder_runner):
    assert placeholder_runner.infer(sample(3)) == placeholder_runner.infer(sample(3))


def test_placeholder_seed_does_not_touch_global_rng(tmp_path):
    torch.manual_seed(1234)
    expected = torch.rand(4)
    torch.manual_seed(1234)
    ModelRunner(str(tmp_path / "nope.pt"), device="cpu").load()
    assert torch.equal(torch.rand(4), expected)


def test_placeholder_architecture():
    layers = list(build_placeholder())
    assert [type(layer) for layer in layers] == [
        nn.Flatten, nn.Linear, nn.ReLU, nn.Dropout, nn.Linear, nn.ReLU, nn.Linear, nn.Sigmoid,
    ]
    assert layers[1].in_features == 224 * 224 * 3
    assert layers[1].out_features == 128
    assert layers[3].p == 0.5
    assert layers[4].out_features == 64
    assert layers[6].out_features == 1


def test_compile_binary():
    model = build_placeholder((4, 4, 3))
    loss, opt = compile_binary(model, lr=0.01)
    assert isinstance(loss, nn.BCELoss)
    assert isinstance(opt, torch.optim.Adam)
    assert opt.param_groups[0]["lr"] == 0.01


def test_loads_torchscript_artifact(tmp_path):
    path = tmp_path / "model.pt"
    torch.jit.script(MeanScore()).save(str(path))

    runner = ModelRunner(str(path), device="cpu")
    runner.load()
    assert runner.source == "artifact"
    x = sample(7)
    assert runner.infer(x) == pytest.approx(torch.sigmoid(x.mean()).item())


def test_corrupt_artifact_falls_back_to_placeholder(tmp_path, caplog):
    path = tmp_path / "model.pt"
    path.write_bytes(b"this is not a torchscript archive")

    runner = ModelRunner(str(path), device="cpu")
    runner.load()
    assert runner.source == "placeholder"
    assert "Error loading model" in caplog.text
    assert 0.0 <= runner.infer(sample()) <= 1.0


def test_rejects_multi_value_output(tmp_path):
    runner = ModelRunner(str(tmp_path / "model.pt"), device="cpu")
    runner.model = nn.Identity()
    with pytest.raises(InferenceError):
        runner.infer(sample())


@pytest.mark.parametrize("value", [1.5, -0.1, float("nan")])
def test_rejects_out_of_range_score(tmp_path, value):
    runner = ModelRunner(str(tmp_path / "model.pt"), device="cpu")
    runner.model = ConstantScore(value)
    with pytest.raises(InferenceError):
        runner.infer(sample())


def test_compile_binary_trains_served_placeholder(placeholder_runner):
    model = placeholder_runner.model
    loss, opt = compile_binary(model)
    params = opt.param_groups[0]["params"]
    assert [id(p) for p in params] == [id(p) for p in model.parameters()]
    assert not model.training
    assert loss(torch.tensor([0.25]), torch.tensor([0.0])).item() == pytest.approx(0.2877, abs=1e-4)
