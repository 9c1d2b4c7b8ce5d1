"""Tests for model kinds and the explicit-state adapter."""

import pytest
import torch
from torch import nn

from neural_de.capability import ExplicitModule, ModelKind, initial_vector, model_kind
from neural_de.errors import ShapeMismatch


def test_model_kind():
    assert model_kind(nn.Linear(2, 2)) is ModelKind.SELF_CONTAINED
    assert model_kind(ExplicitModule(nn.Linear(2, 2))) is ModelKind.EXPLICIT_STATE
    with pytest.raises(TypeError):
        model_kind(lambda x: x)


def test_explicit_module_matches_module():
    torch.manual_seed(0)
    net = nn.Sequential(nn.Linear(2, 4), nn.Tanh(), nn.Linear(4, 2))
    model = ExplicitModule(net)
    x = torch.randn(2)
    y, st = model(x, model.init_params(), model.init_state())
    assert torch.allclose(y, net(x))
    assert st == {}
    assert model.parameter_count == sum(q.numel() for q in net.parameters())


def test_explicit_module_threads_buffers_without_mutating_module():
    torch.manual_seed(0)
    net = nn.BatchNorm1d(2)
    model = ExplicitModule(net)
    st0 = model.init_state()
    _, st1 = model(torch.randn(8, 2) + 3.0, model.init_params(), st0)
    assert not torch.equal(st1["running_mean"], st0["running_mean"])
    assert int(st1["num_batches_tracked"]) == 1
    assert torch.equal(net.running_mean, torch.zeros(2))
    assert torch.equal(st0["running_mean"], torch.zeros(2))


def test_explicit_module_rejects_wrong_length():
    model = ExplicitModule(nn.Linear(2, 2))
    with pytest.raises(ShapeMismatch):
        model(torch.ones(2), torch.zeros(3), {})


def test_initial_vector():
    net = nn.Linear(3, 2)
    vec, re = initial_vector(net)
    assert vec.numel() == 8
    assert re is not None

    vec, re = initial_vector(ExplicitModule(net))
    assert vec.numel() == 8
    assert re is None
