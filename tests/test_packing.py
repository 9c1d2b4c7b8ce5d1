"""Tests for parameter flattening, rebuilding and dual-model packing."""

import pytest
import torch
from torch import nn

from neural_de.errors import ShapeMismatch
from neural_de.packing import check_length, flatten, pack, split


def _mlp(in_dim=2, out_dim=2, hidden=8):
    return nn.Sequential(nn.Linear(in_dim, hidden), nn.Tanh(), nn.Linear(hidden, out_dim))


class TestFlatten:
    def test_vector_is_concatenated_parameters(self):
        model = _mlp()
        vec, _ = flatten(model)
        expected = torch.cat([q.detach().reshape(-1) for q in model.parameters()])
        assert torch.equal(vec, expected)
        assert vec.numel() == sum(q.numel() for q in model.parameters())

    def test_round_trip_matches_original(self):
        torch.manual_seed(0)
        model = _mlp()
        x = torch.tensor([0.3, -1.2])
        vec, re = flatten(model)
        assert torch.equal(re(vec)(x), model(x))

    def test_rebuild_uses_given_vector_without_mutating_model(self):
        model = _mlp()
        before = [q.detach().clone() for q in model.parameters()]
        vec, re = flatten(model)
        out = re(torch.zeros_like(vec))(torch.ones(2))
        assert torch.equal(out, torch.zeros(2))
        for q, q0 in zip(model.parameters(), before):
            assert torch.equal(q, q0)

    def test_vector_is_a_copy(self):
        model = _mlp()
        vec, _ = flatten(model)
        vec.zero_()
        assert any(q.abs().sum() > 0 for q in model.parameters())

    def test_gradient_reaches_vector(self):
        model = _mlp()
        vec, re = flatten(model)
        vec.requires_grad_(True)
        re(vec)(torch.ones(2)).sum().backward()
        assert vec.grad is not None
        assert vec.grad.shape == vec.shape

    def test_buffers_stay_with_module(self):
        torch.manual_seed(0)
        net = nn.BatchNorm1d(2)
        vec, re = flatten(net)
        assert vec.numel() == 4
        re(vec)(torch.randn(8, 2) + 3.0)
        # running statistics are not part of the vector
        assert int(net.num_batches_tracked) == 1
        assert not torch.equal(net.running_mean, torch.zeros(2))

    def test_wrong_length_raises(self):
        vec, re = flatten(_mlp())
        with pytest.raises(ShapeMismatch):
            re(vec[:-1])


class TestPack:
    def test_pack_concatenates_and_records_offset(self):
        p1, _ = flatten(_mlp(2, 2))
        p2, _ = flatten(_mlp(2, 3, hidden=4))
        p, offset = pack(p1, p2)
        assert torch.equal(p, torch.cat([p1, p2]))
        assert offset == p1.numel()

    def test_split_recovers_both_halves(self):
        p1 = torch.arange(5.0)
        p2 = torch.arange(5.0, 12.0)
        p, offset = pack(p1, p2)
        a, b = split(p, offset)
        assert torch.equal(a, p1)
        assert torch.equal(b, p2)

    def test_check_length(self):
        assert check_length(torch.zeros(4), 4).numel() == 4
        with pytest.raises(ShapeMismatch):
            check_length(torch.zeros(3), 4)
        with pytest.raises(ShapeMismatch):
            check_length(torch.zeros(2, 2), 4)
