"""Tests for modules/sequence.py (encoder, decoder, output heads)."""

from __future__ import annotations

import pytest
import torch
import torch.nn.functional as F

from modules.layers import AffineLayer, LSTMCell
from modules.nade import Nade
from modules.sequence import BidirectionalEncoder, CategoricalHead, LSTMDecoder, NadeHead


def _cell(input_size: int, hidden: int, seed: int) -> LSTMCell:
    g = torch.Generator().manual_seed(seed)
    return LSTMCell(
        torch.randn(input_size + hidden, 4 * hidden, generator=g) * 0.5,
        torch.randn(4 * hidden, generator=g) * 0.5,
    )


def _reference_step(kernel, bias, x, c, h):
    """One LSTM step written out from the raw kernel and bias."""
    gates = torch.addmm(bias, torch.cat([x, h], dim=1), kernel)
    i, j, f, o = torch.chunk(gates, 4, dim=1)
    c = c * torch.sigmoid(f + 1.0) + torch.sigmoid(i) * torch.tanh(j)
    return c, torch.tanh(c) * torch.sigmoid(o)


def _reference_decode(decoder: LSTMDecoder, z: torch.Tensor, length: int, sample) -> torch.Tensor:
    """Unroll the decoder by hand from its raw weights.

    *sample* maps logits to (next_input, step_output).
    """
    cells = [(cell.projection.kernel, cell.projection.bias) for cell in decoder.rnn.cells]
    init = decoder.z_to_initial_state
    flat = torch.tanh(torch.addmm(init.bias, z, init.kernel))

    cs, hs, offset = [], [], 0
    for kernel, _ in cells:
        width = kernel.shape[1] // 4
        cs.append(flat[:, offset:offset + width])
        hs.append(flat[:, offset + width:offset + 2 * width])
        offset += 2 * width

    proj = decoder.output_projection
    next_input = torch.zeros(z.shape[0], decoder.output_dims)
    outputs = []
    for _ in range(length):
        x = torch.cat([next_input, z], dim=1)
        for layer, (kernel, bias) in enumerate(cells):
            cs[layer], hs[layer] = _reference_step(kernel, bias, x, cs[layer], hs[layer])
            x = hs[layer]
        logits = torch.addmm(proj.bias, hs[-1], proj.kernel)
        next_input, step = sample(logits)
        outputs.append(step)
    return torch.stack(outputs, dim=1)


class TestBidirectionalEncoder:

    def setup_method(self):
        self.depth = 5
        self.hidden = 4
        cell = _cell(self.depth, self.hidden, seed=0)
        # identical directions + identity μ expose [h_fw, h_bw] directly
        identity = AffineLayer(torch.eye(2 * self.hidden), torch.zeros(2 * self.hidden))
        self.encoder = BidirectionalEncoder(cell, cell, identity)
        self.sequence = torch.randn(3, 6, self.depth)

    def test_shape(self):
        assert self.encoder(self.sequence).shape == (3, 2 * self.hidden)
        assert self.encoder.z_dims == 2 * self.hidden

    def test_backward_pass_reverses_time(self):
        mu = self.encoder(self.sequence)
        mu_flipped = self.encoder(torch.flip(self.sequence, dims=[1]))
        h = self.hidden
        assert torch.allclose(mu[:, :h], mu_flipped[:, h:], atol=1e-6)
        assert torch.allclose(mu[:, h:], mu_flipped[:, :h], atol=1e-6)

    def test_deterministic(self):
        assert torch.equal(self.encoder(self.sequence), self.encoder(self.sequence))

    def test_distinct_directions_match_reference(self):
        """fw_cell reads t = 0..T-1, bw_cell reads t = T-1..0; h_fw comes first."""
        fw = _cell(self.depth, self.hidden, seed=10)
        bw = _cell(self.depth, self.hidden, seed=11)
        identity = AffineLayer(torch.eye(2 * self.hidden), torch.zeros(2 * self.hidden))
        encoder = BidirectionalEncoder(fw, bw, identity)

        batch, length, _ = self.sequence.shape
        finals = []
        for cell, steps in ((fw, range(length)), (bw, range(length - 1, -1, -1))):
            c = torch.zeros(batch, self.hidden)
            h = torch.zeros(batch, self.hidden)
            for t in steps:
                c, h = _reference_step(
                    cell.projection.kernel, cell.projection.bias,
                    self.sequence[:, t, :], c, h,
                )
            finals.append(h)

        mu = encoder(self.sequence)
        assert torch.allclose(mu, torch.cat(finals, dim=1), atol=1e-6)
        assert not torch.allclose(mu[:, :self.hidden], mu[:, self.hidden:])

    def test_rank_check(self):
        with pytest.raises(ValueError):
            self.encoder(torch.randn(3, self.depth))

    def test_mu_width_check(self):
        cell = _cell(self.depth, self.hidden, seed=0)
        with pytest.raises(ValueError):
            BidirectionalEncoder(cell, cell, AffineLayer(torch.randn(3, 2), torch.randn(2)))


class TestLSTMDecoder:

    def setup_method(self):
        self.z_dims = 3
        self.output_dims = 6
        self.hidden = (4, 2)
        cells = [
            _cell(self.output_dims + self.z_dims, self.hidden[0], seed=1),
            _cell(self.hidden[0], self.hidden[1], seed=2),
        ]
        state_width = 2 * sum(self.hidden)
        self.z_to_state = AffineLayer(torch.randn(self.z_dims, state_width), torch.randn(state_width))
        self.decoder = LSTMDecoder(
            cells,
            self.z_to_state,
            AffineLayer(torch.randn(self.hidden[-1], self.output_dims), torch.randn(self.output_dims)),
            CategoricalHead(self.output_dims),
        )
        self.z = torch.randn(5, self.z_dims)

    def test_properties(self):
        assert self.decoder.z_dims == self.z_dims
        assert self.decoder.output_dims == self.output_dims
        assert self.decoder.num_layers == 2

    def test_initial_state_slices(self):
        flat = torch.tanh(self.z_to_state(self.z))
        states = self.decoder.initial_states(self.z)
        assert torch.equal(states[0].c, flat[:, 0:4])
        assert torch.equal(states[0].h, flat[:, 4:8])
        assert torch.equal(states[1].c, flat[:, 8:10])
        assert torch.equal(states[1].h, flat[:, 10:12])

    @pytest.mark.parametrize("length", [1, 4, 9])
    def test_categorical_output(self, length: int):
        out = self.decoder(self.z, length)
        assert out.shape == (5, length, 1)
        assert out.dtype == torch.long
        assert ((out >= 0) & (out < self.output_dims)).all()

    def test_zero_length(self):
        out = self.decoder(self.z, 0)
        assert out.shape == (5, 0, 1)
        assert out.dtype == torch.long

    def test_negative_length(self):
        with pytest.raises(ValueError):
            self.decoder(self.z, -1)

    def test_feeds_one_hot_of_previous_label(self):
        """Step t+1 consumes [one_hot(label_t), z], starting from zeros."""
        def argmax_feedback(logits):
            labels = logits.argmax(dim=1)
            return F.one_hot(labels, self.output_dims).float(), labels.unsqueeze(1)

        out = self.decoder(self.z, 6)
        expected = _reference_decode(self.decoder, self.z, 6, argmax_feedback)
        assert torch.equal(out, expected)

    def test_prefix_consistency(self):
        """Generation has no look-ahead: a shorter run is a prefix of a longer one."""
        short = self.decoder(self.z, 3)
        long = self.decoder(self.z, 7)
        assert torch.equal(long[:, :3], short)

    def test_state_width_check(self):
        cells = [_cell(self.output_dims + self.z_dims, 4, seed=1)]
        with pytest.raises(ValueError):
            LSTMDecoder(
                cells,
                AffineLayer(torch.randn(self.z_dims, 7), torch.randn(7)),
                AffineLayer(torch.randn(4, self.output_dims), torch.randn(self.output_dims)),
                CategoricalHead(self.output_dims),
            )

    def test_first_cell_input_check(self):
        cells = [_cell(self.output_dims, 4, seed=1)]
        with pytest.raises(ValueError):
            LSTMDecoder(
                cells,
                AffineLayer(torch.randn(self.z_dims, 8), torch.randn(8)),
                AffineLayer(torch.randn(4, self.output_dims), torch.randn(self.output_dims)),
                CategoricalHead(self.output_dims),
            )


class TestNadeDecoder:

    def setup_method(self):
        self.z_dims = 3
        self.num_dims = 8
        self.num_hidden = 5
        hidden = 4
        nade = Nade(torch.randn(self.num_dims, 1, self.num_hidden), torch.randn(self.num_dims, self.num_hidden, 1))
        width = self.num_hidden + self.num_dims
        self.decoder = LSTMDecoder(
            [_cell(self.num_dims + self.z_dims, hidden, seed=3)],
            AffineLayer(torch.randn(self.z_dims, 2 * hidden), torch.randn(2 * hidden)),
            AffineLayer(torch.randn(hidden, width) * 2, torch.randn(width)),
            NadeHead(nade),
        )

    def test_output_dims(self):
        assert self.decoder.output_dims == self.num_dims

    def test_binary_vectors(self):
        out = self.decoder(torch.randn(2, self.z_dims), 6)
        assert out.shape == (2, 6, self.num_dims)
        assert out.is_floating_point()
        assert ((out == 0) | (out == 1)).all()

    def test_zero_length(self):
        out = self.decoder(torch.randn(2, self.z_dims), 0)
        assert out.shape == (2, 0, self.num_dims)
        assert out.dtype == torch.float32

    def test_feeds_previous_sample(self):
        """Step t+1 consumes [nade_sample_t, z], starting from zeros."""
        nade = self.decoder.head.nade

        def nade_feedback(logits):
            samples = nade.sample(logits[:, :self.num_hidden], logits[:, self.num_hidden:])
            return samples, samples

        z = torch.randn(4, self.z_dims)
        out = self.decoder(z, 5)
        assert torch.equal(out, _reference_decode(self.decoder, z, 5, nade_feedback))

    def test_head_splits_logits(self):
        head = self.decoder.head
        logits = torch.randn(3, self.num_hidden + self.num_dims)
        next_input, step = head(logits)
        expected = head.nade.sample(logits[:, :self.num_hidden], logits[:, self.num_hidden:])
        assert torch.equal(next_input, expected)
        assert torch.equal(step, expected)


class TestCategoricalHead:

    def test_argmax_and_one_hot(self):
        head = CategoricalHead(4)
        logits = torch.tensor([[0.1, 2.0, -1.0, 0.0], [3.0, 0.0, 0.0, 0.0]])
        next_input, labels = head(logits)
        assert labels.tolist() == [[1], [0]]
        assert next_input.tolist() == [[0, 1, 0, 0], [1, 0, 0, 0]]
        assert next_input.dtype == logits.dtype
