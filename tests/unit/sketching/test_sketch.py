"""Tests for the quantile sketch."""

import math

import pytest

from fastquantiles.sketching import (
    DEFAULT_MAX_NODE_CAPACITY,
    EmptySketch,
    InvalidConfiguration,
    InvalidQuantile,
    MergePolicy,
    QuantileSketch,
    QuantileSketchError,
    Sketch,
    node_capacity,
)
from fastquantiles.sketching.invariants import check_accuracy, check_sketch

PHIS = [0.0, 0.001, 0.01, 0.1, 0.25, 0.333, 0.5, 0.667, 0.75, 0.9, 0.99, 0.999, 1.0]


class TestSketchCreation:
    """Tests for construction and configuration."""

    def test_creates_empty(self):
        """A new sketch has no values and no samples."""
        sketch = Sketch(0.01)

        assert sketch.epsilon == 0.01
        assert sketch.count == 0
        assert sketch.item_count == 0
        assert sketch.sample_count == 0
        assert sketch.min is None
        assert sketch.max is None
        assert sketch.merge_policy is MergePolicy.WIDEN

    def test_is_a_quantile_sketch(self):
        """Sketch implements the QuantileSketch protocol."""
        assert isinstance(Sketch(0.1), QuantileSketch)

    def test_default_node_capacity(self):
        """The node width is derived from epsilon."""
        assert Sketch(0.001).node_capacity == node_capacity(0.001)

    def test_custom_node_capacity(self):
        """An explicit odd node width is accepted."""
        assert Sketch(0.01, node_capacity=5).node_capacity == 5

    def test_compaction_period(self):
        """Full compactions run every ceil(1 / (2 * epsilon)) records."""
        assert Sketch(0.25).compact_every == 2
        assert Sketch(0.125).compact_every == 4
        assert Sketch(0.3).compact_every == 2

    def test_policy_from_string(self):
        """merge_policy accepts the enum value."""
        assert Sketch(0.1, merge_policy="strict").merge_policy is MergePolicy.STRICT

    @pytest.mark.parametrize("epsilon", [0, 1, -0.1, 1.5, float("nan")])
    def test_rejects_epsilon_out_of_range(self, epsilon):
        """epsilon must be strictly between 0 and 1."""
        with pytest.raises(InvalidConfiguration, match="epsilon must be in"):
            Sketch(epsilon)

    @pytest.mark.parametrize("node_width", [None, 7])
    @pytest.mark.parametrize("epsilon", [1e-310, 5e-324])
    def test_rejects_subnormal_epsilon(self, epsilon, node_width):
        """An epsilon whose compaction period overflows is a configuration error."""
        with pytest.raises(InvalidConfiguration, match="too small"):
            Sketch(epsilon, node_capacity=node_width)

    def test_accepts_tiny_normal_epsilon(self):
        """Tiny but representable epsilons still build a sketch."""
        sketch = Sketch(1e-300)

        assert sketch.node_capacity == DEFAULT_MAX_NODE_CAPACITY
        assert sketch.compact_every == math.ceil(1.0 / 2e-300)

    @pytest.mark.parametrize("epsilon", ["0.1", None, True])
    def test_rejects_non_numeric_epsilon(self, epsilon):
        """epsilon must be a real number."""
        with pytest.raises(InvalidConfiguration, match="real number"):
            Sketch(epsilon)

    @pytest.mark.parametrize("capacity", [1, 2, 4, 100])
    def test_rejects_bad_node_capacity(self, capacity):
        """node_capacity must be odd and at least 3."""
        with pytest.raises(InvalidConfiguration, match="odd integer"):
            Sketch(0.01, node_capacity=capacity)

    def test_rejects_non_integer_capacity(self):
        """node_capacity must be an int."""
        with pytest.raises(InvalidConfiguration, match="must be an integer"):
            Sketch(0.01, node_capacity=7.0)

    def test_rejects_unknown_policy(self):
        """Unknown merge policies are configuration errors."""
        with pytest.raises(InvalidConfiguration, match="Unknown merge_policy"):
            Sketch(0.01, merge_policy="sometimes")

    def test_configuration_errors_are_value_errors(self):
        """Callers catching ValueError still see configuration errors."""
        with pytest.raises(ValueError):
            Sketch(2.0)
        with pytest.raises(QuantileSketchError):
            Sketch(2.0)


class TestSketchRecord:
    """Tests for recording values."""

    def test_record_single_value(self):
        """One value is tracked exactly."""
        sketch = Sketch(0.01)
        sketch.record(42.0)

        assert sketch.count == 1
        assert sketch.min == 42.0
        assert sketch.max == 42.0
        assert sketch.sample_count == 1

    def test_record_many(self):
        """record_many records every value in order."""
        sketch = Sketch(0.01)
        sketch.record_many([3, 1, 2])

        assert sketch.count == 3
        assert sketch.min == 1
        assert sketch.max == 3

    def test_rejects_none(self):
        """None has no order."""
        sketch = Sketch(0.01)

        with pytest.raises(TypeError, match="None"):
            sketch.record(None)
        assert sketch.count == 0

    def test_rejects_nan(self):
        """NaN would break the total order."""
        sketch = Sketch(0.01)

        with pytest.raises(ValueError, match="NaN"):
            sketch.record(math.nan)
        assert sketch.count == 0

    def test_accepts_any_ordered_type(self):
        """Strings and tuples work as long as they compare."""
        sketch = Sketch(0.1)
        sketch.record_many(["pear", "apple", "fig"])

        assert sketch.quantile(0.0)[0] == "apple"
        assert sketch.quantile(1.0)[0] == "pear"

    def test_small_streams_stay_exact(self, rng):
        """Below 1 / (2 * epsilon) values nothing is folded."""
        sketch = Sketch(0.001)
        sketch.record_many(rng.random() for _ in range(100))

        assert sketch.sample_count == 100
        assert sketch.max_current_error() == pytest.approx(1 / 200)

    def test_space_is_bounded(self, rng):
        """A long stream keeps far fewer samples than values."""
        sketch = Sketch(0.01)
        sketch.record_many(rng.random() for _ in range(20_000))

        assert sketch.count == 20_000
        assert sketch.sample_count < 20_000 // 4
        check_sketch(sketch)

    def test_samples_are_ascending(self, rng):
        """samples() returns the retained samples in order."""
        sketch = Sketch(0.05)
        sketch.record_many(rng.randint(0, 1000) for _ in range(3000))

        values = [s.value for s in sketch.samples()]
        assert values == sorted(values)
        assert len(values) == sketch.sample_count

    def test_compact_returns_retained(self, rng):
        """A manual compaction reports the retained sample count."""
        sketch = Sketch(0.001)
        sketch.record_many(range(400))

        retained = sketch.compact()

        assert retained == sketch.sample_count
        check_sketch(sketch)

    def test_max_current_error_within_epsilon(self, rng):
        """The retained samples never promise more error than epsilon."""
        sketch = Sketch(0.02)
        sketch.record_many(rng.gauss(0, 1) for _ in range(10_000))

        assert 0 < sketch.max_current_error() <= 0.02

    def test_max_current_error_empty(self):
        """An empty sketch has no error."""
        assert Sketch(0.1).max_current_error() == 0.0


class TestSketchInvariants:
    """Structural invariants hold throughout a stream."""

    @pytest.mark.parametrize("order", ["random", "sorted", "reversed", "duplicates", "zigzag"])
    def test_invariants_during_stream(self, rng, order):
        """check_sketch passes at regular points of every stream shape."""
        n = 4000
        if order == "random":
            values = [rng.random() for _ in range(n)]
        elif order == "sorted":
            values = list(range(n))
        elif order == "reversed":
            values = list(range(n, 0, -1))
        elif order == "duplicates":
            values = [rng.randint(0, 9) for _ in range(n)]
        else:
            values = [i if i % 2 else n - i for i in range(n)]

        sketch = Sketch(0.01)
        for i, value in enumerate(values, start=1):
            sketch.record(value)
            if i % 97 == 0:
                check_sketch(sketch)
        check_sketch(sketch)

    @pytest.mark.parametrize("order", ["sorted", "reversed"])
    def test_depth_stays_logarithmic(self, order):
        """Monotone streams do not degrade the tree into a chain."""
        n = 20_000
        values = range(n) if order == "sorted" else range(n, 0, -1)
        sketch = Sketch(0.001)
        sketch.record_many(values)

        run = (sketch.node_capacity + 1) // 2
        balanced = (sketch.sample_count // run + 1).bit_length()
        assert sketch.depth <= 3 * balanced + 8
        assert sketch.depth < 40


class TestSketchQuantile:
    """Tests for quantile queries."""

    def test_small_exact_stream(self):
        """Five values with a fine epsilon are answered exactly."""
        sketch = Sketch(0.001)
        sketch.record_many([5, 1, 4, 2, 3])

        assert sketch.quantile(0.5) == (3, 0.0)
        assert sketch.quantile(0.0) == (1, 0.0)
        assert sketch.quantile(1.0) == (5, 0.0)
        assert sketch.min == 1
        assert sketch.max == 5

    def test_rank_is_ceiling_of_phi_n(self):
        """The target rank is ceil(phi * n)."""
        sketch = Sketch(0.001)
        sketch.record_many(range(1, 11))

        assert sketch.quantile(0.1)[0] == 1
        assert sketch.quantile(0.11)[0] == 2
        assert sketch.quantile(0.3)[0] == 3
        assert sketch.quantile(0.95)[0] == 10

    def test_single_value(self):
        """Every quantile of one value is that value."""
        sketch = Sketch(0.1)
        sketch.record(7)

        for phi in PHIS:
            assert sketch.quantile(phi) == (7, 0.0)

    def test_extremes_are_exact(self, rng):
        """phi = 0 and 1 return the true minimum and maximum."""
        values = [rng.gauss(10, 3) for _ in range(5000)]
        sketch = Sketch(0.05)
        sketch.record_many(values)

        assert sketch.quantile(0.0) == (min(values), 0.0)
        assert sketch.quantile(1.0) == (max(values), 0.0)

    @pytest.mark.parametrize("epsilon", [0.1, 0.01, 0.005])
    @pytest.mark.parametrize("order", ["random", "sorted", "reversed", "duplicates"])
    def test_rank_error_within_epsilon(self, rng, epsilon, order):
        """Every answer is within epsilon * n ranks of the target."""
        n = 5000
        if order == "random":
            values = [rng.random() for _ in range(n)]
        elif order == "sorted":
            values = list(range(n))
        elif order == "reversed":
            values = list(range(n, 0, -1))
        else:
            values = [rng.randint(0, 50) for _ in range(n)]

        sketch = Sketch(epsilon)
        sketch.record_many(values)
        phis = PHIS + [i / 200 for i in range(1, 200)]

        worst = check_accuracy(sketch, sorted(values), phis)
        assert worst <= epsilon

    def test_reported_error_bounded(self, rng):
        """The reported uncertainty never exceeds 2 * epsilon."""
        sketch = Sketch(0.01)
        sketch.record_many(rng.random() for _ in range(10_000))

        for phi in PHIS:
            _, error = sketch.quantile(phi)
            assert 0.0 <= error <= 0.02

    def test_monotonic_in_phi(self, rng):
        """Larger quantiles never return smaller values."""
        sketch = Sketch(0.01)
        sketch.record_many(rng.expovariate(1.0) for _ in range(10_000))

        answers = sketch.quantiles([i / 1000 for i in range(1001)])

        assert answers == sorted(answers)

    def test_percentile(self):
        """percentile(p) is quantile(p / 100)."""
        sketch = Sketch(0.001)
        sketch.record_many(range(1, 101))

        assert sketch.percentile(50) == 50
        assert sketch.percentile(99) == 99
        assert sketch.percentile(100) == 100

    @pytest.mark.parametrize("phi", [-0.01, 1.01, 2])
    def test_rejects_phi_out_of_range(self, phi):
        """phi must be within [0, 1]."""
        sketch = Sketch(0.1)
        sketch.record(1)

        with pytest.raises(InvalidQuantile, match="must be in"):
            sketch.quantile(phi)

    @pytest.mark.parametrize("p", [-1, 101])
    def test_rejects_percentile_out_of_range(self, p):
        """p must be within [0, 100]."""
        sketch = Sketch(0.1)
        sketch.record(1)

        with pytest.raises(InvalidQuantile, match="Percentile"):
            sketch.percentile(p)

    def test_empty_sketch(self):
        """Querying an empty sketch fails."""
        with pytest.raises(EmptySketch, match="empty"):
            Sketch(0.1).quantile(0.5)

    def test_invalid_phi_checked_before_emptiness(self):
        """A bad phi is reported even on an empty sketch."""
        with pytest.raises(InvalidQuantile):
            Sketch(0.1).quantile(1.5)


class TestSketchRepr:
    """Tests for the string representation."""

    def test_repr(self):
        """repr shows epsilon, count and retained samples."""
        sketch = Sketch(0.01)
        sketch.record_many([1, 2, 3])

        assert repr(sketch) == "Sketch(epsilon=0.01, count=3, samples=3)"
