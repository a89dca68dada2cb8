import pytest

np = pytest.importorskip("numpy")

from core.mathkernel import eval_poly, eval_poly_deriv, mean, poly_fit, quantile


@pytest.mark.parametrize("seed", range(20))
def test_poly_fit_recovers_coefficients(seed):
    rng = np.random.default_rng(seed)
    order = int(rng.integers(0, 4))
    coeffs = np.zeros(4)
    coeffs[3 - order :] = rng.uniform(-2.0, 2.0, order + 1)
    x = np.sort(rng.choice(np.linspace(-2.0, 2.0, 401), size=10, replace=False))
    fitted = poly_fit(x, eval_poly(coeffs, x), 3)
    np.testing.assert_allclose(fitted, coeffs, atol=1e-9)


def test_poly_fit_highest_power_first():
    x = np.arange(5, dtype=float)
    fitted = poly_fit(x, 3.0 * x + 1.0, 1)
    np.testing.assert_allclose(fitted, [3.0, 1.0], atol=1e-12)


def test_poly_fit_needs_enough_samples():
    with pytest.raises(ValueError):
        poly_fit([0.0, 1.0, 2.0], [1.0, 2.0, 3.0], 3)
    with pytest.raises(ValueError):
        poly_fit([0.0, 1.0], [1.0], 1)


def test_eval_poly_deriv():
    c = [1.0, -2.0, 0.5, 4.0]  # x^3 - 2x^2 + 0.5x + 4
    assert eval_poly_deriv(c, 2.0) == pytest.approx(3 * 4 - 4 * 2 + 0.5)
    assert eval_poly_deriv([7.0], 1.0) == 0.0


def test_mean_empty_is_zero():
    assert mean([]) == 0.0
    assert mean([1.0, 2.0, 6.0]) == pytest.approx(3.0)


def test_quantile_rank_and_clamp():
    v = np.array([5.0, 1.0, 4.0, 2.0, 3.0])
    assert quantile(v.copy(), 0.0) == 1.0
    assert quantile(v.copy(), 0.5) == 3.0
    assert quantile(v.copy(), 1.0) == 5.0
    with pytest.raises(ValueError):
        quantile(np.array([]), 0.5)


@pytest.mark.parametrize("seed", range(10))
def test_quantile_monotonic(seed):
    rng = np.random.default_rng(seed)
    v = rng.normal(size=int(rng.integers(1, 200)))
    p1, p2 = np.sort(rng.uniform(0.0, 1.0, 2))
    assert quantile(v.copy(), p1) <= quantile(v.copy(), p2)
