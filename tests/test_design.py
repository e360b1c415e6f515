"""Tests for random-effect design construction."""

import numpy as np
import pytest

from quantile_residuals import (
    InvalidInputError,
    block_diagonal_covariance,
    build_random_effects_design,
)


class TestBuildRandomEffectsDesign:
    def test_random_intercept(self):
        groups = np.array(["b", "a", "b", "c", "a"])
        Z, re_struct = build_random_effects_design(groups)
        assert Z.shape == (5, 3)
        assert re_struct == [(3, 1)]
        # Sorted label order: a, b, c.
        expected = np.array(
            [
                [0, 1, 0],
                [1, 0, 0],
                [0, 1, 0],
                [0, 0, 1],
                [1, 0, 0],
            ],
            dtype=float,
        )
        np.testing.assert_array_equal(Z, expected)

    def test_each_row_has_one_intercept(self):
        groups = np.repeat(np.arange(10), 4)
        Z, _ = build_random_effects_design(groups)
        np.testing.assert_array_equal(Z.sum(axis=1), np.ones(40))

    def test_slopes_are_group_major(self):
        groups = np.array([0, 0, 1, 1])
        x = np.array([1.0, 2.0, 3.0, 4.0])
        exog_re = np.column_stack([np.ones(4), x])
        Z, re_struct = build_random_effects_design(groups, exog_re)
        assert re_struct == [(2, 2)]
        expected = np.array(
            [
                [1, 1, 0, 0],
                [1, 2, 0, 0],
                [0, 0, 1, 3],
                [0, 0, 1, 4],
            ],
            dtype=float,
        )
        np.testing.assert_array_equal(Z, expected)

    def test_crossed_factors(self):
        school = np.array([0, 0, 1, 1, 2, 2])
        rater = np.array([0, 1, 0, 1, 0, 1])
        Z, re_struct = build_random_effects_design(
            {"school": school, "rater": rater}
        )
        assert re_struct == [(3, 1), (2, 1)]
        assert Z.shape == (6, 5)
        np.testing.assert_array_equal(Z.sum(axis=1), 2 * np.ones(6))

    def test_factor_with_exog_re_in_dict(self):
        groups = np.array([0, 1, 0, 1])
        slope = np.array([0.5, 1.0, 1.5, 2.0])
        Z, re_struct = build_random_effects_design({"g": (groups, slope)})
        assert re_struct == [(2, 1)]
        np.testing.assert_array_equal(Z[:, 0], [0.5, 0.0, 1.5, 0.0])

    def test_mismatched_factor_lengths_raise(self):
        with pytest.raises(InvalidInputError, match="observations"):
            build_random_effects_design(
                {"a": np.array([0, 1, 2]), "b": np.array([0, 1])}
            )

    def test_empty_dict_raises(self):
        with pytest.raises(InvalidInputError, match="at least one"):
            build_random_effects_design({})

    def test_exog_re_wrong_rows_raises(self):
        with pytest.raises(InvalidInputError, match="exog_re"):
            build_random_effects_design(np.array([0, 1, 1]), np.ones((2, 1)))

    def test_2d_labels_raise(self):
        with pytest.raises(InvalidInputError, match="1-D"):
            build_random_effects_design(np.zeros((3, 2)))


class TestBlockDiagonalCovariance:
    def test_scalar_variances(self):
        cov = block_diagonal_covariance([(2, 1), (3, 1)], [0.5, 2.0])
        np.testing.assert_array_equal(np.diag(cov), [0.5, 0.5, 2.0, 2.0, 2.0])
        assert np.count_nonzero(cov - np.diag(np.diag(cov))) == 0

    def test_kron_blocks(self):
        sigma = np.array([[1.0, 0.3], [0.3, 2.0]])
        cov = block_diagonal_covariance([(2, 2)], [sigma])
        assert cov.shape == (4, 4)
        np.testing.assert_array_equal(cov[:2, :2], sigma)
        np.testing.assert_array_equal(cov[2:, 2:], sigma)
        np.testing.assert_array_equal(cov[:2, 2:], np.zeros((2, 2)))

    def test_wrong_block_count_raises(self):
        with pytest.raises(InvalidInputError, match="covariance blocks"):
            block_diagonal_covariance([(2, 1)], [1.0, 2.0])

    def test_wrong_block_shape_raises(self):
        with pytest.raises(InvalidInputError, match="Covariance block"):
            block_diagonal_covariance([(2, 2)], [1.0])
