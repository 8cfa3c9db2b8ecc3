#!/usr/bin/env python3
"""
Covariance Shrinkage Estimators

================================================================================
PURPOSE
================================================================================
When the number of training observations t is comparable to or smaller than
the kernel length n, the sample covariance S is noisy and often singular.
Shrinkage blends S with a structured target F:

    Sigma = delta * F + (1 - delta) * S,    0 <= delta <= 1

The intensity delta is chosen to minimise the expected Frobenius loss. Each
estimator below differs only in its target and in how delta is estimated.

================================================================================
ESTIMATORS
================================================================================
    sample   S itself (biased, divides by t)
    oas      Oracle Approximating Shrinkage toward (tr(S)/n) I
             Chen, Wiesel, Eldar & Hero (2010), IEEE Trans. Signal Process.
    rblw     Rao-Blackwellised Ledoit-Wolf toward (tr(S)/n) I (same paper)
    param1   Ledoit-Wolf, one-parameter target: mean variance * I
    param2   Ledoit-Wolf, two-parameter target: mean variance on the
             diagonal, mean covariance off the diagonal
    corr     Ledoit-Wolf (2004), constant-correlation target
             "Honey, I shrunk the sample covariance matrix"
    diag     Ledoit-Wolf, diagonal of S as target
    stock    Ledoit-Wolf (2003), single-index target using the mean across
             variables as the "market" factor
    looc     Leave-one-out cross-validated shrinkage toward an arbitrary
             target (Theiler 2012, "The incredible shrinking covariance
             estimator", Proc. SPIE 8391). The held-out likelihood is
             evaluated with rank-one updates, so each intensity costs a
             single Cholesky factorisation.

All Ledoit-Wolf variants estimate

    delta = max(0, min(1, (phi - rho) / gamma / t))

where phi is the sum of asymptotic variances of the entries of S, rho the
sum of asymptotic covariances between S and F, and gamma = ||S - F||_F^2.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

import numpy as np
from scipy import linalg

from .interfaces.data_models import EstimatorKind
from .np_constants import LOOC_ALPHA_GRID_SIZE

logger = logging.getLogger(__name__)


def _centered(observations: np.ndarray):
    """Return (deviation matrix, biased sample covariance)."""
    x = np.asarray(observations, dtype=float)
    x = x - x.mean(axis=0)
    t = x.shape[0]
    return x, (x.T @ x) / t


class CovarianceStrategy(ABC):
    """
    Covariance estimation strategy.

    Observations are given as a t x n matrix (rows are observations).
    """

    kind: EstimatorKind
    requires_shrinkage_data = True

    def __init__(self):
        self.shrinkage: Optional[float] = None

    @abstractmethod
    def estimate(self, observations: np.ndarray) -> np.ndarray:
        pass

    def _blend(self, sample: np.ndarray, prior: np.ndarray, shrinkage: float) -> np.ndarray:
        self.shrinkage = float(shrinkage)
        logger.debug(f"{self.kind.value}: shrinkage intensity {self.shrinkage:.4f}")
        return shrinkage * prior + (1 - shrinkage) * sample

    def _ledoit_wolf(self, sample: np.ndarray, prior: np.ndarray,
                     phi: float, rho: float, t: int) -> np.ndarray:
        gamma = np.linalg.norm(sample - prior, 'fro') ** 2
        if gamma <= 0:
            self.shrinkage = 0.0
            return sample
        kappa = (phi - rho) / gamma
        return self._blend(sample, prior, max(0.0, min(1.0, kappa / t)))


class SampleCovariance(CovarianceStrategy):
    kind = EstimatorKind.SAMPLE
    requires_shrinkage_data = False

    def estimate(self, observations):
        _, sample = _centered(observations)
        self.shrinkage = 0.0
        return sample


class OasShrinkage(CovarianceStrategy):
    kind = EstimatorKind.OAS

    def estimate(self, observations):
        x, sample = _centered(observations)
        t, n = x.shape
        mu = np.trace(sample) / n
        alpha = np.mean(sample ** 2)
        num = alpha + mu ** 2
        den = (t + 1) * (alpha - mu ** 2 / n)
        shrinkage = 1.0 if den == 0 else min(num / den, 1.0)
        return self._blend(sample, mu * np.eye(n), shrinkage)


class RblwShrinkage(CovarianceStrategy):
    kind = EstimatorKind.RBLW

    def estimate(self, observations):
        x, sample = _centered(observations)
        t, n = x.shape
        tr_s = np.trace(sample)
        tr_s2 = np.sum(sample ** 2)
        den = (t + 2) * (tr_s2 - tr_s ** 2 / n)
        if den <= 0:
            self.shrinkage = 0.0
            return sample
        rho = ((t - 2) / t * tr_s2 + tr_s ** 2) / den
        return self._blend(sample, tr_s / n * np.eye(n), max(0.0, min(1.0, rho)))


class ConstantVarianceShrinkage(CovarianceStrategy):
    """Ledoit-Wolf one-parameter target."""
    kind = EstimatorKind.PARAM1

    def estimate(self, observations):
        x, sample = _centered(observations)
        t, n = x.shape
        prior = np.mean(np.diag(sample)) * np.eye(n)
        y = x ** 2
        phi = np.sum(y.T @ y / t - sample ** 2)
        return self._ledoit_wolf(sample, prior, phi, 0.0, t)


class TwoParameterShrinkage(CovarianceStrategy):
    """Ledoit-Wolf two-parameter target."""
    kind = EstimatorKind.PARAM2

    def estimate(self, observations):
        x, sample = _centered(observations)
        t, n = x.shape
        off = ~np.eye(n, dtype=bool)
        mean_var = np.mean(np.diag(sample))
        mean_cov = np.sum(sample[off]) / (n * (n - 1))
        prior = np.where(off, mean_cov, mean_var)

        y = x ** 2
        phi = np.sum(y.T @ y / t - sample ** 2)

        # Asymptotic covariance between the mean variance and each s_ii
        b = y.sum(axis=1)
        rho_diag = np.sum(((b - b.mean()) @ y) / t) / n

        # Asymptotic covariance between the mean covariance and each s_ij
        u = x.sum(axis=1) ** 2 - b
        v = (x.T * (u - u.mean())) @ x / t
        rho_off = np.sum(v[off]) / (n * (n - 1))

        return self._ledoit_wolf(sample, prior, phi, rho_diag + rho_off, t)


class ConstantCorrelationShrinkage(CovarianceStrategy):
    kind = EstimatorKind.CORR

    def estimate(self, observations):
        x, sample = _centered(observations)
        t, n = x.shape
        var = np.diag(sample)
        sqrtvar = np.sqrt(var)
        outer = np.outer(sqrtvar, sqrtvar)
        r_bar = (np.sum(sample / outer) - n) / (n * (n - 1))
        prior = r_bar * outer
        np.fill_diagonal(prior, var)

        y = x ** 2
        phi_mat = y.T @ y / t - sample ** 2
        phi = np.sum(phi_mat)

        theta = (x ** 3).T @ x / t - var[:, None] * sample
        np.fill_diagonal(theta, 0.0)
        rho = np.sum(np.diag(phi_mat)) + r_bar * np.sum(np.outer(1 / sqrtvar, sqrtvar) * theta)

        return self._ledoit_wolf(sample, prior, phi, rho, t)


class DiagonalShrinkage(CovarianceStrategy):
    kind = EstimatorKind.DIAG

    def estimate(self, observations):
        x, sample = _centered(observations)
        t, n = x.shape
        prior = np.diag(np.diag(sample))
        y = x ** 2
        phi_mat = y.T @ y / t - sample ** 2
        return self._ledoit_wolf(sample, prior, np.sum(phi_mat), np.sum(np.diag(phi_mat)), t)


class SingleIndexShrinkage(CovarianceStrategy):
    """Ledoit-Wolf single-index ("market") target."""
    kind = EstimatorKind.STOCK

    def estimate(self, observations):
        x, sample = _centered(observations)
        t, n = x.shape
        market = x.mean(axis=1)
        cov_market = x.T @ market / t
        var_market = market @ market / t
        if var_market <= 0:
            self.shrinkage = 0.0
            return sample
        prior = np.outer(cov_market, cov_market) / var_market
        np.fill_diagonal(prior, np.diag(sample))

        y = x ** 2
        phi = np.sum(y.T @ y) / t - np.sum(sample ** 2)
        r_diag = np.sum(y ** 2) / t - np.sum(np.diag(sample) ** 2)

        z = x * market[:, None]
        v1 = y.T @ z / t - cov_market[:, None] * sample
        r_off1 = (np.sum(v1 * cov_market[None, :]) - np.sum(np.diag(v1) * cov_market)) / var_market
        v3 = z.T @ z / t - var_market * sample
        r_off3 = (np.sum(v3 * np.outer(cov_market, cov_market))
                  - np.sum(np.diag(v3) * cov_market ** 2)) / var_market ** 2
        rho = r_diag + 2 * r_off1 - r_off3

        return self._ledoit_wolf(sample, prior, phi, rho, t)


class LeaveOneOutShrinkage(CovarianceStrategy):
    """
    Leave-one-out cross-validated shrinkage toward an arbitrary target.

    For intensity alpha the full-data estimate is

        R = (1 - alpha) * S_u + alpha * F,    S_u = t/(t-1) * S

    Removing observation k is a rank-one downdate R_k = R - beta x_k x_k^T
    with beta = (1 - alpha)/(t - 1). With q_k = x_k^T R^-1 x_k:

        log det R_k       = log det R + log(1 - beta q_k)
        x_k^T R_k^-1 x_k  = q_k / (1 - beta q_k)

    The intensity maximising the mean held-out log-likelihood is chosen on a
    grid and refined by fitting a parabola through the best point and its
    neighbours.
    """
    kind = EstimatorKind.LOOC

    def __init__(self, target: Optional[np.ndarray] = None,
                 grid_size: int = LOOC_ALPHA_GRID_SIZE):
        super().__init__()
        self.target = None if target is None else np.asarray(target, dtype=float)
        self.grid_size = grid_size

    def estimate(self, observations):
        x, sample = _centered(observations)
        t, n = x.shape
        sample_u = sample * t / (t - 1)

        if self.target is None:
            target = np.trace(sample) / n * np.eye(n)
        else:
            if self.target.shape != (n, n):
                raise ValueError(f"Shrink target is {self.target.shape}, expected {(n, n)}")
            target = self.target * np.trace(sample) / np.trace(self.target)

        alphas = np.linspace(0.0, 1.0, self.grid_size)
        scores = np.array([self._score(a, x, sample_u, target) for a in alphas])
        best = int(np.argmax(scores))
        alpha = alphas[best]

        if 0 < best < len(alphas) - 1 and np.all(np.isfinite(scores[best - 1:best + 2])):
            s0, s1, s2 = scores[best - 1:best + 2]
            denom = s0 - 2 * s1 + s2
            if denom < 0:
                step = alphas[1] - alphas[0]
                refined = alpha + 0.5 * step * (s0 - s2) / denom
                refined = min(max(refined, alphas[best - 1]), alphas[best + 1])
                if self._score(refined, x, sample_u, target) > scores[best]:
                    alpha = refined

        if not np.isfinite(scores[best]):
            logger.warning("looc: no intensity gave a positive definite estimate, using target")
            alpha = 1.0

        return self._blend(sample_u, target, alpha)

    @staticmethod
    def _score(alpha, x, sample_u, target) -> float:
        t = x.shape[0]
        r = (1 - alpha) * sample_u + alpha * target
        try:
            factor = linalg.cho_factor(r, lower=True)
        except linalg.LinAlgError:
            return -np.inf
        log_det = 2 * np.sum(np.log(np.diag(factor[0])))
        q = np.sum(x * linalg.cho_solve(factor, x.T).T, axis=1)
        beta = (1 - alpha) / (t - 1)
        downdate = 1 - beta * q
        if np.any(downdate <= 0):
            return -np.inf
        log_lik = -0.5 * (log_det + np.log(downdate) + q / downdate)
        return float(np.mean(log_lik))


ESTIMATORS: Dict[EstimatorKind, Type[CovarianceStrategy]] = {
    cls.kind: cls for cls in (
        SampleCovariance, OasShrinkage, RblwShrinkage, ConstantVarianceShrinkage,
        TwoParameterShrinkage, ConstantCorrelationShrinkage, DiagonalShrinkage,
        SingleIndexShrinkage, LeaveOneOutShrinkage,
    )
}


def make_estimator(kind: EstimatorKind, target: Optional[np.ndarray] = None) -> CovarianceStrategy:
    """
    Build the strategy for an estimator kind.

    Args:
        kind: Estimator to use
        target: Shrink target (leave-one-out estimator only)
    """
    kind = EstimatorKind(kind)
    if kind is EstimatorKind.LOOC:
        return LeaveOneOutShrinkage(target=target)
    return ESTIMATORS[kind]()
